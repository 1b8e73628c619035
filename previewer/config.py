from __future__ import annotations
import os
from pathlib import Path
from dataclasses import dataclass
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

def _getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name, str(default)).strip().lower()
    return v in ("1", "true", "yes", "y", "on")

def _getenv_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        raise ValueError(f"{name} debe ser numérico (valor: {raw!r})") from None

def _getenv_int(name: str, default: int) -> int:
    return int(_getenv_float(name, default))

def _resolve_path(raw: str) -> Path:
    """
    Rutas relativas: primero contra la raíz del proyecto, luego contra el cwd.
    """
    p = Path(raw).expanduser()
    if p.is_absolute():
        return p
    candidate = PROJECT_ROOT / p
    if candidate.exists():
        return candidate.resolve()
    return (Path.cwd() / p).resolve()

def _parse_flags(raw: str) -> tuple[str, ...]:
    return tuple(f.strip() for f in (raw or "").split(",") if f.strip())

@dataclass(frozen=True)
class Settings:
    # tiempos
    IDLE_TIME_SEC: float
    PARSE_TIME_SEC_PER_MB: float
    NETWORK_TIMEOUT_MIN: float
    RENDER_TIMEOUT_SEC: float
    POLL_INTERVAL_MS: float

    # salida
    OUTPUT_WIDTH: int
    OUTPUT_HEIGHT: int
    VIEW_SCALE: float
    REJECT_TRANSPARENT: bool

    # servidor / harness
    HARNESS_DIR: Path
    HARNESS_FILE: str
    MODEL_PATH: str
    REDIRECT_THRESHOLD_MB: float
    HTTP_LOG: bool

    # inyecciones
    INJECTION_SCRIPT: Path | None
    CLEAN_PAGE_SCRIPT: Path | None

    # navegador
    SELENIUM_BROWSER: str
    VISIBLE: bool
    BROWSER_FLAGS: tuple[str, ...]

    @property
    def network_timeout_sec(self) -> float:
        return self.NETWORK_TIMEOUT_MIN * 60.0

    @property
    def redirect_threshold_bytes(self) -> int:
        return int(self.REDIRECT_THRESHOLD_MB * 1024 * 1024)

    @property
    def viewport(self) -> tuple[int, int]:
        return (int(round(self.OUTPUT_WIDTH * self.VIEW_SCALE)),
                int(round(self.OUTPUT_HEIGHT * self.VIEW_SCALE)))

def load_settings() -> Settings:
    env_path = PROJECT_ROOT / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
    else:
        load_dotenv()

    IDLE_TIME_SEC = _getenv_float("IDLE_TIME_SEC", 9)
    PARSE_TIME_SEC_PER_MB = _getenv_float("PARSE_TIME_SEC_PER_MB", 6)
    NETWORK_TIMEOUT_MIN = _getenv_float("NETWORK_TIMEOUT_MIN", 5)  # 0 = sin límite
    RENDER_TIMEOUT_SEC = _getenv_float("RENDER_TIMEOUT_SEC", 5)    # 0 = sin límite
    POLL_INTERVAL_MS = _getenv_float("POLL_INTERVAL_MS", 10)

    OUTPUT_WIDTH = _getenv_int("OUTPUT_WIDTH", 400)
    OUTPUT_HEIGHT = _getenv_int("OUTPUT_HEIGHT", 400)
    VIEW_SCALE = _getenv_float("VIEW_SCALE", 2)
    REJECT_TRANSPARENT = _getenv_bool("REJECT_TRANSPARENT", True)

    HARNESS_DIR = _resolve_path(os.getenv("HARNESS_DIR", "public").strip() or "public")
    HARNESS_FILE = os.getenv("HARNESS_FILE", "index").strip() or "index"
    MODEL_PATH = "/" + (os.getenv("MODEL_PATH", "/models/model.glb").strip().lstrip("/") or "models/model.glb")
    REDIRECT_THRESHOLD_MB = _getenv_float("REDIRECT_THRESHOLD_MB", 80)
    HTTP_LOG = _getenv_bool("HTTP_LOG", False)

    injection = os.getenv("INJECTION_SCRIPT", "").strip()
    clean_page = os.getenv("CLEAN_PAGE_SCRIPT", "").strip()
    INJECTION_SCRIPT = _resolve_path(injection) if injection else None
    CLEAN_PAGE_SCRIPT = _resolve_path(clean_page) if clean_page else None

    SELENIUM_BROWSER = os.getenv("SELENIUM_BROWSER", "chrome").strip() or "chrome"
    VISIBLE = _getenv_bool("VISIBLE", False)
    BROWSER_FLAGS = _parse_flags(os.getenv("BROWSER_FLAGS", "--hide-scrollbars,--enable-gpu"))

    if OUTPUT_WIDTH <= 0 or OUTPUT_HEIGHT <= 0:
        raise ValueError("OUTPUT_WIDTH y OUTPUT_HEIGHT deben ser > 0")
    if VIEW_SCALE <= 0:
        raise ValueError("VIEW_SCALE debe ser > 0")

    return Settings(
        IDLE_TIME_SEC=IDLE_TIME_SEC,
        PARSE_TIME_SEC_PER_MB=PARSE_TIME_SEC_PER_MB,
        NETWORK_TIMEOUT_MIN=NETWORK_TIMEOUT_MIN,
        RENDER_TIMEOUT_SEC=RENDER_TIMEOUT_SEC,
        POLL_INTERVAL_MS=POLL_INTERVAL_MS,
        OUTPUT_WIDTH=OUTPUT_WIDTH,
        OUTPUT_HEIGHT=OUTPUT_HEIGHT,
        VIEW_SCALE=VIEW_SCALE,
        REJECT_TRANSPARENT=REJECT_TRANSPARENT,
        HARNESS_DIR=HARNESS_DIR,
        HARNESS_FILE=HARNESS_FILE,
        MODEL_PATH=MODEL_PATH,
        REDIRECT_THRESHOLD_MB=REDIRECT_THRESHOLD_MB,
        HTTP_LOG=HTTP_LOG,
        INJECTION_SCRIPT=INJECTION_SCRIPT,
        CLEAN_PAGE_SCRIPT=CLEAN_PAGE_SCRIPT,
        SELENIUM_BROWSER=SELENIUM_BROWSER,
        VISIBLE=VISIBLE,
        BROWSER_FLAGS=BROWSER_FLAGS,
    )
