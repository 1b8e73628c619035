# agregación y clasificación de mensajes de consola del harness

from __future__ import annotations
import re
import sys
import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from previewer.net.monitor import ResponseEvent
from previewer.state import RenderSession

WARNING = "warning"
ERROR = "error"

# niveles del log 'browser' de WebDriver -> severidad
_LEVELS = {"WARNING": WARNING, "SEVERE": ERROR}

UNRESOLVED_TEXT = "Unresolved message"
UNKNOWN_ERROR_TEXT = "Unknown error"
# solo las formas de handle: un console.error("Error") literal se conserva
_OPAQUE = {"JSHandle@error", "JSHandle@object"}
_WEBGL_NOISE = re.compile(r"\[\.WebGL-(.+?)\] ")
_CONSOLE_PREFIX = re.compile(r"^(\S+) (\d+:\d+) (.*)$", re.DOTALL)
_BENIGN = ("Unable to access the camera/webcam",)


@dataclass(frozen=True)
class DiagnosticMessage:
    text: str
    severity: str  # "warning" | "error"
    stage: str


@dataclass
class DiagnosticCache:
    """Conjunto ordenado de textos ya vistos (el primero gana)."""
    seen: Dict[str, None] = field(default_factory=dict)

    def add(self, text: str) -> bool:
        """True si el texto es nuevo."""
        if text in self.seen:
            return False
        self.seen[text] = None
        return True

    def __contains__(self, text: str) -> bool:
        return text in self.seen

    def __len__(self) -> int:
        return len(self.seen)

    def items(self) -> List[str]:
        return list(self.seen)


def _decode_args(rest: str) -> str:
    """
    Chrome serializa los argumentos de console.* separados por espacios,
    con las cadenas entre comillas JSON. Si algo no se puede decodificar
    se deja tal cual desde ese punto.
    """
    decoder = json.JSONDecoder()
    parts: List[str] = []
    pos = 0
    n = len(rest)
    while pos < n:
        while pos < n and rest[pos] == " ":
            pos += 1
        if pos >= n:
            break
        try:
            value, end = decoder.raw_decode(rest, pos)
        except ValueError:
            parts.append(rest[pos:])
            break
        if end < n and rest[end] != " ":
            parts.append(rest[pos:])
            break
        parts.append(value if isinstance(value, str) else json.dumps(value))
        pos = end
    return " ".join(parts)


def resolve_text(entry: dict) -> str:
    """Texto legible de una entrada del log; marcador si no se puede resolver."""
    raw = entry.get("message") if isinstance(entry, dict) else None
    if not isinstance(raw, str):
        return UNRESOLVED_TEXT
    if entry.get("source") == "console-api":
        m = _CONSOLE_PREFIX.match(raw)
        if m:
            try:
                return _decode_args(m.group(3))
            except Exception:
                return m.group(3)
    return raw


def classify(entry: dict, stage: str) -> Optional[DiagnosticMessage]:
    """
    Filtra y normaliza una entrada de consola.
    Devuelve None si se descarta (nivel no relevante, vacía o benigna).
    """
    severity = _LEVELS.get(str(entry.get("level", "")).upper()) if isinstance(entry, dict) else None
    if severity is None:
        return None

    text = resolve_text(entry).strip()
    if not text:
        return None

    text = _WEBGL_NOISE.sub("", text).strip()
    if text in _OPAQUE:
        text = UNKNOWN_ERROR_TEXT

    if any(b in text for b in _BENIGN):
        return None

    return DiagnosticMessage(text=f"{stage}: {text}", severity=severity, stage=stage)


class DiagnosticAggregator:
    """
    Recibe consola y respuestas del navegador.
      - warnings: se muestran al momento
      - errors: el primero pasa a terminal_error de la sesión
      - respuestas 200: suman bytes al contador de transferencia
    """
    def __init__(self, session: RenderSession, stage: str, cache: Optional[DiagnosticCache] = None):
        self.session = session
        self.stage = stage
        self.cache = cache if cache is not None else DiagnosticCache()
        self.messages: List[DiagnosticMessage] = []

    def on_console(self, entry: dict) -> Optional[DiagnosticMessage]:
        msg = classify(entry, self.stage)
        if msg is None or not self.cache.add(msg.text):
            return None
        self.messages.append(msg)

        if msg.severity == WARNING:
            print(f"[DIAG][WARN] {msg.text}", file=sys.stderr)
        elif not self.session.set_terminal_error(msg.text):
            print(f"[DIAG][ERR] (ya hay un error terminal) {msg.text}", file=sys.stderr)
        return msg

    def on_console_batch(self, entries: Iterable[dict]) -> None:
        for entry in entries:
            self.on_console(entry)

    def on_response(self, event: ResponseEvent) -> None:
        if event.status == 200:
            self.session.add_transferred(event.nbytes)
        else:
            print(f"[NET] {event.status} {event.url}")

    @property
    def terminal_error(self) -> Optional[str]:
        return self.session.terminal_error
