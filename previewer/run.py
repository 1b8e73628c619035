from __future__ import annotations

import sys
import signal
import threading
from pathlib import Path
from typing import Callable, Optional

from previewer.assets.delivery import AssetDelivery
from previewer.assets.sniff import load_model_asset
from previewer.browser.diagnostics import DiagnosticAggregator
from previewer.browser.engine import RenderEngine
from previewer.config import Settings
from previewer.errors import PreviewError
from previewer.net.monitor import NetworkMonitor
from previewer.net.server import HarnessServer
from previewer.render.capture import save_preview
from previewer.render.protocol import RenderAttempt
from previewer.state import RenderSession


def _read_script(path: Optional[Path]) -> Optional[str]:
    if path is None:
        return None
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise PreviewError(f"No se pudo leer el script {path}: {e}") from e


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"señal {signum}")


def install_signal_handlers() -> None:
    """SIGTERM sigue el mismo camino que Ctrl+C (KeyboardInterrupt)."""
    if threading.current_thread() is threading.main_thread() and hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _raise_interrupt)


def run_preview(settings: Settings, model_path: str | Path, out_path: str | Path,
                engine_factory: Callable[[Settings], object] = RenderEngine.launch) -> int:
    """
    Un intento completo. Devuelve el código de salida (0 ok, 1 fallo).
    La sesión se cierra SIEMPRE (éxito, error o interrupción).
    """
    print(f"▶ Generando preview de {model_path}")
    session = RenderSession()
    try:
        asset = load_model_asset(model_path)
        injection = _read_script(settings.INJECTION_SCRIPT)
        clean_page = _read_script(settings.CLEAN_PAGE_SCRIPT)

        delivery = AssetDelivery(asset, session, settings.redirect_threshold_bytes)
        session.on_close("temporales", delivery.close)

        server = HarnessServer(settings.HARNESS_DIR, delivery, settings.MODEL_PATH,
                               verbose=settings.HTTP_LOG).start()
        session.server = server
        session.base_url = server.base_url
        session.on_close("servidor", server.close)

        engine = engine_factory(settings)
        session.engine = engine
        session.on_close("navegador", engine.quit)

        aggregator = DiagnosticAggregator(session, stage=settings.HARNESS_FILE)
        monitor = NetworkMonitor(on_response=aggregator.on_response)
        attempt = RenderAttempt(
            engine, session, settings, monitor, aggregator,
            delivery=delivery, injection=injection, clean_page=clean_page,
        )
        out = attempt.run(lambda png: save_preview(
            png, Path(out_path), settings.OUTPUT_WIDTH, settings.OUTPUT_HEIGHT,
            reject_transparent=settings.REJECT_TRANSPARENT,
        ))
        print(f"✅ Preview generada: {out}")
        return 0

    except KeyboardInterrupt:
        print("⏹ Interrumpido.", file=sys.stderr)
        return 1
    except PreviewError as e:
        print(f"❌ {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"❌ Error inesperado: {e!r}", file=sys.stderr)
        return 1
    finally:
        session.close()
