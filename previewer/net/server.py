# servidor local: harness estático + ruta lógica del modelo

from __future__ import annotations
import errno
import threading
from functools import partial
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from previewer.assets.delivery import AssetDelivery, TEMP_ROUTE


def _is_disconnect_error(exc: BaseException) -> bool:
    if isinstance(exc, (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)):
        return True
    if isinstance(exc, OSError):
        return exc.errno in {errno.EPIPE, errno.ECONNRESET, errno.ECONNABORTED}
    return False


class HarnessHandler(SimpleHTTPRequestHandler):
    """
    - MODEL_PATH  -> AssetDelivery (200 inline o 302 a temporal)
    - /_assets/*  -> temporales del modelo
    - resto       -> ficheros estáticos de HARNESS_DIR
    """
    delivery: Optional[AssetDelivery] = None
    model_path: str = "/models/model.glb"
    verbose: bool = False

    def log_message(self, fmt: str, *args) -> None:
        if self.verbose:
            print(f"[HTTP] {self.address_string()} {fmt % args}")

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if _is_disconnect_error(exc):
                self.close_connection = True
                return
            raise

    def end_headers(self) -> None:
        # el harness no debe cachear nada entre intentos
        self.send_header("Cache-Control", "no-store")
        super().end_headers()

    def _send_delivery(self, head_only: bool) -> None:
        resp = self.delivery.respond()
        self.send_response(resp.status)
        for key, value in resp.headers.items():
            if key.lower() != "cache-control":
                self.send_header(key, value)
        self.end_headers()
        if not head_only and resp.body:
            self.wfile.write(resp.body)

    def _send_temporary(self, name: str, head_only: bool) -> None:
        path = self.delivery.resolve_temporary(name) if self.delivery else None
        if path is None:
            self.send_error(HTTPStatus.NOT_FOUND, "Temporary asset not found")
            return
        try:
            size = path.stat().st_size
            handle = path.open("rb")
        except OSError:
            self.send_error(HTTPStatus.NOT_FOUND, "Temporary asset not found")
            return
        with handle:
            self.send_response(HTTPStatus.OK)
            self.send_header("Content-Type", self.delivery.asset.content_type)
            self.send_header("Content-Length", str(size))
            self.end_headers()
            if head_only:
                return
            while True:
                chunk = handle.read(64 * 1024)
                if not chunk:
                    break
                self.wfile.write(chunk)
        self.delivery.session.record_served(str(path), size)

    def _route(self, head_only: bool) -> bool:
        path = unquote(urlparse(self.path).path)
        if self.delivery is not None and path == self.model_path:
            self._send_delivery(head_only)
            return True
        if path.startswith(TEMP_ROUTE):
            self._send_temporary(path[len(TEMP_ROUTE):], head_only)
            return True
        return False

    def do_GET(self) -> None:
        if not self._route(head_only=False):
            super().do_GET()

    def do_HEAD(self) -> None:
        if not self._route(head_only=True):
            super().do_HEAD()


class HarnessServer:
    """ThreadingHTTPServer en 127.0.0.1:<puerto efímero>, atendido en un hilo daemon."""

    def __init__(self, root: Path, delivery: Optional[AssetDelivery], model_path: str,
                 host: str = "127.0.0.1", port: int = 0, verbose: bool = False):
        self.root = Path(root)
        if not self.root.is_dir():
            raise FileNotFoundError(f"HARNESS_DIR no existe: {self.root}")
        handler = type("BoundHarnessHandler", (HarnessHandler,), {
            "delivery": delivery,
            "model_path": model_path,
            "verbose": verbose,
        })
        self.httpd = ThreadingHTTPServer((host, port), partial(handler, directory=str(self.root)))
        self.httpd.daemon_threads = True
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return int(self.httpd.server_address[1])

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def start(self) -> "HarnessServer":
        self._thread = threading.Thread(target=self.httpd.serve_forever, name="harness-http", daemon=True)
        self._thread.start()
        print(f"[SERVER] Escuchando en el puerto {self.port} (raíz={self.root})")
        return self

    def close(self) -> None:
        if self._thread is not None:
            self.httpd.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self.httpd.server_close()
        print("[SERVER] Cerrado.")
