# estado de la sesión de render (uno por invocación)

from __future__ import annotations
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional

from previewer.errors import ResourceCleanupError


@dataclass
class RenderSession:
    """
    Estado mutable de la sesión:
    - base_url: http://127.0.0.1:<port> del servidor local
    - engine: navegador (RenderEngine) o None si aún no arrancó
    - transferred_bytes: bytes de respuestas 200 vistas por el navegador
    - served_bytes: bytes escritos por la capa de entrega del modelo
    - terminal_error: primer error fatal de consola (el primero gana)
    - temporary_asset: fichero temporal del modelo mientras exista
    Se destruye una sola vez con close().
    """
    base_url: str = ""
    engine: Any = None
    server: Any = None
    transferred_bytes: int = 0
    served_bytes: int = 0
    terminal_error: Optional[str] = None
    temporary_asset: Optional[Path] = None
    closed: bool = False
    _cleanups: List[tuple[str, Callable[[], None]]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    # -------- accesores --------

    def add_transferred(self, nbytes: int) -> None:
        self.transferred_bytes += max(0, int(nbytes))

    def record_served(self, path: str, nbytes: int) -> None:
        # lo llama el hilo del servidor
        with self._lock:
            self.served_bytes += max(0, int(nbytes))

    def track_temporary(self, path: Optional[Path]) -> None:
        with self._lock:
            self.temporary_asset = path

    def set_terminal_error(self, text: str) -> bool:
        """Devuelve True si el error quedó registrado (no había otro antes)."""
        if self.terminal_error is not None:
            return False
        self.terminal_error = text
        return True

    def reset_attempt(self) -> None:
        self.transferred_bytes = 0
        self.terminal_error = None

    def on_close(self, name: str, fn: Callable[[], None]) -> None:
        """Registra una limpieza. Se ejecutan en orden inverso al registro."""
        self._cleanups.append((name, fn))

    # -------- cierre --------

    def close(self) -> List[ResourceCleanupError]:
        """
        Libera todo lo registrado. Idempotente.
        Los fallos se registran y se devuelven, nunca se propagan.
        """
        if self.closed:
            return []
        self.closed = True
        print("Cerrando...")
        failures: List[ResourceCleanupError] = []
        while self._cleanups:
            name, fn = self._cleanups.pop()
            try:
                fn()
            except Exception as e:
                err = ResourceCleanupError(f"{name}: {e}")
                failures.append(err)
                print(f"[SESSION][WARN] Limpieza fallida ({err})", file=sys.stderr)
        self.engine = None
        self.server = None
        return failures
