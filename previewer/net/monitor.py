# seguimiento de red del navegador a partir del log 'performance' (DevTools)

from __future__ import annotations
import json
import sys
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Set


@dataclass(frozen=True)
class ResponseEvent:
    url: str
    status: int
    nbytes: int


class NetworkMonitor:
    """
    Consume entradas del log 'performance' de Chrome/Edge:
      - mantiene el conjunto de peticiones en vuelo
      - marca la hora de la última actividad (para detectar quietud)
      - emite ResponseEvent al terminar cada respuesta (status + bytes del cuerpo)
    """
    def __init__(self, on_response: Optional[Callable[[ResponseEvent], None]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.on_response = on_response
        self.clock = clock
        self.inflight: Set[str] = set()
        self.last_activity = clock()
        self._status: Dict[str, tuple[str, int]] = {}
        self._body: Dict[str, int] = {}

    def reset(self) -> None:
        self.inflight.clear()
        self._status.clear()
        self._body.clear()
        self.last_activity = self.clock()

    def feed(self, entries: Iterable[dict]) -> int:
        """Procesa un lote de entradas. Devuelve cuántos eventos de red se usaron."""
        used = 0
        for entry in entries:
            try:
                payload = json.loads(entry.get("message", "")).get("message", {})
            except (TypeError, ValueError, AttributeError):
                continue
            if self._handle(payload.get("method", ""), payload.get("params") or {}):
                used += 1
        if used:
            self.last_activity = self.clock()
        return used

    def _handle(self, method: str, params: dict) -> bool:
        request_id = params.get("requestId")
        if not request_id or not method.startswith("Network."):
            return False

        if method == "Network.requestWillBeSent":
            redirect = params.get("redirectResponse")
            if redirect:
                # el mismo requestId continúa tras la redirección
                self._emit(redirect.get("url", ""), int(redirect.get("status", 0)), 0)
            self.inflight.add(request_id)
            return True

        if method == "Network.responseReceived":
            response = params.get("response") or {}
            self._status[request_id] = (response.get("url", ""), int(response.get("status", 0)))
            return True

        if method == "Network.dataReceived":
            # bytes del cuerpo ya descomprimido
            self._body[request_id] = self._body.get(request_id, 0) + int(params.get("dataLength") or 0)
            return True

        if method == "Network.loadingFinished":
            self.inflight.discard(request_id)
            url, status = self._status.pop(request_id, ("", 0))
            self._emit(url, status, self._body.pop(request_id, 0))
            return True

        if method == "Network.loadingFailed":
            self.inflight.discard(request_id)
            url, _ = self._status.pop(request_id, ("", 0))
            self._body.pop(request_id, None)
            if not params.get("canceled"):
                print(f"[NET][WARN] Petición fallida {url or request_id}: {params.get('errorText', '?')}",
                      file=sys.stderr)
            return True

        return False

    def _emit(self, url: str, status: int, nbytes: int) -> None:
        if self.on_response is not None:
            self.on_response(ResponseEvent(url=url, status=status, nbytes=nbytes))

    def idle_for(self) -> float:
        """Segundos sin peticiones en vuelo (0 si hay alguna activa)."""
        if self.inflight:
            return 0.0
        return max(0.0, self.clock() - self.last_activity)
