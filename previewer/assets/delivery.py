# entrega del modelo al harness: inline (200) o redirección a temporal (302)

from __future__ import annotations
import sys
import shutil
import secrets
import tempfile
import threading
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Optional

from previewer.assets.sniff import ModelAsset
from previewer.state import RenderSession

TEMP_ROUTE = "/_assets/"


@dataclass
class DeliveryResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""


class AssetDelivery:
    """
    Decide cómo se sirve el modelo en la ruta lógica:
      - tamaño <= umbral: 200 con el tipo detectado y los bytes tal cual
      - tamaño >  umbral: escribe un temporal con nombre aleatorio y responde 302
    El temporal vive hasta release_temporary() (tras la quietud de red) o close().
    Lo usan a la vez el hilo del servidor y el hilo principal.
    """
    def __init__(self, asset: ModelAsset, session: RenderSession,
                 threshold_bytes: int, temp_dir: Optional[Path] = None):
        self.asset = asset
        self.session = session
        self.threshold_bytes = int(threshold_bytes)
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.mkdtemp(prefix="previewer_"))
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self._temp: Dict[str, Path] = {}
        self._lock = threading.Lock()

    @property
    def redirects(self) -> bool:
        return self.asset.size > self.threshold_bytes

    def respond(self) -> DeliveryResponse:
        """Respuesta para una petición interceptada a la ruta del modelo."""
        if not self.redirects:
            self.session.record_served(self.asset.source, self.asset.size)
            return DeliveryResponse(
                status=200,
                headers={
                    "Content-Type": self.asset.content_type,
                    "Content-Length": str(self.asset.size),
                    "Cache-Control": "no-store",
                },
                body=self.asset.data,
            )

        name = self._ensure_temporary()
        location = TEMP_ROUTE + name
        self.session.record_served(location, 0)
        print(f"[ASSET] {self.asset.size} bytes > umbral ({self.threshold_bytes}); redirigiendo a {location}")
        return DeliveryResponse(
            status=302,
            headers={"Location": location, "Content-Length": "0", "Cache-Control": "no-store"},
        )

    def _ensure_temporary(self) -> str:
        with self._lock:
            # una vez creado se reutiliza hasta que se libere
            for name, path in self._temp.items():
                if path.exists():
                    return name
            name = secrets.token_hex(16) + self.asset.extension
            path = self.temp_dir / name
            path.write_bytes(self.asset.data)
            self._temp[name] = path
        self.session.track_temporary(path)
        return name

    def resolve_temporary(self, name: str) -> Optional[Path]:
        """Ruta en disco de un temporal servido en TEMP_ROUTE, o None."""
        with self._lock:
            path = self._temp.get(name)
        if path is None or not path.exists():
            return None
        return path

    def pending_temporary(self) -> list[Path]:
        with self._lock:
            return [p for p in self._temp.values() if p.exists()]

    def release_temporary(self) -> int:
        """Borra los temporales pendientes. Devuelve cuántos se borraron."""
        with self._lock:
            items = list(self._temp.items())
            self._temp.clear()
        removed = 0
        for name, path in items:
            try:
                path.unlink(missing_ok=True)
                removed += 1
            except OSError as e:
                print(f"[ASSET][WARN] No se pudo borrar {path}: {e}", file=sys.stderr)
        if items:
            self.session.track_temporary(None)
            print(f"[ASSET] Temporales liberados: {removed}")
        return removed

    def close(self) -> None:
        self.release_temporary()
        shutil.rmtree(self.temp_dir, ignore_errors=True)
