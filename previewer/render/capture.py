# post-proceso de la captura: validación, reescalado y guardado PNG

from __future__ import annotations
import os
from pathlib import Path
from dataclasses import dataclass
import cv2
import numpy as np

from previewer.errors import FatalRenderError, TransparentOutputError


@dataclass
class CapturedFrame:
    """PNG crudo del navegador + su decodificación BGRA."""
    png: bytes
    image: np.ndarray

    @classmethod
    def decode(cls, png: bytes) -> "CapturedFrame":
        arr = np.frombuffer(png, dtype=np.uint8)
        image = cv2.imdecode(arr, cv2.IMREAD_UNCHANGED) if arr.size else None
        if image is None:
            raise FatalRenderError("La captura no es una imagen válida (imdecode devolvió None)")
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGRA)
        elif image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2BGRA)
        return cls(png=png, image=image)

    @property
    def size(self) -> tuple[int, int]:
        h, w = self.image.shape[:2]
        return w, h


def has_visible_pixels(image: np.ndarray) -> bool:
    """True si algún píxel tiene alfa distinto de cero."""
    if image.ndim < 3 or image.shape[2] < 4:
        return image.size > 0
    return bool(np.any(image[:, :, 3]))


def process_frame(frame: CapturedFrame, width: int, height: int,
                  reject_transparent: bool = True) -> bytes:
    """
    Valida (opcional), reescala a width x height exactos y codifica PNG.
    La salida mide siempre width x height, sea cual sea el aspecto de origen.
    """
    if reject_transparent and not has_visible_pixels(frame.image):
        w, h = frame.size
        raise TransparentOutputError(f"La captura ({w}x{h}) es totalmente transparente")

    src_h, src_w = frame.image.shape[:2]
    interp = cv2.INTER_AREA if (src_w >= width and src_h >= height) else cv2.INTER_LINEAR
    resized = cv2.resize(frame.image, (int(width), int(height)), interpolation=interp)

    ok, buf = cv2.imencode(".png", resized)
    if not ok:
        raise FatalRenderError("No se pudo codificar PNG")
    return buf.tobytes()


def write_atomic(path: Path, data: bytes) -> Path:
    """Guardado ATÓMICO: .tmp -> os.replace()."""
    dst = Path(path)
    if dst.parent and not dst.parent.exists():
        dst.parent.mkdir(parents=True, exist_ok=True)
    tmp = dst.with_suffix(dst.suffix + ".tmp")
    try:
        with open(tmp, "wb") as f:
            f.write(data)
        os.replace(tmp, dst)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return dst


def save_preview(png: bytes, out_path: Path, width: int, height: int,
                 reject_transparent: bool = True) -> Path:
    frame = CapturedFrame.decode(png)
    data = process_frame(frame, width, height, reject_transparent=reject_transparent)
    dst = write_atomic(out_path, data)
    print(f"[CAPTURE] {frame.size[0]}x{frame.size[1]} -> {width}x{height} ({len(data)} bytes)")
    return dst
