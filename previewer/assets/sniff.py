# detección del tipo de contenido del modelo 3D

from __future__ import annotations
import re
import io
import struct
import zipfile
import mimetypes
from pathlib import Path
from dataclasses import dataclass

from previewer.errors import AssetSniffError

# tipos que mimetypes no conoce en todas las plataformas
for _mime, _ext in (
    ("model/gltf-binary", ".glb"),
    ("model/gltf+json", ".gltf"),
    ("model/obj", ".obj"),
    ("model/stl", ".stl"),
    ("model/x-ply", ".ply"),
    ("model/3mf", ".3mf"),
    ("model/vnd.collada+xml", ".dae"),
    ("model/vnd.usdz+zip", ".usdz"),
    ("model/vnd.usda", ".usda"),
    ("application/vnd.autodesk.fbx", ".fbx"),
):
    mimetypes.add_type(_mime, _ext)

# formatos de texto sin número mágico: solo para ellos se acepta la extensión
TEXT_FALLBACK_TYPES = {"model/obj", "model/stl", "model/gltf+json", "model/vnd.collada+xml", "model/vnd.usda"}

_OBJ_LINE = re.compile(rb"^(v|vn|vt|f|o|g|mtllib|usemtl)[ \t]", re.MULTILINE)
_HEAD = 4096


@dataclass(frozen=True)
class ModelAsset:
    """Payload del modelo: bytes crudos + tipo detectado. Inmutable."""
    data: bytes
    content_type: str
    extension: str
    source: str = ""

    @property
    def size(self) -> int:
        return len(self.data)


def _sniff_zip(data: bytes) -> tuple[str, str]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = zf.namelist()
    except zipfile.BadZipFile:
        return "application/zip", ".zip"
    lowered = [n.lower() for n in names]
    if "3d/3dmodel.model" in lowered:
        return "model/3mf", ".3mf"
    if lowered and lowered[0].endswith((".usdc", ".usda", ".usd")):
        return "model/vnd.usdz+zip", ".usdz"
    return "application/zip", ".zip"


def _is_binary_stl(data: bytes) -> bool:
    if len(data) < 84:
        return False
    (count,) = struct.unpack_from("<I", data, 80)
    return len(data) == 84 + count * 50


def _sniff_text(head: bytes) -> tuple[str, str] | None:
    text = head.lstrip(b"\xef\xbb\xbf").lstrip()
    if text.startswith(b"{") and b'"asset"' in head:
        return "model/gltf+json", ".gltf"
    if text.startswith(b"solid") and b"facet" in head:
        return "model/stl", ".stl"
    if text.startswith(b"<?xml") or text.startswith(b"<COLLADA"):
        if b"COLLADA" in head:
            return "model/vnd.collada+xml", ".dae"
        return None
    if text.startswith(b"#usda"):
        return "model/vnd.usda", ".usda"
    if _OBJ_LINE.search(head):
        return "model/obj", ".obj"
    return None


def _looks_like_text(head: bytes) -> bool:
    if b"\x00" in head:
        return False
    try:
        head.decode("utf-8")
        return True
    except UnicodeDecodeError as e:
        # corte a mitad de un carácter multibyte al final del bloque
        return e.start >= len(head) - 3


def sniff_content_type(data: bytes, filename: str = "") -> tuple[str, str]:
    """
    Devuelve (content_type, extension) mirando los bytes.
    La extensión del fichero solo desempata formatos de texto sin firma.
    Lanza AssetSniffError si no se puede identificar.
    """
    if not data:
        raise AssetSniffError(f"Modelo vacío (0 bytes): {filename or '<sin nombre>'}")

    head = data[:_HEAD]
    if head.startswith(b"glTF"):
        return "model/gltf-binary", ".glb"
    if head.startswith(b"Kaydara FBX Binary"):
        return "application/vnd.autodesk.fbx", ".fbx"
    if head.startswith(b"ply\n") or head.startswith(b"ply\r\n"):
        return "model/x-ply", ".ply"
    if head.startswith(b"PXR-USDC"):
        return "model/vnd.usd", ".usdc"
    if head.startswith(b"DRACO"):
        return "model/x-draco", ".drc"
    if head.startswith(b"PK\x03\x04"):
        return _sniff_zip(data)

    if _looks_like_text(head):
        found = _sniff_text(head)
        if found:
            return found
        guessed, _ = mimetypes.guess_type(filename) if filename else (None, None)
        if guessed in TEXT_FALLBACK_TYPES:
            return guessed, Path(filename).suffix.lower()
    elif _is_binary_stl(data):
        return "model/stl", ".stl"

    raise AssetSniffError(
        f"No se pudo determinar el tipo de contenido de {filename or '<sin nombre>'} ({len(data)} bytes)"
    )


def load_model_asset(path: str | Path) -> ModelAsset:
    p = Path(path)
    try:
        data = p.read_bytes()
    except OSError as e:
        raise AssetSniffError(f"No se pudo leer el modelo {p}: {e}") from e
    content_type, extension = sniff_content_type(data, p.name)
    print(f"[ASSET] {p.name}: {content_type} ({len(data)} bytes)")
    return ModelAsset(data=data, content_type=content_type, extension=extension, source=str(p))
