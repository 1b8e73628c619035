from __future__ import annotations

import io
import struct
import zipfile
from pathlib import Path

import pytest

from previewer.assets.sniff import load_model_asset, sniff_content_type
from previewer.errors import AssetSniffError


def _zip(names: list[str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name in names:
            zf.writestr(name, b"data")
    return buf.getvalue()


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"glTF\x02\x00\x00\x00" + b"\x00" * 64, ("model/gltf-binary", ".glb")),
        (b"Kaydara FBX Binary  \x00\x1a\x00", ("application/vnd.autodesk.fbx", ".fbx")),
        (b"ply\nformat ascii 1.0\nend_header\n", ("model/x-ply", ".ply")),
        (b'{"asset": {"version": "2.0"}, "scenes": []}', ("model/gltf+json", ".gltf")),
        (b"solid cube\n facet normal 0 0 1\n endfacet\nendsolid", ("model/stl", ".stl")),
        (b"# exported\nv 0 0 0\nv 1 0 0\nv 0 1 0\nf 1 2 3\n", ("model/obj", ".obj")),
        (b'<?xml version="1.0"?><COLLADA version="1.4.1"></COLLADA>', ("model/vnd.collada+xml", ".dae")),
    ],
)
def test_sniff_known_signatures(data: bytes, expected: tuple[str, str]) -> None:
    assert sniff_content_type(data, "whatever.bin") == expected


def test_sniff_binary_stl_by_length() -> None:
    triangles = 2
    data = b"\x01" * 80 + struct.pack("<I", triangles) + b"\x00" * (50 * triangles)
    assert sniff_content_type(data) == ("model/stl", ".stl")


def test_sniff_zip_containers() -> None:
    assert sniff_content_type(_zip(["3D/3dmodel.model", "[Content_Types].xml"])) == ("model/3mf", ".3mf")
    assert sniff_content_type(_zip(["scene.usdc", "tex.png"])) == ("model/vnd.usdz+zip", ".usdz")


def test_sniff_empty_payload_fails() -> None:
    with pytest.raises(AssetSniffError):
        sniff_content_type(b"", "model.glb")


def test_sniff_binary_garbage_ignores_extension() -> None:
    with pytest.raises(AssetSniffError):
        sniff_content_type(b"\x00\xff\x13\x37" * 100, "model.glb")


def test_sniff_text_falls_back_to_extension_for_text_formats() -> None:
    assert sniff_content_type(b"mtllib scene.mtl\n", "scene.obj")[0] == "model/obj"
    assert sniff_content_type(b"just some words\n", "notes.obj") == ("model/obj", ".obj")
    with pytest.raises(AssetSniffError):
        sniff_content_type(b"just some words\n", "notes.txt")


def test_load_model_asset_reads_file(tmp_path: Path) -> None:
    path = tmp_path / "duck.glb"
    payload = b"glTF" + b"\x00" * 1020
    path.write_bytes(payload)
    asset = load_model_asset(path)
    assert asset.data == payload
    assert asset.size == 1024
    assert asset.content_type == "model/gltf-binary"
    assert asset.extension == ".glb"


def test_load_model_asset_missing_file(tmp_path: Path) -> None:
    with pytest.raises(AssetSniffError):
        load_model_asset(tmp_path / "nope.glb")
