from __future__ import annotations

from pathlib import Path

import pytest

from previewer.config import load_settings


def test_defaults(make_settings, harness_dir: Path) -> None:
    s = make_settings()
    assert s.IDLE_TIME_SEC == 9
    assert s.PARSE_TIME_SEC_PER_MB == 6
    assert s.network_timeout_sec == 300
    assert s.RENDER_TIMEOUT_SEC == 5
    assert (s.OUTPUT_WIDTH, s.OUTPUT_HEIGHT) == (400, 400)
    assert s.viewport == (800, 800)
    assert s.redirect_threshold_bytes == 80 * 1024 * 1024
    assert s.MODEL_PATH == "/models/model.glb"
    assert s.HARNESS_DIR == harness_dir
    assert s.BROWSER_FLAGS == ("--hide-scrollbars", "--enable-gpu")
    assert s.REJECT_TRANSPARENT is True
    assert s.INJECTION_SCRIPT is None


def test_env_overrides(make_settings, monkeypatch, tmp_path: Path) -> None:
    script = tmp_path / "inject.js"
    script.write_text("// noop", encoding="utf-8")
    monkeypatch.setenv("RENDER_TIMEOUT_SEC", "0")
    monkeypatch.setenv("VIEW_SCALE", "1,5")
    monkeypatch.setenv("OUTPUT_WIDTH", "300")
    monkeypatch.setenv("OUTPUT_HEIGHT", "200")
    monkeypatch.setenv("MODEL_PATH", "assets/scene.glb")
    monkeypatch.setenv("VISIBLE", "yes")
    monkeypatch.setenv("INJECTION_SCRIPT", str(script))

    s = make_settings()
    assert s.RENDER_TIMEOUT_SEC == 0
    assert s.viewport == (450, 300)
    assert s.MODEL_PATH == "/assets/scene.glb"
    assert s.VISIBLE is True
    assert s.INJECTION_SCRIPT == script


def test_invalid_values_raise(make_settings, monkeypatch) -> None:
    monkeypatch.setenv("IDLE_TIME_SEC", "soon")
    with pytest.raises(ValueError):
        load_settings()
    monkeypatch.setenv("IDLE_TIME_SEC", "1")
    monkeypatch.setenv("OUTPUT_WIDTH", "0")
    with pytest.raises(ValueError):
        load_settings()
