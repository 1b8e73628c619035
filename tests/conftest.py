from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np
import pytest

from previewer.config import Settings, load_settings
from previewer.render.protocol import CHECK_FINISHED_JS, SIGNAL_RENDER_JS

_ENV_VARS = (
    "IDLE_TIME_SEC", "PARSE_TIME_SEC_PER_MB", "NETWORK_TIMEOUT_MIN", "RENDER_TIMEOUT_SEC",
    "POLL_INTERVAL_MS", "OUTPUT_WIDTH", "OUTPUT_HEIGHT", "VIEW_SCALE", "REJECT_TRANSPARENT",
    "HARNESS_DIR", "HARNESS_FILE", "MODEL_PATH", "REDIRECT_THRESHOLD_MB", "HTTP_LOG",
    "INJECTION_SCRIPT", "CLEAN_PAGE_SCRIPT", "SELENIUM_BROWSER", "VISIBLE", "BROWSER_FLAGS",
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def perf_entry(method: str, **params) -> dict:
    return {
        "level": "INFO",
        "message": json.dumps({"message": {"method": method, "params": params}}),
        "timestamp": 0,
    }


def response_entries(request_id: str, url: str, status: int, nbytes: int) -> List[dict]:
    # nbytes es el cuerpo decodificado; el tamaño en el cable simula gzip + cabeceras
    entries = [
        perf_entry("Network.requestWillBeSent", requestId=request_id, request={"url": url}),
        perf_entry("Network.responseReceived", requestId=request_id, response={"url": url, "status": status}),
    ]
    if nbytes:
        entries.append(perf_entry("Network.dataReceived", requestId=request_id,
                                  dataLength=nbytes, encodedDataLength=nbytes // 3))
    entries.append(perf_entry("Network.loadingFinished", requestId=request_id,
                              encodedDataLength=nbytes // 3 + 250))
    return entries


def console_entry(level: str, text: str, source: str = "console-api") -> dict:
    if source == "console-api":
        message = f"http://127.0.0.1:8000/index.html 12:7 {json.dumps(text)}"
    else:
        message = text
    return {"level": level, "message": message, "source": source, "timestamp": 0}


def make_png(width: int, height: int, visible: bool = True) -> bytes:
    img = np.zeros((height, width, 4), dtype=np.uint8)
    if visible:
        img[height // 4: height * 3 // 4, width // 4: width * 3 // 4] = (40, 120, 200, 255)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()


class FakeEngine:
    """Navegador falso para el protocolo: scripts, logs y captura en memoria."""

    def __init__(self, clock: FakeClock, finish_after: Optional[float] = 0.0,
                 network: Optional[List[dict]] = None, console: Optional[List[dict]] = None,
                 png: Optional[bytes] = None, check_error: Optional[BaseException] = None,
                 nav_error: Optional[BaseException] = None) -> None:
        self.clock = clock
        self.finish_after = finish_after
        self.network = list(network or [])
        self.console = list(console or [])
        self.png = png if png is not None else make_png(800, 800)
        self.check_error = check_error
        self.nav_error = nav_error
        self.urls: List[str] = []
        self.scripts: List[str] = []
        self.init_scripts: List[str] = []
        self.started_at: Optional[float] = None
        self.quit_calls = 0

    def add_init_script(self, source: str) -> None:
        self.init_scripts.append(source)

    def navigate(self, url: str, timeout_sec: float) -> None:
        self.urls.append(url)
        if self.nav_error is not None:
            raise self.nav_error

    def run_script(self, script: str, *args):
        self.scripts.append(script)
        if script == SIGNAL_RENDER_JS:
            self.started_at = self.clock()
            return None
        if script == CHECK_FINISHED_JS:
            if self.check_error is not None:
                raise self.check_error
            if self.finish_after is None or self.started_at is None:
                return False
            return self.clock() - self.started_at >= self.finish_after
        return None

    def drain_console(self) -> List[dict]:
        out, self.console = self.console, []
        return out

    def drain_network(self) -> List[dict]:
        out, self.network = self.network, []
        return out

    def screenshot_png(self) -> bytes:
        return self.png

    def quit(self) -> None:
        self.quit_calls += 1


@pytest.fixture
def harness_dir(tmp_path: Path) -> Path:
    d = tmp_path / "public"
    d.mkdir()
    (d / "index.html").write_text("<!doctype html><title>harness</title>", encoding="utf-8")
    (d / "scene.js").write_text("window._ready = true;", encoding="utf-8")
    return d


@pytest.fixture
def make_settings(monkeypatch, harness_dir: Path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HARNESS_DIR", str(harness_dir))

    def _make(**overrides) -> Settings:
        return dataclasses.replace(load_settings(), **overrides)

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
