# navegador (Chrome/Edge vía Selenium) que aloja el harness

from __future__ import annotations
import base64
import sys
from typing import Any, List

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.chrome.service import Service as ChromeService
from selenium.webdriver.edge.options import Options as EdgeOptions
from selenium.webdriver.edge.service import Service as EdgeService
from webdriver_manager.chrome import ChromeDriverManager
from webdriver_manager.microsoft import EdgeChromiumDriverManager

from previewer.config import Settings

_LOGGING_PREFS = {"browser": "ALL", "performance": "ALL"}


class RenderEngine:
    """
    Envoltorio mínimo sobre WebDriver: solo lo que necesita el protocolo
    (navegar, scripts, logs de consola/red, captura y cierre).
    """
    def __init__(self, driver, viewport: tuple[int, int]):
        self.driver = driver
        self.viewport = viewport

    # -------- arranque --------

    @classmethod
    def launch(cls, settings: Settings) -> "RenderEngine":
        width, height = settings.viewport
        browser = settings.SELENIUM_BROWSER.lower()

        if browser == "edge":
            opts = EdgeOptions()
            opts.set_capability("ms:loggingPrefs", _LOGGING_PREFS)
        else:
            opts = ChromeOptions()
            opts.set_capability("goog:loggingPrefs", _LOGGING_PREFS)

        if not settings.VISIBLE:
            opts.add_argument("--headless=new")
        opts.add_argument("--no-sandbox")
        opts.add_argument(f"--window-size={width},{height}")
        for flag in settings.BROWSER_FLAGS:
            opts.add_argument(flag)

        if browser == "edge":
            driver = webdriver.Edge(service=EdgeService(EdgeChromiumDriverManager().install()), options=opts)
        else:
            driver = webdriver.Chrome(service=ChromeService(ChromeDriverManager().install()), options=opts)

        engine = cls(driver, (width, height))
        try:
            # viewport exacto (la ventana incluye bordes en modo visible)
            driver.execute_cdp_cmd("Emulation.setDeviceMetricsOverride", {
                "width": width,
                "height": height,
                "deviceScaleFactor": 1,
                "mobile": False,
            })
        except BaseException:
            # también ante Ctrl-C/SIGTERM: no dejar el navegador huérfano
            try:
                engine.quit()
            except Exception as e:
                print(f"[BROWSER][WARN] No se pudo cerrar tras fallo de arranque: {e}", file=sys.stderr)
            raise
        print(f"[BROWSER] {browser} listo (viewport={width}x{height}, visible={settings.VISIBLE})")
        return engine

    # -------- página --------

    def add_init_script(self, source: str) -> None:
        """Script evaluado en cada documento nuevo antes que los del harness."""
        self.driver.execute_cdp_cmd("Page.addScriptToEvaluateOnNewDocument", {"source": source})

    def navigate(self, url: str, timeout_sec: float) -> None:
        """Navega y espera al evento load. timeout_sec=0 -> sin límite."""
        if timeout_sec > 0:
            self.driver.set_page_load_timeout(timeout_sec)
        else:
            # WebDriver no admite 'infinito'; un día basta
            self.driver.set_page_load_timeout(86400)
        self.driver.get(url)

    def run_script(self, script: str, *args: Any) -> Any:
        return self.driver.execute_script(script, *args)

    # -------- eventos --------

    def drain_console(self) -> List[dict]:
        return self._drain("browser")

    def drain_network(self) -> List[dict]:
        return self._drain("performance")

    def _drain(self, kind: str) -> List[dict]:
        try:
            return list(self.driver.get_log(kind))
        except WebDriverException as e:
            print(f"[BROWSER][WARN] get_log({kind}) falló: {e.msg}", file=sys.stderr)
            return []

    # -------- captura --------

    def screenshot_png(self) -> bytes:
        """Captura del viewport con fondo transparente."""
        self.driver.execute_cdp_cmd("Emulation.setDefaultBackgroundColorOverride", {
            "color": {"r": 0, "g": 0, "b": 0, "a": 0},
        })
        try:
            result = self.driver.execute_cdp_cmd("Page.captureScreenshot", {
                "format": "png",
                "captureBeyondViewport": False,
            })
        finally:
            self.driver.execute_cdp_cmd("Emulation.setDefaultBackgroundColorOverride", {})
        return base64.b64decode(result["data"])

    # -------- cierre --------

    def quit(self) -> None:
        driver, self.driver = self.driver, None
        if driver is not None:
            driver.quit()
            print("[BROWSER] Cerrado.")

