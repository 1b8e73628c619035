# protocolo de finalización: carga -> quietud de red -> señal -> polling -> captura

from __future__ import annotations
import sys
import time
from enum import Enum
from dataclasses import dataclass
from typing import Any, Callable, List, Optional
from urllib.parse import quote

from previewer.browser.diagnostics import DiagnosticAggregator
from previewer.config import Settings
from previewer.errors import (
    FatalRenderError,
    NavigationError,
    PreviewError,
    RenderTimeoutError,
)
from previewer.net.monitor import NetworkMonitor
from previewer.state import RenderSession

MEGABYTE = 1024 * 1024
PUMP_INTERVAL_SEC = 0.1
IDLE_CHECK_SEC = 0.05

SIGNAL_RENDER_JS = "window._renderStarted = true;"
CHECK_FINISHED_JS = "return !!window._renderFinished;"


class AttemptState(str, Enum):
    INIT = "init"
    LOADING = "loading"
    NETWORK_SETTLING = "network_settling"
    RENDER_SIGNALED = "render_signaled"
    POLLING = "polling"
    CAPTURED = "captured"
    DONE = "done"
    FAILED = "failed"


class PollOutcome(str, Enum):
    SIGNALED = "signaled"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    elapsed: float
    error: Optional[BaseException] = None


def settle_delay(transferred_bytes: int, sec_per_mb: float) -> float:
    """Pausa antes de señalar el render: proporcional a los MiB transferidos."""
    return max(0, transferred_bytes) / MEGABYTE * max(0.0, sec_per_mb)


def wait_for_flag(check: Callable[[], Any], timeout_sec: float, interval_sec: float,
                  clock: Callable[[], float] = time.monotonic,
                  sleep: Callable[[float], None] = time.sleep,
                  on_tick: Optional[Callable[[], None]] = None) -> PollResult:
    """
    Consulta check() cada interval_sec hasta que devuelva algo verdadero.
    timeout_sec <= 0 -> sin límite. Las excepciones de check() nunca se
    confunden con el timeout: salen como PollOutcome.ERROR.
    """
    start = clock()
    while True:
        try:
            if check():
                return PollResult(PollOutcome.SIGNALED, clock() - start)
        except Exception as e:
            return PollResult(PollOutcome.ERROR, clock() - start, e)

        elapsed = clock() - start
        if timeout_sec > 0 and elapsed > timeout_sec:
            return PollResult(PollOutcome.TIMED_OUT, elapsed)

        if on_tick is not None:
            on_tick()
        sleep(interval_sec)


class RenderAttempt:
    """
    Máquina de estados de un intento:
      INIT -> LOADING -> NETWORK_SETTLING -> RENDER_SIGNALED -> POLLING -> CAPTURED -> DONE
    Cualquier fallo fatal termina en FAILED y se propaga tipado.
    """
    def __init__(self, engine, session: RenderSession, settings: Settings,
                 monitor: NetworkMonitor, aggregator: DiagnosticAggregator,
                 delivery=None,
                 injection: Optional[str] = None,
                 clean_page: Optional[str] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.engine = engine
        self.session = session
        self.settings = settings
        self.monitor = monitor
        self.aggregator = aggregator
        self.delivery = delivery
        self.injection = injection
        self.clean_page = clean_page
        self.clock = clock
        self.sleep = sleep

        self.state = AttemptState.INIT
        self.history: List[AttemptState] = [AttemptState.INIT]
        self.settle_delay_sec = 0.0
        self.poll_result: Optional[PollResult] = None
        self._last_pump = float("-inf")

    @property
    def file(self) -> str:
        return self.settings.HARNESS_FILE

    @property
    def url(self) -> str:
        # el harness lee la ruta lógica del modelo de ?model=
        model = quote(self.settings.MODEL_PATH, safe="")
        return f"{self.session.base_url}/{self.file}.html?model={model}"

    def _transition(self, new_state: AttemptState) -> None:
        self.state = new_state
        self.history.append(new_state)
        print(f"[RENDER] -> {new_state.value}")

    # -------- eventos del navegador --------

    def pump(self) -> None:
        """Vuelca consola y red acumuladas hacia el agregador/monitor."""
        self.aggregator.on_console_batch(self.engine.drain_console())
        self.monitor.feed(self.engine.drain_network())
        self._last_pump = self.clock()

    def _maybe_pump(self) -> None:
        if self.clock() - self._last_pump >= PUMP_INTERVAL_SEC:
            self.pump()

    # -------- fases --------

    def run(self, on_capture: Callable[[bytes], Any]) -> Any:
        """Ejecuta el intento completo. on_capture recibe el PNG crudo."""
        try:
            self._load()
            self._settle_network()
            self._signal_render()
            self._poll_render()
            png = self._capture()
            result = on_capture(png)
            self._transition(AttemptState.DONE)
            return result
        except BaseException:
            if self.state is not AttemptState.FAILED:
                self._transition(AttemptState.FAILED)
            raise

    def _load(self) -> None:
        self.session.reset_attempt()
        self.monitor.reset()
        if self.injection:
            self.engine.add_init_script(self.injection)

        self._transition(AttemptState.LOADING)
        try:
            self.engine.navigate(self.url, self.settings.network_timeout_sec)
        except Exception as e:
            raise NavigationError(f"Error happened while loading file {self.file}: {e}") from e

        if self.clean_page:
            try:
                self.engine.run_script(self.clean_page)
            except Exception as e:
                raise FatalRenderError(f"Error happened while rendering file {self.file}: {e}") from e

    def _settle_network(self) -> None:
        self._transition(AttemptState.NETWORK_SETTLING)
        idle = self.settings.IDLE_TIME_SEC
        timeout = self.settings.network_timeout_sec
        start = self.clock()
        try:
            while True:
                self.pump()
                if self.monitor.idle_for() >= idle:
                    break
                if timeout > 0 and self.clock() - start > timeout:
                    raise FatalRenderError(
                        f"Error happened while rendering file {self.file}: "
                        f"network not idle after {timeout:.0f}s ({len(self.monitor.inflight)} requests in flight)"
                    )
                self.sleep(IDLE_CHECK_SEC)
        except PreviewError:
            raise
        except Exception as e:
            raise FatalRenderError(f"Error happened while rendering file {self.file}: {e}") from e
        finally:
            # el temporal ya no hace falta (o el intento murió): fuera
            if self.delivery is not None:
                self.delivery.release_temporary()

        print(f"[NET] Red en reposo ({self.session.transferred_bytes} bytes transferidos)")

    def _signal_render(self) -> None:
        self.settle_delay_sec = settle_delay(self.session.transferred_bytes, self.settings.PARSE_TIME_SEC_PER_MB)
        if self.settle_delay_sec > 0:
            print(f"[RENDER] Esperando {self.settle_delay_sec:.2f}s de parseo")
            self.sleep(self.settle_delay_sec)
        try:
            self.engine.run_script(SIGNAL_RENDER_JS)
        except Exception as e:
            raise FatalRenderError(f"Error happened while rendering file {self.file}: {e}") from e
        self._transition(AttemptState.RENDER_SIGNALED)

    def _poll_render(self) -> None:
        self._transition(AttemptState.POLLING)
        result = wait_for_flag(
            lambda: self.engine.run_script(CHECK_FINISHED_JS),
            timeout_sec=self.settings.RENDER_TIMEOUT_SEC,
            interval_sec=self.settings.POLL_INTERVAL_MS / 1000.0,
            clock=self.clock,
            sleep=self.sleep,
            on_tick=self._maybe_pump,
        )
        self.poll_result = result

        if result.outcome is PollOutcome.ERROR:
            raise FatalRenderError(
                f"Error happened while rendering file {self.file}: {result.error}"
            ) from result.error
        if result.outcome is PollOutcome.TIMED_OUT:
            # algunas escenas nunca avisan; se captura igualmente
            warn = RenderTimeoutError(f"Render timeout exceeded in file {self.file} ({result.elapsed:.2f}s)")
            print(f"[RENDER][WARN] {warn}", file=sys.stderr)
        self._transition(AttemptState.CAPTURED)

    def _capture(self) -> bytes:
        try:
            png = self.engine.screenshot_png()
        except Exception as e:
            raise FatalRenderError(f"Error happened while capturing file {self.file}: {e}") from e
        self.pump()
        if self.session.terminal_error is not None:
            raise FatalRenderError(self.session.terminal_error)
        return png
