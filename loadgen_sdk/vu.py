"""
Virtual User Loop - one simulated client running iterations back to back.
"""

import random
import threading
from typing import TYPE_CHECKING, Any, Optional

from loadgen_sdk.common.logger import get_logger
from loadgen_sdk.executor import IterationExecutor, VUState

if TYPE_CHECKING:
    from loadgen_sdk.options import ThinkTime

logger = get_logger(__name__)


class VirtualUser:
    """
    Runs the executor in a loop on its own daemon thread until stopped.

    stop() never interrupts an iteration: the loop checks the stop signal
    between iterations, and a stop during think-time wakes the loop at once.
    """

    def __init__(
        self,
        vu_id: int,
        executor: IterationExecutor,
        context: Any,
        think_time: "ThinkTime",
        rng: Optional[random.Random] = None,
    ):
        self.state = VUState(vu_id=vu_id, rng=rng or random.Random())
        self._executor = executor
        self._context = context
        self._think_time = think_time
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"vu-{vu_id}", daemon=True)

    @property
    def vu_id(self) -> int:
        return self.state.vu_id

    @property
    def iterations(self) -> int:
        return self.state.iteration

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Ask the VU to exit after its current iteration."""
        self._stop_event.set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        logger.debug(f"VU {self.vu_id} started")
        while not self._stop_event.is_set():
            try:
                self._executor.execute(self._context, self.state)
            except Exception:
                # Script errors are already folded into failed results; this
                # only catches faults in metric recording itself.
                logger.exception(f"VU {self.vu_id}: iteration {self.state.iteration} failed outside the script")
            delay = self._think_time.sample(self.state.rng)
            if delay > 0:
                self._stop_event.wait(delay)
        logger.debug(f"VU {self.vu_id} stopped after {self.iterations} iterations")

    def __repr__(self) -> str:
        return f"VirtualUser(id={self.vu_id}, iterations={self.iterations}, stopping={self.stopping})"
