"""
Repeating timer that drives session ticks.
"""

import threading
from typing import Callable


class RepeatingTimer:
    """Calls ``callback`` every ``interval`` seconds on one daemon thread.

    A timer runs at most once; ``cancel`` stops it for good. Owners create a
    new timer to restart ticking.
    """

    def __init__(self, interval: float, callback: Callable[[], None]):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.callback = callback
        self._cancelled = threading.Event()
        self._thread = threading.Thread(target=self._run, name="session-tick", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._cancelled.is_set()

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            self.callback()


class ManualTimer:
    """Timer that never fires on its own; the owner calls ``tick()`` itself.

    Used for simulations and tests where time is driven explicitly.
    """

    def __init__(self, interval: float, callback: Callable[[], None]):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def is_running(self) -> bool:
        return self.started and not self.cancelled

    def fire(self) -> None:
        """Invoke the callback once, as a real timer would each interval."""
        if self.is_running:
            self.callback()
