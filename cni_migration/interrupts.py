"""Process-wide operator interrupt handling."""

import os
import signal
import threading

from cni_migration.logging_config import get_logger

logger = get_logger(__name__)


class InterruptHandler:
    """Turn SIGINT/SIGTERM/SIGHUP into a cancellation event.

    The first signal sets :attr:`event`, which aborts any in-flight polling.
    Further signals are acknowledged; once ``force_after`` more have arrived
    the process exits immediately.
    """

    def __init__(self, force_after: int = 3):
        self.event = threading.Event()
        self.force_after = force_after
        self.received = 0
        self._previous = {}

    def install(self) -> threading.Event:
        for name in ("SIGINT", "SIGTERM", "SIGHUP"):
            signum = getattr(signal, name, None)
            if signum is not None:
                self._previous[signum] = signal.signal(signum, self.handle)
        return self.event

    def restore(self) -> None:
        """Put back the handlers that were active before :meth:`install`."""
        for signum, previous in self._previous.items():
            if previous is not None:
                signal.signal(signum, previous)
        self._previous.clear()

    def handle(self, signum: int, _frame: object | None) -> None:
        self.received += 1
        name = signal.Signals(signum).name

        if self.received > self.force_after + 1:
            logger.warning(f"Received signal {name}, force closing")
            os._exit(1)

        logger.warning(f"Received signal {name}, shutting down...")
        self.event.set()

    @property
    def interrupted(self) -> bool:
        return self.event.is_set()
