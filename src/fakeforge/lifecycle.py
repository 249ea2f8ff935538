"""
FakeForge Lifecycle

Owns process teardown. Components register their teardown callbacks when
they are constructed; ``shutdown()`` runs them once, in registration order.
"""

import logging
import os
import signal
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger("fakeforge.lifecycle")

SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM", "SIGQUIT")


class Lifecycle:
    """
    Scoped shutdown sequence for one server process.

    Example:
        lifecycle = Lifecycle()
        bus = EventBus(lifecycle=lifecycle)
        lifecycle.install_signal_handlers()
        ...
        lifecycle.shutdown("exit")
    """

    def __init__(self):
        self._callbacks: List[Tuple[str, Callable[[], None]]] = []
        self._previous_handlers = {}
        self._reason: Optional[str] = None

    @property
    def is_shut_down(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def register(self, callback: Callable[[], None], name: Optional[str] = None) -> None:
        """
        Add a teardown callback.

        Args:
            callback: Zero-argument callable
            name: Label used in log output
        """
        label = name or getattr(callback, '__qualname__', repr(callback))
        if self.is_shut_down:
            logger.warning(f"Lifecycle already shut down; running '{label}' immediately")
            self._run(label, callback)
            return
        self._callbacks.append((label, callback))

    def shutdown(self, reason: str = "shutdown") -> bool:
        """
        Run every registered callback once.

        Callback failures are logged and do not stop the remaining callbacks.

        Args:
            reason: Why the process is shutting down (signal name, "exit", ...)

        Returns:
            True if this call performed the shutdown, False if it had already happened
        """
        if self.is_shut_down:
            return False

        self._reason = reason
        logger.info(f"Shutting down ({reason})")
        callbacks, self._callbacks = self._callbacks, []
        for label, callback in callbacks:
            self._run(label, callback)
        return True

    def install_signal_handlers(self) -> List[str]:
        """
        Shut down on SIGINT, SIGTERM and SIGQUIT where the platform has them.

        Previously installed handlers are called after the shutdown sequence.
        Where the previous disposition was the default one, the signal is
        re-delivered with it, so the process still terminates. Ignored
        signals stay ignored after shutdown.

        Returns:
            Names of the signals that were attached
        """
        attached = []
        for name in SHUTDOWN_SIGNALS:
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            try:
                self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
            except (ValueError, OSError) as e:
                # Not on the main thread, or not supported here
                logger.debug(f"Could not attach {name}: {e}")
                continue
            attached.append(name)
        return attached

    def restore_signal_handlers(self) -> None:
        for signum, previous in self._previous_handlers.items():
            if previous is not None:
                signal.signal(signum, previous)
        self._previous_handlers.clear()

    def _handle_signal(self, signum, frame) -> None:
        self.shutdown(signal.Signals(signum).name)
        if signum not in self._previous_handlers:
            return
        previous = self._previous_handlers[signum]
        if callable(previous):
            previous(signum, frame)
        elif previous in (signal.SIG_DFL, None):
            # Re-deliver with the default disposition so the process exits
            self.restore_signal_handlers()
            signal.signal(signum, signal.SIG_DFL)
            os.kill(os.getpid(), signum)

    @staticmethod
    def _run(label: str, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception as e:
            logger.error(f"Teardown step '{label}' failed: {e}")
