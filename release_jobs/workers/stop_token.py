"""
Stop token for the worker loop.

Set by the controlling side (signal handler, parent thread, test) and
checked by the loop between cycles without blocking.

Dependencies: threading (stdlib)
System role: Out-of-band stop request for the worker
"""

import threading


class StopToken:
    """One-shot, thread-safe stop request."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def request_stop(self, reason: str = "stop requested") -> None:
        """Ask the worker to exit after its current cycle. Later calls are ignored."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def stop_requested(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason
