from __future__ import annotations

import threading

from .errors import ConversionCancelled


class CancelToken:
    """Thread-safe cancellation flag checked by the pipeline between steps."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            msg = self.reason or "cancelled"
            if where:
                msg = f"{msg} (before {where})"
            raise ConversionCancelled(msg)
