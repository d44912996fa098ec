from __future__ import annotations

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """
    Synchronous publish/subscribe hub.

    notify() calls every subscriber in subscription order on the caller's
    thread. A subscriber that raises is logged and skipped; the rest still run.
    """

    def __init__(self, name: str = "change"):
        self.name = name
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception(f"{self.name} listener {listener!r} failed")

    def __len__(self) -> int:
        return len(self._listeners)
