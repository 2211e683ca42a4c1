"""Observer list for status updates published by the replay loop.

The engine and ledger never call out; whoever drives them publishes here.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Observer = Callable[[str, Any], None]


class StatusBroadcaster:
    def __init__(self):
        self._observers: List[Observer] = []

    def __len__(self) -> int:
        return len(self._observers)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register `observer(event, payload)`; returns a function that removes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def notify(self, event: str, payload: Any) -> None:
        # copy so observers may unsubscribe while being notified
        for observer in list(self._observers):
            try:
                observer(event, payload)
            except Exception:
                logger.warning("Observer %r failed on %s event", observer, event, exc_info=True)
