"""Live, newest-first view of one owner's anchors."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Tuple
import logging
import threading

from fieldsync.models import Anchor
from fieldsync.resolver import Resolution, latest_anchor, resolve
from fieldsync.store import PersistenceGateway, Subscription

Listener = Callable[[Tuple[Anchor, ...]], None]


class AnchorLog:
    """Subscribes to the gateway between `start()` and `stop()`.

    A failing subscription leaves the log empty rather than raising, so the
    rest of the surface keeps working.
    """

    def __init__(self, gateway: PersistenceGateway, owner_id: str):
        self.gateway = gateway
        self.owner_id = owner_id
        self._lock = threading.Lock()
        self._anchors: Tuple[Anchor, ...] = ()
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Listener] = []
        self.failed = False

    @property
    def anchors(self) -> Tuple[Anchor, ...]:
        with self._lock:
            return self._anchors

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> "AnchorLog":
        if self.running:
            return self
        try:
            self._subscription = self.gateway.subscribe(self.owner_id, self._on_snapshot, self._on_error)
        except Exception as exc:
            self._on_error(exc)
        return self

    def stop(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _on_snapshot(self, anchors: List[Anchor]) -> None:
        snapshot = tuple(anchors)
        with self._lock:
            self._anchors = snapshot
            self.failed = False
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logging.exception("Anchor log listener failed")

    def _on_error(self, exc: Exception) -> None:
        logging.warning("Anchor subscription for %s failed: %s", self.owner_id, exc)
        with self._lock:
            self._anchors = ()
            self.failed = True

    def latest(self) -> Optional[Anchor]:
        return latest_anchor(self.anchors)

    def resolve(self, target_time: datetime) -> Resolution:
        return Resolution(target_time, resolve(self.anchors, target_time))
