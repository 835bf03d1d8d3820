"""Anchor persistence: the gateway interface and a JSON file backed store.

The store owns `id`, `created_at` and the insertion sequence. Records are
only ever appended or bulk-deleted per owner; there is no update path.
Subscribers receive the owner's full anchor list, newest first, on
subscribe and after every change.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional
import json
import logging
import os
import threading
import uuid

from fieldsync.errors import PersistenceFailure
from fieldsync.models import Anchor, AnchorFields, utc_now

SnapshotCallback = Callable[[List[Anchor]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle returned by `subscribe`. `unsubscribe()` may be called repeatedly."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._lock = threading.Lock()
        self.active = True

    def unsubscribe(self) -> None:
        with self._lock:
            if not self.active:
                return
            self.active = False
        self._cancel()


class PersistenceGateway(ABC):
    """Append/list/delete anchors for an owner, with live subscriptions."""

    @abstractmethod
    def append(self, owner_id: str, fields: AnchorFields) -> str:
        raise NotImplementedError

    @abstractmethod
    def list_anchors(self, owner_id: str) -> List[Anchor]:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, owner_id: str, callback: SnapshotCallback,
                  on_error: Optional[ErrorCallback] = None) -> Subscription:
        raise NotImplementedError

    @abstractmethod
    def delete_all(self, owner_id: str) -> int:
        raise NotImplementedError


class JsonAnchorStore(PersistenceGateway):
    """Anchor store persisted to a single JSON file (in memory when `path` is None)."""

    def __init__(self, path: Optional[Path] = None, clock: Callable[[], datetime] = utc_now):
        self.path = Path(path) if path else None
        self._clock = clock
        self._lock = threading.RLock()
        self._records: Dict[str, List[dict]] = {}
        self._seq = 0
        self._last_created: Optional[datetime] = None
        self._subscribers: Dict[str, Dict[int, tuple]] = {}
        self._next_token = 0
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(f"Could not read anchor store {self.path}: {exc}") from exc
        for owner_id, records in (raw.get("owners") or {}).items():
            if isinstance(records, list):
                self._records[owner_id] = [r for r in records if isinstance(r, dict)]
        self._seq = int(raw.get("seq") or 0)
        last = raw.get("last_created_at")
        self._last_created = datetime.fromisoformat(last) if last else None

    def _save(self) -> None:
        if self.path is None:
            return
        payload = {
            "seq": self._seq,
            "last_created_at": self._last_created.isoformat() if self._last_created else None,
            "owners": self._records,
        }
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise PersistenceFailure(f"Could not write anchor store {self.path}: {exc}") from exc

    def _next_created_at(self) -> datetime:
        now = self._clock()
        # never step backwards, even if the wall clock does
        if self._last_created is not None and now < self._last_created:
            now = self._last_created
        return now

    def _snapshot(self, owner_id: str) -> List[Anchor]:
        anchors = []
        for record in self._records.get(owner_id, []):
            try:
                anchors.append(Anchor.from_record(record))
            except (KeyError, ValueError, TypeError):
                logging.warning("Skipping malformed anchor record for %s: %r", owner_id, record.get("id"))
        anchors.sort(key=lambda a: a.sort_key, reverse=True)
        return anchors

    def append(self, owner_id: str, fields: AnchorFields) -> str:
        if not owner_id:
            raise PersistenceFailure("owner id required")
        if not fields.label or not fields.label.strip():
            raise ValueError("anchor label must not be empty")
        with self._lock:
            previous = (self._seq, self._last_created)
            self._seq += 1
            created_at = self._next_created_at()
            anchor = Anchor(
                id=uuid.uuid4().hex,
                owner_id=owner_id,
                created_at=created_at,
                label=fields.label,
                coordinate=fields.coordinate,
                note=fields.note,
                camera_id=fields.camera_id,
                seq=self._seq,
            )
            self._records.setdefault(owner_id, []).append(anchor.to_record())
            self._last_created = created_at
            try:
                self._save()
            except PersistenceFailure:
                self._records[owner_id].pop()
                self._seq, self._last_created = previous
                raise
            logging.info("Anchor %s saved for %s (%s)", anchor.id, owner_id, anchor.label)
        self._publish(owner_id)
        return anchor.id

    def list_anchors(self, owner_id: str) -> List[Anchor]:
        with self._lock:
            return self._snapshot(owner_id)

    def subscribe(self, owner_id: str, callback: SnapshotCallback,
                  on_error: Optional[ErrorCallback] = None) -> Subscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers.setdefault(owner_id, {})[token] = (callback, on_error)
            snapshot = self._snapshot(owner_id)

        def cancel():
            with self._lock:
                self._subscribers.get(owner_id, {}).pop(token, None)

        subscription = Subscription(cancel)
        self._deliver(callback, snapshot, on_error)
        return subscription

    def delete_all(self, owner_id: str) -> int:
        with self._lock:
            removed = self._records.pop(owner_id, [])
            if removed:
                try:
                    self._save()
                except PersistenceFailure:
                    self._records[owner_id] = removed
                    raise
        logging.info("Deleted %d anchors for %s", len(removed), owner_id)
        self._publish(owner_id)
        return len(removed)

    def _publish(self, owner_id: str) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(owner_id, {}).values())
            snapshot = self._snapshot(owner_id)
        for callback, on_error in subscribers:
            self._deliver(callback, list(snapshot), on_error)

    @staticmethod
    def _deliver(callback: SnapshotCallback, snapshot: List[Anchor], on_error: Optional[ErrorCallback]) -> None:
        try:
            callback(snapshot)
        except Exception as exc:
            logging.exception("Anchor subscriber failed")
            if on_error is not None:
                on_error(exc)
