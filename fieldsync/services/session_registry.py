"""Thread-safe registry of capture sessions, one per signed-in owner."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional
import logging
import threading

from fieldsync.anchor_log import AnchorLog
from fieldsync.geolocation import ReportedFixSource
from fieldsync.session import CaptureSessionController


@dataclass
class OwnerSession:
    owner_id: str
    controller: CaptureSessionController
    log: AnchorLog
    # position reports from this owner's phone only
    source: ReportedFixSource

    def close(self) -> None:
        self.log.stop()


SessionFactory = Callable[[str], OwnerSession]


class SessionRegistry:
    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._sessions: Dict[str, OwnerSession] = {}
        self._lock = threading.Lock()

    def get_or_create(self, owner_id: str) -> OwnerSession:
        with self._lock:
            session = self._sessions.get(owner_id)
            if session is None:
                session = self._factory(owner_id)
                session.log.start()
                self._sessions[owner_id] = session
                logging.info("Capture session started for %s", owner_id)
            return session

    def get(self, owner_id: str) -> Optional[OwnerSession]:
        with self._lock:
            return self._sessions.get(owner_id)

    def discard(self, owner_id: str) -> bool:
        """Tear down the owner's session (sign-out). Safe to call repeatedly."""
        with self._lock:
            session = self._sessions.pop(owner_id, None)
        if session is None:
            return False
        session.close()
        logging.info("Capture session closed for %s", owner_id)
        return True

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
