"""Capture session: one anchor capture attempt from submit to saved anchor.

Fallback chain once the label validates:

1. acquire a fix; if one arrives, save it with the anchor;
2. otherwise reuse the coordinate of the owner's most recent anchor, marking
   the note, if that anchor has one;
3. otherwise save nothing and move to the error state. The user may retry
   or call `save_without_location()`.

Only one attempt may be in flight per session.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional
import logging
import threading

from fieldsync.errors import (
    OverrideNotAllowedError,
    SessionBusyError,
    UnresolvedLocationError,
    ValidationError,
)
from fieldsync.geolocation import GeolocationAcquirer
from fieldsync.models import (
    IDLE,
    LOCATING,
    AnchorFields,
    CaptureState,
    Error,
    Success,
)
from fieldsync.resolver import latest_anchor
from fieldsync.store import PersistenceGateway

EMPTY_LABEL_MESSAGE = "Enter the trailing digits from your camera file name."
UNRESOLVED_MESSAGE = 'Could not get your location. Try again or tap "Save without GPS" to keep the frame.'
SAVE_FAILED_MESSAGE = "Could not save this anchor. Please try again."
CONFIRM_CLEAR_MESSAGE = "Confirm before deleting every saved anchor."

REUSED_NOTE = "Reused previous location"
REUSED_SUFFIX = "(reused previous location)"

_TRANSITIONS = {
    "idle": {"locating", "error"},
    "locating": {"success", "error"},
    "success": {"idle", "locating", "error"},
    "error": {"idle", "locating", "error"},
}

StateListener = Callable[[CaptureState], None]


def reused_note(note: str) -> str:
    note = (note or "").strip()
    return f"{note} {REUSED_SUFFIX}" if note else REUSED_NOTE


@dataclass(frozen=True)
class CaptureRequest:
    label: str
    note: str = ""
    camera_id: Optional[str] = None

    def fields(self, coordinate=None, note: Optional[str] = None) -> AnchorFields:
        text = self.note if note is None else note
        return AnchorFields(
            label=self.label,
            coordinate=coordinate,
            note=text.strip() or None,
            camera_id=self.camera_id or None,
        )


class CaptureSessionController:
    def __init__(self, owner_id: str, gateway: PersistenceGateway, acquirer: GeolocationAcquirer):
        self.owner_id = owner_id
        self.gateway = gateway
        self.acquirer = acquirer
        self._lock = threading.RLock()
        self._state: CaptureState = IDLE
        self._pending: Optional[CaptureRequest] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> CaptureState:
        with self._lock:
            return self._state

    @property
    def can_save_without_location(self) -> bool:
        with self._lock:
            return isinstance(self._state, Error) and self._pending is not None

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _transition(self, new_state: CaptureState) -> CaptureState:
        with self._lock:
            if new_state.status not in _TRANSITIONS[self._state.status]:
                raise RuntimeError(f"Invalid capture transition {self._state.status} -> {new_state.status}")
            logging.debug("Capture state for %s: %s -> %s", self.owner_id, self._state.status, new_state.status)
            self._state = new_state
            for listener in list(self._listeners):
                try:
                    listener(new_state)
                except Exception:
                    logging.exception("Capture state listener failed")
            return new_state

    def _fail(self, message: str, reason: str) -> CaptureState:
        return self._transition(Error(message=message, reason=reason))

    def reset(self) -> CaptureState:
        """Return to idle, e.g. after the form is cleared. No-op while locating."""
        with self._lock:
            if self._state.status in ("idle", "locating"):
                return self._state
            self._pending = None
            return self._transition(IDLE)

    def begin_submit(self, label: str, note: str = "", camera_id: Optional[str] = None) -> CaptureRequest:
        """Validate input and enter `locating`. Raises before any acquisition."""
        with self._lock:
            if self._state.status == "locating":
                raise SessionBusyError("A capture is already in progress")
            if label is not None and not isinstance(label, str):
                raise ValidationError("label must be text")
            label = (label or "").strip()
            if not label:
                self._pending = None
                self._fail(EMPTY_LABEL_MESSAGE, "validation")
                raise ValidationError(EMPTY_LABEL_MESSAGE)
            if note is not None and not isinstance(note, str):
                raise ValidationError("note must be text")
            request = CaptureRequest(label=label, note=(note or "").strip(), camera_id=camera_id or None)
            self._pending = request
            self._transition(LOCATING)
            return request

    def run_capture(self, request: CaptureRequest) -> CaptureState:
        coordinate = self.acquirer.acquire()
        try:
            if coordinate is not None:
                fields = request.fields(coordinate)
            else:
                fields = self._fallback_fields(request)
            anchor_id = self.gateway.append(self.owner_id, fields)
        except UnresolvedLocationError as exc:
            logging.info("No location for %s and nothing to reuse", request.label)
            return self._fail(str(exc), "unresolved_location")
        except Exception:
            logging.exception("Failed to save anchor %s", request.label)
            return self._fail(SAVE_FAILED_MESSAGE, "persistence")
        with self._lock:
            self._pending = None
            return self._transition(Success(anchor_id=anchor_id))

    def _fallback_fields(self, request: CaptureRequest) -> AnchorFields:
        # re-read the store so the reused location is the true latest anchor
        previous = latest_anchor(self.gateway.list_anchors(self.owner_id))
        if previous is None or previous.coordinate is None:
            raise UnresolvedLocationError(UNRESOLVED_MESSAGE)
        logging.info("Reusing location of anchor %s for %s", previous.id, request.label)
        return request.fields(previous.coordinate, note=reused_note(request.note))

    def submit(self, label: str, note: str = "", camera_id: Optional[str] = None) -> CaptureState:
        return self.run_capture(self.begin_submit(label, note, camera_id))

    def begin_override(self) -> CaptureRequest:
        with self._lock:
            if not isinstance(self._state, Error) or self._pending is None:
                raise OverrideNotAllowedError("Saving without GPS is only possible after a failed capture")
            request = self._pending
            self._transition(LOCATING)
            return request

    def run_override(self, request: CaptureRequest) -> CaptureState:
        try:
            anchor_id = self.gateway.append(self.owner_id, request.fields(None))
        except Exception:
            logging.exception("Failed to save anchor %s without location", request.label)
            return self._fail(SAVE_FAILED_MESSAGE, "persistence")
        with self._lock:
            self._pending = None
            return self._transition(Success(anchor_id=anchor_id))

    def save_without_location(self) -> CaptureState:
        return self.run_override(self.begin_override())

    def clear_all(self, confirm: bool = False) -> int:
        """Delete every anchor of this owner. Requires explicit confirmation."""
        if not confirm:
            raise ValidationError(CONFIRM_CLEAR_MESSAGE)
        return self.gateway.delete_all(self.owner_id)
