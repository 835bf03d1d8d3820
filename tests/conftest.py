"""Shared pytest fixtures for the FieldSync test suite."""

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fieldsync.errors import PersistenceFailure, PositionError  # noqa: E402
from fieldsync.geolocation import GeolocationSource  # noqa: E402
from fieldsync.store import JsonAnchorStore  # noqa: E402

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeSource(GeolocationSource):
    """Plays back a list of outcomes: Coordinates are returned, exceptions raised."""

    def __init__(self, outcomes=()):
        self.outcomes = list(outcomes)
        self.calls = []

    def get_position(self, high_accuracy, timeout_ms, maximum_age_ms):
        self.calls.append((high_accuracy, timeout_ms, maximum_age_ms))
        outcome = self.outcomes.pop(0) if self.outcomes else PositionError(PositionError.TIMEOUT)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeAcquirer:
    """Returns a fixed result; can block on `gate` to hold a capture in flight."""

    def __init__(self, result=None, gate=None):
        self.result = result
        self.gate = gate
        self.started = threading.Event()
        self.calls = 0

    def acquire(self):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        return self.result


class RecordingStore(JsonAnchorStore):
    def __init__(self, *args, fail_appends=False, fail_lists=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.appended = []
        self.fail_appends = fail_appends
        self.fail_lists = fail_lists

    def append(self, owner_id, fields):
        if self.fail_appends:
            raise PersistenceFailure("store offline")
        self.appended.append(fields)
        return super().append(owner_id, fields)

    def list_anchors(self, owner_id):
        if self.fail_lists:
            raise PersistenceFailure("store offline")
        return super().list_anchors(owner_id)


class SteppingClock:
    """UTC clock advancing a fixed step on every call."""

    def __init__(self, start=T0, step=timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current = self.current + self.step
        return value


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def store(clock):
    return RecordingStore(clock=clock)
