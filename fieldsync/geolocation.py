"""Geolocation: one GPS fix per capture under a fixed two-tier policy.

`GeolocationAcquirer.acquire()` walks `DEFAULT_POLICY` in order. A tier that
fails with a timeout or an unavailable position moves on to the next, more
relaxed tier; any other failure (permission denied) stops immediately. All
failures fold into `None`, the acquirer never raises.

`ReportedFixSource` is the concrete source used by the server: the phone
posts its browser position (or the browser's error) and capture requests
wait on those reports.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional, Sequence
import logging
import threading
import time

from fieldsync.errors import PositionError
from fieldsync.models import Coordinate


@dataclass(frozen=True)
class FixPolicy:
    high_accuracy: bool
    timeout_ms: int
    maximum_age_ms: int


DEFAULT_POLICY = (
    FixPolicy(high_accuracy=True, timeout_ms=20_000, maximum_age_ms=5_000),
    FixPolicy(high_accuracy=False, timeout_ms=20_000, maximum_age_ms=600_000),
)

RETRYABLE_CODES = frozenset({PositionError.TIMEOUT, PositionError.POSITION_UNAVAILABLE})


class GeolocationSource(ABC):
    """Platform capability returning a coordinate or raising `PositionError`."""

    @abstractmethod
    def get_position(self, high_accuracy: bool, timeout_ms: int, maximum_age_ms: int) -> Coordinate:
        raise NotImplementedError


class GeolocationAcquirer:
    def __init__(self, source: Optional[GeolocationSource], policy: Sequence[FixPolicy] = DEFAULT_POLICY):
        self.source = source
        self.policy = tuple(policy)

    def acquire(self) -> Optional[Coordinate]:
        if self.source is None:
            logging.info("No geolocation source configured")
            return None

        for tier, rule in enumerate(self.policy, start=1):
            try:
                coordinate = self.source.get_position(
                    high_accuracy=rule.high_accuracy,
                    timeout_ms=rule.timeout_ms,
                    maximum_age_ms=rule.maximum_age_ms,
                )
            except PositionError as exc:
                if exc.code not in RETRYABLE_CODES:
                    logging.info("Geolocation tier %d failed (%s), not retrying", tier, exc.code)
                    return None
                logging.debug("Geolocation tier %d failed (%s)", tier, exc.code)
                continue
            except Exception:
                logging.exception("Unexpected geolocation failure")
                return None
            if coordinate is not None:
                logging.debug("Geolocation tier %d produced a fix", tier)
                return coordinate

        return None


@dataclass(frozen=True)
class _Report:
    coordinate: Optional[Coordinate]
    error_code: Optional[str]
    received_at: float


class ReportedFixSource(GeolocationSource):
    """Geolocation source fed by position reports pushed from the phone.

    `high_accuracy_limit` is the largest accuracy radius (metres) that
    satisfies a high-accuracy request. A permission denial stays in force
    until a newer position arrives; other reported errors only affect
    requests already waiting when they arrive.
    """

    def __init__(self, high_accuracy_limit: float = 100.0, clock: Callable[[], float] = time.monotonic):
        self.high_accuracy_limit = high_accuracy_limit
        self._clock = clock
        self._cond = threading.Condition()
        self._fix: Optional[_Report] = None
        self._error: Optional[_Report] = None

    def report_position(self, latitude: float, longitude: float, accuracy: Optional[float] = None) -> Coordinate:
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise ValueError("latitude/longitude out of range")
        coordinate = Coordinate(float(latitude), float(longitude), float(accuracy) if accuracy is not None else None)
        with self._cond:
            self._fix = _Report(coordinate, None, self._clock())
            self._error = None
            self._cond.notify_all()
        return coordinate

    def report_error(self, code: str) -> None:
        if code not in PositionError.CODES:
            raise ValueError(f"Unknown position error code: {code}")
        with self._cond:
            self._error = _Report(None, code, self._clock())
            self._cond.notify_all()

    def latest_fix(self) -> Optional[Coordinate]:
        with self._cond:
            return self._fix.coordinate if self._fix else None

    def _usable(self, fix: Optional[_Report], high_accuracy: bool, maximum_age: float, now: float) -> bool:
        if fix is None or now - fix.received_at > maximum_age:
            return False
        if high_accuracy and fix.coordinate.accuracy is not None:
            return fix.coordinate.accuracy <= self.high_accuracy_limit
        return True

    def get_position(self, high_accuracy: bool, timeout_ms: int, maximum_age_ms: int) -> Coordinate:
        maximum_age = maximum_age_ms / 1000.0
        started = self._clock()
        deadline = started + timeout_ms / 1000.0
        with self._cond:
            while True:
                now = self._clock()
                if self._usable(self._fix, high_accuracy, maximum_age, now):
                    return self._fix.coordinate
                error = self._error
                if error is not None:
                    if error.error_code == PositionError.PERMISSION_DENIED:
                        raise PositionError(PositionError.PERMISSION_DENIED, "Location permission denied")
                    if error.received_at >= started:
                        raise PositionError(error.error_code)
                remaining = deadline - now
                if remaining <= 0:
                    raise PositionError(PositionError.TIMEOUT, "Timed out waiting for a position")
                self._cond.wait(remaining)
