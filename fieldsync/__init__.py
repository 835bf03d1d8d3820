"""FieldSync package - anchor capture and resolution for reconciling camera frames with phone GPS fixes."""

from .models import Anchor, AnchorFields, Coordinate, CaptureState
from .resolver import resolve, resolve_location, resolve_frames, anchor_usage
from .geolocation import GeolocationAcquirer, ReportedFixSource
from .store import JsonAnchorStore, PersistenceGateway
from .anchor_log import AnchorLog
from .session import CaptureSessionController

__all__ = [
    "Anchor",
    "AnchorFields",
    "Coordinate",
    "CaptureState",
    "resolve",
    "resolve_location",
    "resolve_frames",
    "anchor_usage",
    "GeolocationAcquirer",
    "ReportedFixSource",
    "JsonAnchorStore",
    "PersistenceGateway",
    "AnchorLog",
    "CaptureSessionController",
]
