"""Data model: coordinates, anchors and the capture state machine."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude, "accuracy": self.accuracy}

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["Coordinate"]:
        if not raw:
            return None
        lat = raw.get("latitude")
        lon = raw.get("longitude")
        if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
            return None
        acc = raw.get("accuracy")
        return cls(float(lat), float(lon), float(acc) if isinstance(acc, (int, float)) else None)


@dataclass(frozen=True)
class AnchorFields:
    """Caller-supplied part of an anchor; the store assigns the rest."""
    label: str
    coordinate: Optional[Coordinate] = None
    note: Optional[str] = None
    camera_id: Optional[str] = None


@dataclass(frozen=True)
class Anchor:
    """One logged location event. Immutable once created."""
    id: str
    owner_id: str
    created_at: datetime
    label: str
    coordinate: Optional[Coordinate] = None
    note: Optional[str] = None
    camera_id: Optional[str] = None
    # store-assigned insertion sequence, breaks ties on created_at
    seq: int = 0

    @property
    def has_location(self) -> bool:
        return self.coordinate is not None

    @property
    def sort_key(self):
        return (self.created_at, self.seq)

    def to_record(self) -> Dict[str, Any]:
        # coordinate is written as an explicit null when absent
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat(),
            "seq": self.seq,
            "label": self.label,
            "coordinate": self.coordinate.to_dict() if self.coordinate else None,
            "note": self.note,
            "camera_id": self.camera_id,
        }

    @classmethod
    def from_record(cls, raw: Dict[str, Any]) -> "Anchor":
        label = raw.get("label")
        return cls(
            id=str(raw["id"]),
            owner_id=str(raw["owner_id"]),
            created_at=as_utc(datetime.fromisoformat(raw["created_at"])),
            label=label if isinstance(label, str) and label else "Untitled file",
            coordinate=Coordinate.from_dict(raw.get("coordinate")),
            note=raw.get("note") if isinstance(raw.get("note"), str) else None,
            camera_id=raw.get("camera_id") if isinstance(raw.get("camera_id"), str) else None,
            seq=int(raw.get("seq") or 0),
        )


# Capture state machine: idle | locating | success | error(message)

@dataclass(frozen=True)
class CaptureState:
    status = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status}


@dataclass(frozen=True)
class Idle(CaptureState):
    status = "idle"


@dataclass(frozen=True)
class Locating(CaptureState):
    status = "locating"


@dataclass(frozen=True)
class Success(CaptureState):
    status = "success"
    anchor_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "anchor_id": self.anchor_id}


@dataclass(frozen=True)
class Error(CaptureState):
    status = "error"
    message: str = ""
    reason: str = field(default="unknown", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "message": self.message, "reason": self.reason}


IDLE = Idle()
LOCATING = Locating()
