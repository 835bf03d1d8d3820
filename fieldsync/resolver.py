"""Resolver: which anchor governs a frame captured at a given time.

An anchor governs every frame captured after it until the next anchor is
logged. Anchors are expected newest-first (the store's order) and that
order is authoritative, ties on `created_at` included.

If the governing anchor has no coordinate the frame's location is
unavailable. The resolver never looks further back for an older anchor that
happens to carry one.
"""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .models import Anchor, Coordinate, as_utc


@dataclass(frozen=True)
class Resolution:
    target_time: datetime
    anchor: Optional[Anchor]

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return self.anchor.coordinate if self.anchor else None

    @property
    def status(self) -> str:
        if self.anchor is None:
            return "unanchored"
        return "located" if self.anchor.coordinate else "unavailable"


def latest_anchor(anchors: Sequence[Anchor]) -> Optional[Anchor]:
    return anchors[0] if anchors else None


def resolve(anchors: Iterable[Anchor], target_time: datetime) -> Optional[Anchor]:
    """Return the newest anchor with `created_at <= target_time`, or None."""
    target = as_utc(target_time)
    for anchor in anchors:
        if anchor.created_at <= target:
            return anchor
    return None


def resolve_location(anchors: Iterable[Anchor], target_time: datetime) -> Optional[Coordinate]:
    """Coordinate governing `target_time`; None means unknown or unavailable."""
    anchor = resolve(anchors, target_time)
    return anchor.coordinate if anchor else None


def resolve_frames(anchors: Sequence[Anchor], frame_times: Iterable[datetime]) -> List[Resolution]:
    """Resolve many capture times against one snapshot."""
    # oldest first; among equal timestamps the later insertion ends up last
    ascending = list(reversed(anchors))
    keys = [a.created_at for a in ascending]
    results = []
    for frame_time in frame_times:
        idx = bisect_right(keys, as_utc(frame_time))
        results.append(Resolution(frame_time, ascending[idx - 1] if idx else None))
    return results


def anchor_usage(anchors: Sequence[Anchor], frame_times: Iterable[datetime]) -> Dict[str, int]:
    """Count how many frames each anchor governs."""
    usage: Dict[str, int] = {}
    for res in resolve_frames(anchors, frame_times):
        if res.anchor is not None:
            usage[res.anchor.id] = usage.get(res.anchor.id, 0) + 1
    return usage
