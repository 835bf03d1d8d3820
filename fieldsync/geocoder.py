"""Geocoder: short place names for anchor coordinates.

Offline `reverse_geocoder` first (when installed), then `geopy` Nominatim.
Results are cached in a JSON file so a spot is looked up once. Only used
for display; a failed lookup just leaves the place empty.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional
import json
import logging
import threading
import time

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

try:
    import reverse_geocoder as rg  # optional offline city-level lookup
except ImportError:
    rg = None

from fieldsync.models import Coordinate

USER_AGENT = "fieldsync_app"


class PlaceLookup:
    def __init__(self, cache_path: Optional[Path] = None, enabled: bool = True, geolocator=None):
        self.cache_path = Path(cache_path) if cache_path else None
        self.enabled = enabled
        self._geolocator = geolocator
        self._cache: Dict[str, str] = {}
        self._loaded = False
        self._lock = threading.Lock()
        self._last_geopy_call = 0.0

    def _load_cache(self):
        self._loaded = True
        if self.cache_path is None:
            return
        try:
            if self.cache_path.exists():
                self._cache = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            self._cache = {}

    def _save_cache(self):
        if self.cache_path is None:
            return
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_text(json.dumps(self._cache, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError:
            logging.exception("Failed to write geocode cache")

    def _geopy_reverse(self, lat: float, lon: float) -> Optional[str]:
        # polite rate limiting: at least 1 second between calls
        delta = time.time() - self._last_geopy_call
        if delta < 1.0:
            time.sleep(1.0 - delta)
        try:
            geolocator = self._geolocator or Nominatim(user_agent=USER_AGENT)
            loc = geolocator.reverse((lat, lon), language="en", addressdetails=True, exactly_one=True)
            self._last_geopy_call = time.time()
            if not loc:
                return None
            addr = loc.raw.get("address", {})
            parts = []
            for key in ("city", "town", "village", "county", "state", "country"):
                v = addr.get(key)
                if v and v not in parts:
                    parts.append(v)
            return ", ".join(parts) if parts else loc.address
        except GeopyError as e:
            logging.debug("Geopy reverse failed: %s", e)
            return None

    def place_name(self, coordinate: Optional[Coordinate]) -> Optional[str]:
        """Return a short place name (city, region, country) or None.

        Lookup order: cache, `reverse_geocoder`, Nominatim.
        """
        if not self.enabled or coordinate is None:
            return None
        key = f"{coordinate.latitude:.6f},{coordinate.longitude:.6f}"
        with self._lock:
            if not self._loaded:
                self._load_cache()
            if key in self._cache:
                return self._cache[key]

            name = None
            if rg is not None:
                try:
                    results = rg.search((coordinate.latitude, coordinate.longitude), mode=1)
                    if results:
                        r = results[0]
                        name = ", ".join(filter(None, [r.get("name"), r.get("admin1"), r.get("cc")]))
                except Exception:
                    logging.debug("reverse_geocoder failed, falling back to geopy", exc_info=True)
            if not name:
                name = self._geopy_reverse(coordinate.latitude, coordinate.longitude)
            if name:
                self._cache[key] = name
                self._save_cache()
            return name
