"""NMEA sentence parsing for serial GPS receivers.

The parser accumulates RMC, GGA and GSA data into a :class:`NMEAFixState`
and turns it into a :class:`PositionFix` once the receiver reports a valid
position.
"""

from __future__ import annotations

import datetime as dt
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from geotracker.tracking.types import PositionFix

MPS_PER_KNOT = 0.514444

# User equivalent range error: HDOP x UERE approximates the 1-sigma horizontal error
DEFAULT_UERE_M = 5.0

POSITION_SENTENCES = frozenset({"RMC", "GGA"})


def _parse_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_latlon(value: Optional[str], direction: Optional[str], *, is_lat: bool) -> Optional[float]:
    """Parse DDMM.MMMM / DDDMM.MMMM into signed decimal degrees."""
    if not value or not direction:
        return None
    deg_len = 2 if is_lat else 3
    if len(value) < deg_len:
        return None
    try:
        degrees = int(value[:deg_len])
        minutes = float(value[deg_len:])
    except ValueError:
        return None
    decimal = degrees + minutes / 60.0
    if direction.upper() in {"S", "W"}:
        decimal = -decimal
    return decimal


def _parse_hms(value: Optional[str]) -> Optional[dt.time]:
    if not value:
        return None
    main, dot, frac = value.strip().partition(".")
    main = main.rjust(6, "0")
    try:
        micro = int((frac[:6] if dot else "0").ljust(6, "0"))
        return dt.time(int(main[0:2]), int(main[2:4]), int(main[4:6]), micro, tzinfo=dt.timezone.utc)
    except ValueError:
        return None


def _parse_date(value: Optional[str]) -> Optional[dt.date]:
    if not value or len(value) != 6:
        return None
    try:
        return dt.date(2000 + int(value[4:6]), int(value[2:4]), int(value[0:2]))
    except ValueError:
        return None


def validate_checksum(sentence: str) -> bool:
    """Validate the XOR checksum of a ``$...*hh`` sentence."""
    if not sentence.startswith("$") or "*" not in sentence:
        return False
    payload, checksum_str = sentence[1:].split("*", 1)
    try:
        expected = int(checksum_str[:2], 16)
    except ValueError:
        return False
    calculated = 0
    for char in payload:
        calculated ^= ord(char)
    return calculated == expected


@dataclass(slots=True)
class NMEAFixState:
    """Receiver state accumulated across sentences."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude_m: Optional[float] = None
    speed_knots: Optional[float] = None
    course_deg: Optional[float] = None
    fix_quality: Optional[int] = None
    hdop: Optional[float] = None
    fix_valid: bool = False
    timestamp: Optional[dt.datetime] = None
    last_update_monotonic: float = 0.0

    def has_position(self) -> bool:
        return self.fix_valid and self.latitude is not None and self.longitude is not None

    def accuracy_m(self, uere_m: float = DEFAULT_UERE_M) -> Optional[float]:
        if self.hdop is None:
            return None
        return self.hdop * uere_m

    def to_position_fix(self, uere_m: float = DEFAULT_UERE_M, fallback_accuracy_m: float = 50.0) -> Optional[PositionFix]:
        if not self.has_position():
            return None
        accuracy = self.accuracy_m(uere_m)
        return PositionFix(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy_m=accuracy if accuracy is not None else fallback_accuracy_m,
            observed_at=self.timestamp or dt.datetime.now(dt.timezone.utc),
            altitude_m=self.altitude_m,
            speed_mps=self.speed_knots * MPS_PER_KNOT if self.speed_knots is not None else None,
            heading_deg=self.course_deg,
        )


class NMEAParser:
    """Stateful NMEA parser for RMC, GGA and GSA sentences."""

    def __init__(self, validate_checksums: bool = True) -> None:
        self._fix = NMEAFixState()
        self._last_known_date: Optional[dt.date] = None
        self._validate_checksums = validate_checksums

    @property
    def fix(self) -> NMEAFixState:
        return self._fix

    def reset(self) -> None:
        self._fix = NMEAFixState()
        self._last_known_date = None

    def parse_sentence(self, sentence: str) -> Optional[Dict[str, Any]]:
        """Parse one sentence and update the fix state. Returns parsed values or None."""
        if not sentence or not sentence.startswith("$"):
            return None
        if self._validate_checksums and not validate_checksum(sentence):
            return None

        parts = sentence[1:].split("*", 1)[0].split(",")
        message_type = parts[0][-3:].upper()
        handler = getattr(self, f"_parse_{message_type.lower()}", None)
        if handler is None:
            return None

        data = handler(parts[1:])
        if data is None:
            return None

        data["sentence_type"] = message_type
        self._apply_update(data)
        return data

    def _timestamp(self, time_str: Optional[str]) -> Optional[dt.datetime]:
        time_obj = _parse_hms(time_str)
        if time_obj is None:
            return self._fix.timestamp
        date_value = self._last_known_date or dt.datetime.now(dt.timezone.utc).date()
        return dt.datetime.combine(date_value, time_obj)

    def _apply_update(self, update: Dict[str, Any]) -> None:
        fix = self._fix
        if update.get("latitude") is not None and update.get("longitude") is not None:
            fix.latitude = update["latitude"]
            fix.longitude = update["longitude"]
        for key in ("altitude_m", "speed_knots", "course_deg", "fix_quality", "hdop", "timestamp"):
            if update.get(key) is not None:
                setattr(fix, key, update[key])
        if "fix_valid" in update:
            fix.fix_valid = bool(update["fix_valid"])
        fix.last_update_monotonic = time.monotonic()

    # ------------------------------------------------------------------
    # Sentence-specific parsers

    def _parse_rmc(self, fields: list[str]) -> Optional[Dict[str, Any]]:
        if len(fields) < 9:
            return None
        date_obj = _parse_date(fields[8])
        if date_obj:
            self._last_known_date = date_obj
        return {
            "latitude": _parse_latlon(fields[2], fields[3], is_lat=True),
            "longitude": _parse_latlon(fields[4], fields[5], is_lat=False),
            "speed_knots": _parse_float(fields[6]),
            "course_deg": _parse_float(fields[7]),
            "timestamp": self._timestamp(fields[0]),
            "fix_valid": (fields[1] or "").upper() == "A",
        }

    def _parse_gga(self, fields: list[str]) -> Optional[Dict[str, Any]]:
        if len(fields) < 9:
            return None
        fix_quality = _parse_int(fields[5])
        return {
            "latitude": _parse_latlon(fields[1], fields[2], is_lat=True),
            "longitude": _parse_latlon(fields[3], fields[4], is_lat=False),
            "fix_quality": fix_quality,
            "hdop": _parse_float(fields[7]),
            "altitude_m": _parse_float(fields[8]),
            "timestamp": self._timestamp(fields[0]),
            "fix_valid": (fix_quality or 0) > 0,
        }

    def _parse_gsa(self, fields: list[str]) -> Optional[Dict[str, Any]]:
        if len(fields) < 16:
            return None
        return {"hdop": _parse_float(fields[15])}


__all__ = [
    "DEFAULT_UERE_M",
    "NMEAFixState",
    "NMEAParser",
    "POSITION_SENTENCES",
    "validate_checksum",
]
