"""Concrete location platforms."""

from .nmea import NMEAFixState, NMEAParser, validate_checksum
from .serial_nmea import SERIAL_AVAILABLE, SerialNMEAPlatform
from .simulated import SimulatedPlatform, parse_fault

__all__ = [
    "NMEAFixState",
    "NMEAParser",
    "validate_checksum",
    "SERIAL_AVAILABLE",
    "SerialNMEAPlatform",
    "SimulatedPlatform",
    "parse_fault",
]
