"""Detects readings that differ in a way users would notice."""

from __future__ import annotations

from typing import Optional, Tuple

from models.records import RawReading

Fingerprint = Tuple[float, float, float]


def fingerprint(reading: RawReading) -> Fingerprint:
    """Temperature, humidity and CO2 are the fields shown on the overview."""
    return (reading.temperature, reading.humidity, reading.co2)


def is_material_change(
    previous: Optional[Fingerprint], reading: RawReading
) -> Tuple[bool, Fingerprint]:
    current = fingerprint(reading)
    return previous != current, current
