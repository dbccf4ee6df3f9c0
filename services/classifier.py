"""Per-parameter status classification."""

from __future__ import annotations

from app.schemas import ParameterStatus
from models.thresholds import Range


def classify(value: float, normal_range: Range, warning_range: Range) -> ParameterStatus:
    """Classify ``value`` against inclusive normal and warning ranges."""
    if value in normal_range:
        return ParameterStatus.normal
    if value in warning_range:
        return ParameterStatus.warning
    return ParameterStatus.critical
