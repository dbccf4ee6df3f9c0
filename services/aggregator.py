"""Spoilage risk aggregation over classified parameters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from app.schemas import ParameterStatus, SpoilageRisk
from models.records import Parameter

ALL_NORMAL_MESSAGE = "all parameters normal"

# Recommendation order; output must be deterministic.
PARAMETER_PRIORITY: Tuple[Parameter, ...] = (
    Parameter.temperature,
    Parameter.humidity,
    Parameter.co2,
    Parameter.ethylene,
    Parameter.ammonia,
    Parameter.methane,
    Parameter.h2s,
)

_HIGH_ADVICE: Dict[Parameter, str] = {
    Parameter.temperature: "Reduce temperature - activate cooling system",
    Parameter.humidity: "Reduce humidity - improve ventilation or run dehumidifier",
    Parameter.co2: "Elevated CO2 - check ventilation system",
    Parameter.ethylene: "Reduce ethylene levels by improving ventilation",
    Parameter.ammonia: "Elevated ammonia - inspect stock for decomposition",
    Parameter.methane: "Elevated methane - check for fermentation and ventilate",
    Parameter.h2s: "Elevated H2S - inspect for rot and ventilate immediately",
}

_LOW_ADVICE: Dict[Parameter, str] = {
    Parameter.temperature: "Increase temperature - reduce cooling or check heating",
    Parameter.humidity: "Increase humidity - crops at risk of drying out",
}


@dataclass(frozen=True)
class ParameterAssessment:
    """Classified value of one parameter plus where its normal band lies."""

    parameter: Parameter
    value: float
    status: ParameterStatus
    normal_max: float

    @property
    def too_high(self) -> bool:
        return self.value > self.normal_max


@dataclass(frozen=True)
class RiskAssessment:
    risk: SpoilageRisk
    recommendations: List[str] = field(default_factory=list)


def assess_risk(statuses: Iterable[ParameterStatus]) -> SpoilageRisk:
    """Monotone mapping from parameter statuses to an overall verdict."""
    critical_count = 0
    warning_count = 0
    for status in statuses:
        if status is ParameterStatus.critical:
            critical_count += 1
        elif status is ParameterStatus.warning:
            warning_count += 1

    if critical_count >= 2:
        return SpoilageRisk.critical
    if critical_count >= 1 or warning_count >= 3:
        return SpoilageRisk.high
    if warning_count >= 1:
        return SpoilageRisk.medium
    return SpoilageRisk.low


class RiskAggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, assessments: Iterable[ParameterAssessment]) -> RiskAssessment:
        by_parameter = {assessment.parameter: assessment for assessment in assessments}
        missing = [p.value for p in PARAMETER_PRIORITY if p not in by_parameter]
        if missing:
            raise ValueError(f"missing assessments for: {', '.join(missing)}")

        risk = assess_risk(a.status for a in by_parameter.values())
        return RiskAssessment(risk=risk, recommendations=self.recommend(by_parameter))

    @staticmethod
    def recommend(by_parameter: Dict[Parameter, ParameterAssessment]) -> List[str]:
        recommendations: List[str] = []
        for parameter in PARAMETER_PRIORITY:
            assessment = by_parameter[parameter]
            if assessment.status is ParameterStatus.normal:
                continue
            if not assessment.too_high and parameter in _LOW_ADVICE:
                recommendations.append(_LOW_ADVICE[parameter])
            else:
                recommendations.append(_HIGH_ADVICE[parameter])
        return recommendations or [ALL_NORMAL_MESSAGE]
