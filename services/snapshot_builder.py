"""Turns a raw reading into a classified, risk-scored snapshot."""

from __future__ import annotations

from typing import Dict, List

from app.schemas import GasReading, ParameterReading, StorageSnapshot
from models.records import GAS_PARAMETERS, Parameter, RawReading
from models.thresholds import ThresholdPolicy
from services.aggregator import ParameterAssessment, RiskAggregator
from services.classifier import classify

# Decimal places kept per parameter; CO2 is reported in whole ppm.
PRECISION: Dict[Parameter, int] = {parameter: 1 for parameter in Parameter}
PRECISION[Parameter.co2] = 0


def round_value(parameter: Parameter, value: float) -> float:
    digits = PRECISION[parameter]
    if digits == 0:
        return float(round(value))
    return round(value, digits)


class SnapshotBuilder:
    """Composes classification and aggregation for one storage unit policy."""

    def __init__(self, policy: ThresholdPolicy, aggregator: RiskAggregator | None = None) -> None:
        self.policy = policy
        self.aggregator = aggregator or RiskAggregator()

    def assess(self, reading: RawReading) -> List[ParameterAssessment]:
        assessments: List[ParameterAssessment] = []
        for parameter in Parameter:
            thresholds = self.policy[parameter]
            value = round_value(parameter, reading.value_of(parameter))
            assessments.append(
                ParameterAssessment(
                    parameter=parameter,
                    value=value,
                    status=classify(value, thresholds.normal, thresholds.warning),
                    normal_max=thresholds.normal.max,
                )
            )
        return assessments

    def build(self, reading: RawReading, storage_unit: str, now_ms: int) -> StorageSnapshot:
        """Build a snapshot; ``now_ms`` is used when the reading has no timestamp."""
        assessments = self.assess(reading)
        by_parameter = {a.parameter: a for a in assessments}
        result = self.aggregator.aggregate(assessments)

        def _parameter(parameter: Parameter) -> ParameterReading:
            assessment = by_parameter[parameter]
            return ParameterReading(
                value=assessment.value,
                status=assessment.status,
                unit=self.policy[parameter].unit,
            )

        gases = {
            parameter.value: GasReading(
                value=by_parameter[parameter].value,
                status=by_parameter[parameter].status,
                threshold=self.policy[parameter].normal.max,
            )
            for parameter in GAS_PARAMETERS
        }

        return StorageSnapshot(
            timestamp=reading.timestamp if reading.timestamp is not None else now_ms,
            temperature=_parameter(Parameter.temperature),
            humidity=_parameter(Parameter.humidity),
            gases=gases,
            spoilage_risk=result.risk,
            recommendations=list(result.recommendations),
            storage_unit=storage_unit,
        )
