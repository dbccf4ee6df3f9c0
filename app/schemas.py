"""Pydantic schemas shared by the monitoring services and the HTTP API."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ParameterStatus(str, Enum):
    """Health classification of a single parameter."""

    normal = "normal"
    warning = "warning"
    critical = "critical"


class SpoilageRisk(str, Enum):
    """Aggregate spoilage verdict, ordered from least to most severe."""

    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class ConnectionState(str, Enum):
    """Feed liveness as tracked per subscription."""

    awaiting_data = "awaiting_data"
    connected = "connected"
    disconnected = "disconnected"


class MonitorEvent(str, Enum):
    """Reason attached to every delivery made to a subscriber."""

    reading = "reading"
    connected = "connected"
    reconnected = "reconnected"
    disconnected = "disconnected"
    no_data = "no_data"
    transport_error = "transport_error"


class ParameterReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    status: ParameterStatus
    unit: str


class GasReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: float
    status: ParameterStatus
    threshold: float = Field(..., description="Upper bound of the normal range.")


class StorageSnapshot(BaseModel):
    """Fully classified view of one accepted reading."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(..., description="Capture time in epoch milliseconds.")
    temperature: ParameterReading
    humidity: ParameterReading
    gases: Dict[str, GasReading]
    spoilage_risk: SpoilageRisk
    recommendations: List[str]
    storage_unit: str


class ReadingIn(BaseModel):
    """Telemetry payload accepted by the ingest endpoint."""

    temperature: float
    humidity: float
    co2: Optional[float] = Field(default=None, validation_alias=AliasChoices("co2", "CO2"))
    ammonia: Optional[float] = None
    methane: Optional[float] = None
    ethylene: Optional[float] = None
    h2s: Optional[float] = Field(default=None, validation_alias=AliasChoices("h2s", "H2S"))
    timestamp: Optional[int] = Field(default=None, ge=0)


class IngestResponse(BaseModel):
    unit_id: str
    key: str = Field(..., description="Store key the reading was written under.")


class UnitStatus(BaseModel):
    unit_id: str
    storage_unit: str
    connection: ConnectionState
    snapshot: Optional[StorageSnapshot] = None


class HistoryPointOut(BaseModel):
    timestamp: int
    temperature: float
    humidity: float


class HistoryResponse(BaseModel):
    unit_id: str
    hours: float
    points: List[HistoryPointOut] = Field(default_factory=list)


class Alert(BaseModel):
    id: str
    type: ParameterStatus
    message: str
    timestamp: int
    storage_unit: str


class FleetSummary(BaseModel):
    total_units: int = Field(..., ge=0)
    critical_alerts: int = Field(..., ge=0)
    warnings_active: int = Field(..., ge=0)
    average_risk: Optional[SpoilageRisk] = None
