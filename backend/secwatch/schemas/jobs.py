"""
Pydantic v2 schemas for POST /jobs.

A job request is {"type": <operation>, "data": {...}}; the `type` field
discriminates the union so each operation validates its own `data`.
Responses wrap the operation's result model.
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from secwatch.models.enums import (
    AlertType,
    AnomalyType,
    ImplementationEffort,
    PeriodType,
    RecommendationCategory,
    SecurityEventType,
    Severity,
)


# ── Request data ────────────────────────────────────────────
class AnalyzeCostsData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    analysis_date: datetime.date | None = Field(
        default=None,
        description="Last day of the period; defaults to today (UTC).",
    )
    period_type: PeriodType = PeriodType.DAILY


class ForecastCostsData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    forecast_days: int = Field(default=30, ge=1, le=365)


class AnalyzeAnomaliesData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hours_back: int = Field(default=24, ge=1, le=24 * 90)
    api_key_id: uuid.UUID | None = None
    threshold_multiplier: float = Field(default=3.0, gt=0)


class CreateAlertData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    alert_type: AlertType
    severity: Severity
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    api_key_id: uuid.UUID | None = None
    service_provider: str | None = Field(default=None, max_length=50)
    threshold_value: Decimal | None = None
    actual_value: Decimal | None = None


class CheckKeyExpiryData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    days_ahead: int = Field(default=30, ge=0, le=365)


class LogSecurityEventData(BaseModel):
    """
    A security event reported by a trusted backend caller.

    source_ip and user_agent are hashed before storage; when risk_score
    is omitted or 0 it is derived from severity, type, volume and origin.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: SecurityEventType
    source: str = Field(..., min_length=1, max_length=100)
    severity: Severity = Severity.MEDIUM
    payload: dict[str, Any] = Field(default_factory=dict)
    risk_score: float | None = Field(default=None, ge=0, le=100)
    source_ip: str | None = Field(default=None, max_length=45)
    user_agent: str | None = None
    request_count: int | None = Field(default=None, ge=0)
    api_key_id: uuid.UUID | None = None
    user_id: str | None = Field(default=None, max_length=255)
    route: str | None = Field(default=None, max_length=255)


class SecuritySummaryData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    days_back: int = Field(default=7, ge=1, le=365)


class GenerateRecommendationsData(BaseModel):
    """Scope: one key, or every key of one provider (api_key_id wins)."""

    model_config = ConfigDict(extra="forbid")

    api_key_id: uuid.UUID | None = None
    service_provider: str | None = Field(default=None, min_length=1, max_length=50)

    @model_validator(mode="after")
    def require_scope(self) -> GenerateRecommendationsData:
        if self.api_key_id is None and self.service_provider is None:
            raise ValueError("api_key_id or service_provider is required")
        return self


# ── Job requests (discriminated on `type`) ──────────────────
class AnalyzeCostsJob(BaseModel):
    type: Literal["analyze_costs"]
    data: AnalyzeCostsData = Field(default_factory=AnalyzeCostsData)


class ForecastCostsJob(BaseModel):
    type: Literal["forecast_costs"]
    data: ForecastCostsData = Field(default_factory=ForecastCostsData)


class AnalyzeAnomaliesJob(BaseModel):
    type: Literal["analyze_anomalies"]
    data: AnalyzeAnomaliesData = Field(default_factory=AnalyzeAnomaliesData)


class CreateAlertJob(BaseModel):
    type: Literal["create_alert"]
    data: CreateAlertData


class CheckKeyExpiryJob(BaseModel):
    type: Literal["check_key_expiry"]
    data: CheckKeyExpiryData = Field(default_factory=CheckKeyExpiryData)


class LogSecurityEventJob(BaseModel):
    type: Literal["log_security_event"]
    data: LogSecurityEventData


class SecuritySummaryJob(BaseModel):
    type: Literal["get_security_summary"]
    data: SecuritySummaryData = Field(default_factory=SecuritySummaryData)


class GenerateRecommendationsJob(BaseModel):
    type: Literal["generate_recommendations"]
    data: GenerateRecommendationsData


JobRequest = Union[
    AnalyzeCostsJob,
    ForecastCostsJob,
    AnalyzeAnomaliesJob,
    CreateAlertJob,
    CheckKeyExpiryJob,
    LogSecurityEventJob,
    SecuritySummaryJob,
    GenerateRecommendationsJob,
]


# ── Results ─────────────────────────────────────────────────
class ProviderCostOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    provider: str
    total_cost: Decimal
    total_calls: int
    error_count: int
    avg_response_time_ms: float
    projected_monthly_cost: Decimal


class CostAnalysisOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    analysis_date: datetime.date
    period_type: PeriodType
    start_date: datetime.date
    end_date: datetime.date
    days_in_period: int
    total_cost: Decimal
    total_calls: int
    total_errors: int
    cost_per_call: Decimal
    error_rate: Decimal
    cost_efficiency_score: Decimal
    projected_monthly_cost: Decimal
    providers: list[ProviderCostOut]
    cost_alerts_created: int = 0


class DailyForecastOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: datetime.date
    predicted_cost: Decimal
    confidence: float


class CostForecastOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    forecast_days: int
    history_days: int
    avg_daily_cost: Decimal
    trend: Decimal
    trend_direction: Literal["increasing", "decreasing", "stable"]
    total_forecast_cost: Decimal
    daily_forecasts: list[DailyForecastOut]


class AnomalyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: AnomalyType
    key_id: uuid.UUID
    severity: Severity
    description: str
    risk_score: float


class AnomalyReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hours_back: int
    keys_analyzed: int
    anomalies: list[AnomalyOut]
    events_logged: int
    alerts_created: int


class AlertResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    created: bool
    alert_hash: str


class ExpiringKeyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    api_key_id: uuid.UUID
    service_name: str
    days_until_expiry: int
    severity: Severity
    alert_created: bool


class ExpiryScanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    days_ahead: int
    expiring_keys: list[ExpiringKeyOut]
    alerts_created: int


class LoggedEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: uuid.UUID
    risk_score: float
    alert: AlertResultOut | None


class SecuritySummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    days_back: int
    total_events: int
    events_by_severity: dict[str, int]
    average_risk_score: Decimal | None
    active_alerts: int
    alerts_by_severity: dict[str, int]
    unacknowledged_alerts: int


class RecommendationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    api_key_id: uuid.UUID | None
    service_provider: str
    category: RecommendationCategory
    priority: int
    title: str
    description: str
    potential_cost_savings: Decimal | None
    potential_performance_gain: Decimal | None
    implementation_effort: ImplementationEffort
    implementation_steps: list[str]


class RecommendationReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    api_key_id: uuid.UUID | None
    service_provider: str | None
    days_analyzed: int
    recommendations: list[RecommendationOut]
    generated_count: int


JobResult = Union[
    CostAnalysisOut,
    CostForecastOut,
    AnomalyReportOut,
    AlertResultOut,
    ExpiryScanOut,
    LoggedEventOut,
    SecuritySummaryOut,
    RecommendationReportOut,
]


class JobResponse(BaseModel):
    type: str
    result: JobResult
