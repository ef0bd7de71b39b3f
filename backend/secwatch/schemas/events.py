"""
Response schemas for the event and alert read endpoints.

Decimal precision is preserved end-to-end (DB NUMERIC → Python Decimal → JSON string).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict


class SecurityEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_type: str
    source: str
    severity: str
    payload: dict[str, Any]
    risk_score: Decimal | None
    api_key_id: uuid.UUID | None
    ip_hash: str | None
    user_id: str | None
    route: str | None
    created_at: datetime


class TimeRangeOut(BaseModel):
    earliest: datetime | None
    latest: datetime | None


class EventSummaryOut(BaseModel):
    """Aggregate counts for the filtered event set."""

    total_events: int
    by_type: dict[str, int]
    by_severity: dict[str, int]
    by_source: dict[str, int]
    time_range: TimeRangeOut


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    alert_type: str
    severity: str
    api_key_id: uuid.UUID | None
    service_provider: str | None
    title: str
    message: str
    threshold_value: Decimal | None
    actual_value: Decimal | None
    is_active: bool
    is_acknowledged: bool
    created_at: datetime
