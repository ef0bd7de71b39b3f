"""
Pydantic v2 schemas for telemetry ingestion.

Security reports arrive in three shapes on POST /ingest/csp-report:
  • BrowserCspReport     — the W3C report a browser POSTs on a policy
                           violation (kebab-case keys, optionally wrapped
                           in {"csp-report": …}).
  • FrontendEventReport  — an event built by the client capturer
                           (camelCase keys, always wrapped).
Usage logs arrive on POST /ingest/usage:
  • UsageLogCreate / UsageLogResponse.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from secwatch.models.enums import SecurityEventType, Severity


# ── Security reports ────────────────────────────────────────
class BrowserCspReport(BaseModel):
    """
    W3C CSP violation report.

    violated-directive and document-uri are the minimum for a report to
    be actionable; everything else is optional. Unknown keys (including
    original-policy and referrer) are accepted and ignored — they are
    never stored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    violated_directive: str = Field(..., min_length=1, alias="violated-directive")
    document_uri: str = Field(..., min_length=1, alias="document-uri")
    blocked_uri: str | None = Field(default=None, alias="blocked-uri")
    status_code: int | None = Field(default=None, alias="status-code")
    source_file: str | None = Field(default=None, alias="source-file")
    line_number: int | None = Field(default=None, alias="line-number")
    column_number: int | None = Field(default=None, alias="column-number")


class FrontendEventReport(BaseModel):
    """Security event emitted by the client capturer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_type: SecurityEventType = Field(..., alias="eventType")
    source: str = Field(..., min_length=1, max_length=100)
    severity: Severity = Severity.MEDIUM
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None
    user_id: str | None = Field(default=None, max_length=255, alias="userId")
    route: str | None = Field(default=None, max_length=255)


# ── Usage logs ──────────────────────────────────────────────
class UsageLogCreate(BaseModel):
    """
    Payload accepted by POST /ingest/usage.

    extra="forbid" ensures unknown fields are rejected with 422,
    not silently ignored.
    """

    model_config = ConfigDict(extra="forbid")

    api_key_id: uuid.UUID = Field(
        ...,
        description="Upstream key the call was made with.",
    )
    timestamp: datetime | None = Field(
        default=None,
        description="When the call happened; defaults to server time.",
    )
    success: bool = Field(..., examples=[True])
    cost_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        examples=["0.00125"],
        description="Cost of the call in USD.",
    )
    response_time_ms: int = Field(default=0, ge=0, examples=[320])
    source_ip: str | None = Field(default=None, max_length=45)
    endpoint: str | None = Field(
        default=None,
        max_length=255,
        examples=["/v1/chat/completions"],
    )


class UsageLogResponse(BaseModel):
    """Stored usage log, including server-generated fields."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    api_key_id: uuid.UUID
    timestamp: datetime
    success: bool
    cost_amount: Decimal
    response_time_ms: int
    source_ip: str | None
    endpoint: str | None
