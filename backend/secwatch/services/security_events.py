"""
Writing security events.

Every write path (ingest, the log_security_event job, the anomaly
analyzer) ends in a SecurityEvent row; this module owns the shared
rules for building one:

  • the payload is sanitized again server-side, regardless of origin;
  • only salted hashes of the client IP / user agent are stored;
  • risk is scored from the event itself when the caller gives none.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.config import settings
from secwatch.core.sanitizer import hash_identifier, sanitize_payload
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.models.security_event import SecurityEvent
from secwatch.services.alerts import AlertResult, raise_security_breach
from secwatch.services.scoring import security_event_risk

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClientFingerprint:
    """PII-safe identity of the reporting client."""

    ip_hash: str | None = None
    user_agent_hash: str | None = None

    @classmethod
    def from_raw(
        cls,
        ip: str | None,
        user_agent: str | None,
        salt: str | None = None,
    ) -> ClientFingerprint:
        salt = settings.IP_HASH_SALT if salt is None else salt
        return cls(
            ip_hash=hash_identifier(ip, salt),
            user_agent_hash=hash_identifier(user_agent, salt),
        )


def add_event(
    session: AsyncSession,
    *,
    event_type: SecurityEventType,
    source: str,
    severity: Severity,
    payload: Mapping[str, Any] | None = None,
    fingerprint: ClientFingerprint | None = None,
    risk_score: float | None = None,
    api_key_id: uuid.UUID | None = None,
    user_id: str | None = None,
    route: str | None = None,
) -> SecurityEvent:
    """Stage a SecurityEvent on the session. The caller commits."""
    fingerprint = fingerprint or ClientFingerprint()
    event = SecurityEvent(
        event_type=event_type.value,
        source=source,
        severity=severity.value,
        payload=sanitize_payload(payload),
        risk_score=None if risk_score is None else Decimal(str(round(risk_score, 2))),
        api_key_id=api_key_id,
        ip_hash=fingerprint.ip_hash,
        user_agent_hash=fingerprint.user_agent_hash,
        user_id=user_id,
        route=route,
    )
    session.add(event)
    return event


@dataclass(frozen=True, slots=True)
class LoggedEvent:
    event_id: uuid.UUID
    risk_score: float
    alert: AlertResult | None


async def log_security_event(
    session: AsyncSession,
    *,
    event_type: SecurityEventType,
    source: str,
    severity: Severity,
    payload: Mapping[str, Any] | None = None,
    risk_score: float | None = None,
    source_ip: str | None = None,
    user_agent: str | None = None,
    request_count: int | None = None,
    api_key_id: uuid.UUID | None = None,
    user_id: str | None = None,
    route: str | None = None,
) -> LoggedEvent:
    """
    Persist one security event reported by a trusted backend caller and
    raise a security_breach alert when its risk exceeds the threshold.

    A missing or zero risk_score is derived from the event itself.
    """
    if not risk_score:
        risk_score = security_event_risk(
            severity,
            event_type=event_type.value,
            request_count=request_count,
            source_ip=source_ip,
        )

    event = add_event(
        session,
        event_type=event_type,
        source=source,
        severity=severity,
        payload=payload,
        fingerprint=ClientFingerprint.from_raw(source_ip, user_agent),
        risk_score=risk_score,
        api_key_id=api_key_id,
        user_id=user_id,
        route=route,
    )
    await session.commit()
    event_id = event.id
    logger.info(
        "Security event logged: type=%s severity=%s risk=%s",
        event_type.value, severity.value, risk_score,
    )

    alert = await raise_security_breach(
        session,
        risk_score=risk_score,
        severity=severity,
        title=event_type.value,
        description=f"{event_type.value} reported by {source}",
        api_key_id=api_key_id,
        dedup_scope=event_type.value,
    )
    return LoggedEvent(event_id=event_id, risk_score=float(risk_score), alert=alert)
