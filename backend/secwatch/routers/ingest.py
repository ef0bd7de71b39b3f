"""
Ingestion router — entry points for security reports and usage logs.

POST /ingest/csp-report
  1. Returns 204 immediately when monitoring is disabled.
  2. Enforces the per-client report limit (429 when exceeded).
  3. Parses the body by hand: browsers send application/csp-report,
     which FastAPI would not decode as JSON (400 when invalid).
  4. Analyzes, sanitizes and stores the events (204).
  Storage failures after parsing are logged and still answered with
  204 so browsers never retry.

POST /ingest/usage
  Appends one upstream call to api_usage_logs (201).
"""

import datetime
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.config import settings
from secwatch.core.database import get_db_session
from secwatch.core.errors import InvalidReportError
from secwatch.models.api_key import ApiKey
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.models.usage_log import UsageLog
from secwatch.schemas.ingest import UsageLogCreate, UsageLogResponse
from secwatch.services.csp import parse_report, record_report
from secwatch.services.rate_limiter import RateLimitExceeded, check_and_increment_report
from secwatch.services.security_events import ClientFingerprint, add_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]

RATE_LIMIT_SOURCE = "ingest-rate-limiter"

# Proxy headers checked in order before the socket peer address.
_CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


def client_ip(request: Request) -> str | None:
    """Best-effort originating client IP (first hop of X-Forwarded-For)."""
    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",", 1)[0].strip()
    return request.client.host if request.client else None


def _no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Security reports ────────────────────────────────────────
@router.post(
    "/csp-report",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Ingest a CSP violation or frontend security event",
    description=(
        "Accepts browser CSP reports (wrapped or bare) and events from the "
        "client capturer. Rate limited per client."
    ),
)
async def ingest_security_report(request: Request, session: DbSession) -> Response:
    if not settings.SECURITY_MONITORING_ENABLED:
        return _no_content()

    fingerprint = ClientFingerprint.from_raw(
        client_ip(request),
        request.headers.get("user-agent"),
    )
    client_key = fingerprint.ip_hash or "unknown"

    # ── 1. Rate limit ───────────────────────────────────────
    try:
        await check_and_increment_report(session, client_key, settings.CSP_REPORT_RATE_LIMIT)
    except RateLimitExceeded as exc:
        await _log_rate_limit(session, fingerprint, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": "60"},
        ) from exc

    # ── 2. Parse + validate ─────────────────────────────────
    try:
        parsed = parse_report(await request.body())
    except InvalidReportError as exc:
        logger.warning("Invalid security report rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid security report",
        ) from exc

    if parsed is None:
        return _no_content()

    # ── 3. Analyze + store ──────────────────────────────────
    try:
        record_report(session, parsed, fingerprint, settings.ALLOWED_CONNECT_DOMAINS)
        await session.commit()
    except InvalidReportError as exc:
        await session.rollback()
        logger.warning("Invalid security report rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid security report",
        ) from exc
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to persist security report")

    return _no_content()


async def _log_rate_limit(
    session: AsyncSession,
    fingerprint: ClientFingerprint,
    route: str,
) -> None:
    """Record the rejected report; never let this mask the 429."""
    limit = settings.CSP_REPORT_RATE_LIMIT
    try:
        add_event(
            session,
            event_type=SecurityEventType.RATE_LIMIT_EXCEEDED,
            source=RATE_LIMIT_SOURCE,
            severity=Severity.MEDIUM,
            payload={"endpoint": route, "limit": limit, "windowSeconds": 60},
            fingerprint=fingerprint,
            route=route,
        )
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to record rate limit event")


# ── Usage logs ──────────────────────────────────────────────
@router.post(
    "/usage",
    response_model=UsageLogResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a single upstream API call",
    description=(
        "Appends one call (outcome, cost, latency) to the usage log of a "
        "registered upstream key. Usage logs feed cost and anomaly analysis."
    ),
)
async def ingest_usage_log(
    payload: UsageLogCreate,
    session: DbSession,
) -> UsageLog:
    key_exists = await session.execute(
        select(ApiKey.id).where(ApiKey.id == payload.api_key_id)
    )
    if key_exists.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown api_key_id {payload.api_key_id}",
        )

    log = UsageLog(
        api_key_id=payload.api_key_id,
        timestamp=payload.timestamp or datetime.datetime.now(datetime.timezone.utc),
        success=payload.success,
        cost_amount=payload.cost_amount,
        response_time_ms=payload.response_time_ms,
        source_ip=payload.source_ip,
        endpoint=payload.endpoint,
    )

    try:
        session.add(log)
        await session.commit()
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to persist usage log")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store the usage log. Please try again.",
        )

    return log
