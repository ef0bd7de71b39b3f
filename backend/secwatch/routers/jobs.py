"""
Jobs router — the scheduler's single entry point.

POST /jobs
  Body: {"type": <operation>, "data": {...}}

Operations:
  analyze_costs             — aggregate usage logs, then check cost budgets
  forecast_costs            — linear-trend forecast from daily analyses
  analyze_anomalies         — run usage anomaly rules, persist + alert
  create_alert              — raise one deduplicated alert
  check_key_expiry          — alert on keys nearing expiry
  log_security_event        — persist a backend-reported security event
  get_security_summary      — event / alert roll-up for dashboards
  generate_recommendations  — cost / error-rate / latency advice for
                              one key or provider

Error mapping:
  InsufficientDataError → 400
  SQLAlchemyError       → 500 (logged with traceback)
"""

import datetime
import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.database import get_db_session
from secwatch.core.errors import InsufficientDataError
from secwatch.schemas.jobs import (
    AlertResultOut,
    AnalyzeAnomaliesJob,
    AnalyzeCostsJob,
    AnomalyReportOut,
    CheckKeyExpiryJob,
    CostAnalysisOut,
    CostForecastOut,
    CreateAlertJob,
    ExpiryScanOut,
    ForecastCostsJob,
    GenerateRecommendationsJob,
    JobRequest,
    JobResponse,
    JobResult,
    LoggedEventOut,
    LogSecurityEventJob,
    RecommendationReportOut,
    SecuritySummaryJob,
    SecuritySummaryOut,
)
from secwatch.services.alerts import AlertSpec, check_cost_thresholds, create_alert
from secwatch.services.anomaly_analyzer import analyze_anomalies
from secwatch.services.cost_analyzer import analyze_costs
from secwatch.services.event_queries import get_security_summary
from secwatch.services.forecaster import forecast_costs
from secwatch.services.key_expiry import check_key_expiry
from secwatch.services.recommendations import generate_recommendations
from secwatch.services.security_events import log_security_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post(
    "",
    response_model=JobResponse,
    summary="Run one analysis / alerting job",
    description=(
        "Dispatches on the `type` field. Each job commits its own work; "
        "re-running a job for the same period is safe."
    ),
)
async def run_job(
    job: Annotated[JobRequest, Body(discriminator="type")],
    session: DbSession,
) -> JobResponse:
    logger.info("Job requested: %s", job.type)
    try:
        return JobResponse(type=job.type, result=await _dispatch(job, session))
    except InsufficientDataError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Job %s failed", job.type)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Job {job.type} failed. Please try again.",
        )


async def _dispatch(job: JobRequest, session: AsyncSession) -> JobResult:
    if isinstance(job, AnalyzeCostsJob):
        analysis_date = (
            job.data.analysis_date
            or datetime.datetime.now(datetime.timezone.utc).date()
        )
        analysis = await analyze_costs(session, analysis_date, job.data.period_type)
        cost_alerts = await check_cost_thresholds(session, analysis)
        out = CostAnalysisOut.model_validate(analysis, from_attributes=True)
        return out.model_copy(
            update={"cost_alerts_created": sum(1 for a in cost_alerts if a.created)}
        )

    if isinstance(job, ForecastCostsJob):
        forecast = await forecast_costs(session, job.data.forecast_days)
        return CostForecastOut.model_validate(forecast, from_attributes=True)

    if isinstance(job, AnalyzeAnomaliesJob):
        report = await analyze_anomalies(
            session,
            hours_back=job.data.hours_back,
            api_key_id=job.data.api_key_id,
            threshold_multiplier=job.data.threshold_multiplier,
        )
        return AnomalyReportOut.model_validate(report, from_attributes=True)

    if isinstance(job, CreateAlertJob):
        data = job.data
        result = await create_alert(
            session,
            AlertSpec(
                alert_type=data.alert_type,
                severity=data.severity,
                title=data.title,
                message=data.message,
                api_key_id=data.api_key_id,
                service_provider=data.service_provider,
                threshold_value=data.threshold_value,
                actual_value=data.actual_value,
            ),
        )
        return AlertResultOut.model_validate(result, from_attributes=True)

    if isinstance(job, CheckKeyExpiryJob):
        scan = await check_key_expiry(session, job.data.days_ahead)
        return ExpiryScanOut.model_validate(scan, from_attributes=True)

    if isinstance(job, LogSecurityEventJob):
        data = job.data
        logged = await log_security_event(
            session,
            event_type=data.event_type,
            source=data.source,
            severity=data.severity,
            payload=data.payload,
            risk_score=data.risk_score,
            source_ip=data.source_ip,
            user_agent=data.user_agent,
            request_count=data.request_count,
            api_key_id=data.api_key_id,
            user_id=data.user_id,
            route=data.route,
        )
        return LoggedEventOut.model_validate(logged, from_attributes=True)

    if isinstance(job, SecuritySummaryJob):
        summary = await get_security_summary(session, job.data.days_back)
        return SecuritySummaryOut.model_validate(summary, from_attributes=True)

    if isinstance(job, GenerateRecommendationsJob):
        report = await generate_recommendations(
            session,
            api_key_id=job.data.api_key_id,
            service_provider=job.data.service_provider,
        )
        return RecommendationReportOut.model_validate(report, from_attributes=True)

    raise AssertionError(f"Unhandled job type: {job.type}")
