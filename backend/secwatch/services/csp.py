"""
Server-side handling of CSP violation and frontend security reports.

Parsing accepts every shape a reporter may send:
  {"csp-report": {<W3C report>}}        — browsers
  {"csp-report": {"eventType": …}}      — the client capturer
  {<W3C report>} / {"eventType": …}     — unwrapped variants

Analysis runs on the raw report (before sanitization) so indicators in
query strings are still visible; only the sanitized form is stored.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from secwatch.core.errors import InvalidReportError
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.schemas.ingest import BrowserCspReport, FrontendEventReport
from secwatch.services.security_events import ClientFingerprint, add_event

logger = logging.getLogger(__name__)

BROWSER_SOURCE = "csp-browser"
BROWSER_DIRECT_SOURCE = "csp-browser-direct"
ATTACK_DETECTION_SOURCE = "csp-attack-detection"

_SUSPICIOUS_TLD = re.compile(r"\.(tk|ml|ga|cf)$")
_SEVERITY_UPGRADE = {Severity.LOW: Severity.MEDIUM, Severity.MEDIUM: Severity.HIGH}


@dataclass(frozen=True, slots=True)
class CspViolation:
    """A CSP violation normalized from either report shape."""

    violated_directive: str
    document_uri: str
    blocked_uri: str = ""
    status_code: int | None = None
    source_file: str | None = None
    line_number: int | None = None
    column_number: int | None = None
    source: str = BROWSER_SOURCE

    @classmethod
    def from_browser(cls, report: BrowserCspReport, source: str) -> CspViolation:
        return cls(
            violated_directive=report.violated_directive,
            document_uri=report.document_uri,
            blocked_uri=report.blocked_uri or "",
            status_code=report.status_code,
            source_file=report.source_file,
            line_number=report.line_number,
            column_number=report.column_number,
            source=source,
        )

    @classmethod
    def from_frontend(cls, report: FrontendEventReport) -> CspViolation:
        payload = report.payload
        directive = payload.get("violatedDirective")
        document_uri = payload.get("documentURI")
        if not directive or not document_uri:
            raise InvalidReportError(
                "csp_violation event requires violatedDirective and documentURI"
            )
        return cls(
            violated_directive=str(directive),
            document_uri=str(document_uri),
            blocked_uri=str(payload.get("blockedURI") or ""),
            status_code=payload.get("statusCode"),
            source=report.source,
        )


# ── Parsing ─────────────────────────────────────────────────
@dataclass(frozen=True, slots=True)
class ParsedReport:
    report: BrowserCspReport | FrontendEventReport
    wrapped: bool


def parse_report(body: bytes) -> ParsedReport | None:
    """
    Decode a report body. Returns None for an empty body.

    Raises:
        InvalidReportError: Not JSON, or neither recognised shape.
    """
    if not body.strip():
        return None

    try:
        parsed = json.loads(body)
    except ValueError as exc:
        raise InvalidReportError("Report body is not valid JSON") from exc

    wrapped = isinstance(parsed, dict) and isinstance(parsed.get("csp-report"), dict)
    if wrapped:
        parsed = parsed["csp-report"]
    if not isinstance(parsed, dict):
        raise InvalidReportError("Report body must be a JSON object")

    try:
        if "eventType" in parsed:
            return ParsedReport(FrontendEventReport.model_validate(parsed), wrapped)
        return ParsedReport(BrowserCspReport.model_validate(parsed), wrapped)
    except ValidationError as exc:
        raise InvalidReportError(str(exc)) from exc


# ── Analysis ────────────────────────────────────────────────
def analyze_violation_severity(directive: str, blocked_uri: str) -> Severity:
    """Severity by violated directive, escalated for script injection."""
    if "script-src" in directive and any(
        marker in blocked_uri for marker in ("eval", "inline", "unsafe-eval")
    ):
        return Severity.CRITICAL
    if "script-src" in directive or "object-src" in directive:
        return Severity.HIGH
    if any(d in directive for d in ("frame-src", "form-action", "connect-src")):
        return Severity.MEDIUM
    return Severity.LOW


def detect_attack_indicators(
    directive: str,
    blocked_uri: str,
    allowed_domains: Iterable[str] = (),
) -> list[str]:
    blocked = blocked_uri.lower()
    directive = directive.lower()
    indicators: list[str] = []

    if "javascript:" in blocked or "data:" in blocked:
        indicators.append("inline_script_injection")

    if "eval" in blocked:
        indicators.append("eval_attempt")

    if "script-src" in directive:
        host = _hostname(blocked)
        if _SUSPICIOUS_TLD.search(host):
            indicators.append("suspicious_domain")

    # Data exfiltration: connect-src to a host outside the allow-list
    if "connect-src" in directive and "://" in blocked:
        domain = blocked.split("://", 1)[1].split("/", 1)[0]
        if domain and not any(allowed in domain for allowed in allowed_domains):
            indicators.append("external_connection_attempt")

    return indicators


def upgrade_severity(severity: Severity) -> Severity:
    return _SEVERITY_UPGRADE.get(severity, severity)


def _hostname(uri: str) -> str:
    try:
        return urlsplit(uri).hostname or uri
    except ValueError:
        return uri


# ── Recording ───────────────────────────────────────────────
def record_csp_violation(
    session: AsyncSession,
    violation: CspViolation,
    fingerprint: ClientFingerprint,
    allowed_domains: Iterable[str] = (),
    user_id: str | None = None,
    route: str | None = None,
) -> list[str]:
    """
    Stage the csp_violation event (plus a suspicious_ip event when more
    than one attack indicator fires). Returns the indicators found.
    """
    severity = analyze_violation_severity(violation.violated_directive, violation.blocked_uri)
    indicators = detect_attack_indicators(
        violation.violated_directive, violation.blocked_uri, allowed_domains,
    )

    payload: dict[str, Any] = {
        "blockedURI": violation.blocked_uri or None,
        "documentURI": violation.document_uri,
        "violatedDirective": violation.violated_directive,
        "statusCode": violation.status_code,
    }
    if violation.source_file:
        payload["sourceFile"] = violation.source_file
        payload["lineNumber"] = violation.line_number
        payload["columnNumber"] = violation.column_number
    if indicators:
        payload["attackIndicators"] = indicators
        severity = upgrade_severity(severity)

    add_event(
        session,
        event_type=SecurityEventType.CSP_VIOLATION,
        source=violation.source,
        severity=severity,
        payload=payload,
        fingerprint=fingerprint,
        user_id=user_id,
        route=route,
    )

    if len(indicators) > 1:
        confidence = min(len(indicators) / 3, 1.0)
        add_event(
            session,
            event_type=SecurityEventType.SUSPICIOUS_IP,
            source=ATTACK_DETECTION_SOURCE,
            severity=Severity.HIGH if confidence > 0.8 else Severity.MEDIUM,
            payload={
                "pattern": "csp_violation_attack",
                "confidence": confidence,
                "indicators": indicators,
            },
            fingerprint=fingerprint,
            user_id=user_id,
            route=route,
        )
        logger.warning(
            "CSP violation with %d attack indicators: %s",
            len(indicators), ", ".join(indicators),
        )

    return indicators


def record_report(
    session: AsyncSession,
    parsed: ParsedReport,
    fingerprint: ClientFingerprint,
    allowed_domains: Iterable[str] = (),
) -> None:
    """
    Stage the events for one parsed report. The caller commits.

    Frontend csp_violation events go through the same analysis as
    browser reports; every other frontend event is stored as reported.
    """
    report = parsed.report
    if isinstance(report, BrowserCspReport):
        source = BROWSER_SOURCE if parsed.wrapped else BROWSER_DIRECT_SOURCE
        record_csp_violation(
            session, CspViolation.from_browser(report, source), fingerprint, allowed_domains,
        )
        return

    if report.event_type is SecurityEventType.CSP_VIOLATION:
        record_csp_violation(
            session,
            CspViolation.from_frontend(report),
            fingerprint,
            allowed_domains,
            user_id=report.user_id,
            route=report.route,
        )
        return

    add_event(
        session,
        event_type=report.event_type,
        source=report.source,
        severity=report.severity,
        payload=report.payload,
        fingerprint=fingerprint,
        user_id=report.user_id,
        route=report.route,
    )
