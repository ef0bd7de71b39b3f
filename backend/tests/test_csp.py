"""
Tests for CSP report parsing, violation analysis and event staging.
"""

import json

import pytest
from sqlalchemy import select

from secwatch.core.errors import InvalidReportError
from secwatch.models.enums import SecurityEventType, Severity
from secwatch.models.security_event import SecurityEvent
from secwatch.schemas.ingest import BrowserCspReport, FrontendEventReport
from secwatch.services.csp import (
    ATTACK_DETECTION_SOURCE,
    BROWSER_DIRECT_SOURCE,
    BROWSER_SOURCE,
    CspViolation,
    analyze_violation_severity,
    detect_attack_indicators,
    parse_report,
    record_report,
    upgrade_severity,
)
from secwatch.services.security_events import ClientFingerprint

ALLOWED = ["belizevibes.com", "supabase"]

BROWSER_REPORT = {
    "document-uri": "https://belizevibes.com/checkout?cart=42",
    "referrer": "https://google.com/?q=secret",
    "violated-directive": "img-src",
    "original-policy": "default-src 'self'",
    "blocked-uri": "https://tracker.example.org/pixel.gif?uid=7",
    "status-code": 200,
}


def body(obj) -> bytes:
    return json.dumps(obj).encode()


class TestParseReport:
    """Accepted shapes and rejections"""

    def test_wrapped_browser_report(self):
        parsed = parse_report(body({"csp-report": BROWSER_REPORT}))

        assert isinstance(parsed.report, BrowserCspReport)
        assert parsed.wrapped is True
        assert parsed.report.violated_directive == "img-src"

    def test_bare_browser_report(self):
        parsed = parse_report(body(BROWSER_REPORT))
        assert isinstance(parsed.report, BrowserCspReport)
        assert parsed.wrapped is False

    def test_frontend_event(self):
        event = {
            "eventType": "auth_anomaly",
            "source": "frontend-auth",
            "severity": "critical",
            "payload": {"attemptType": "role_escalation"},
            "timestamp": "2026-10-19T12:00:00+00:00",
        }
        parsed = parse_report(body({"csp-report": event}))

        assert isinstance(parsed.report, FrontendEventReport)
        assert parsed.report.event_type is SecurityEventType.AUTH_ANOMALY
        assert parsed.report.severity is Severity.CRITICAL

    @pytest.mark.parametrize("raw", [b"", b"   "])
    def test_empty_body(self, raw):
        assert parse_report(raw) is None

    @pytest.mark.parametrize(
        "raw",
        [
            b"{not json",
            b"[1, 2]",
            body({"csp-report": {"document-uri": "https://a.b/"}}),
            body({"eventType": "not_a_type", "source": "frontend"}),
        ],
    )
    def test_rejected(self, raw):
        with pytest.raises(InvalidReportError):
            parse_report(raw)

    def test_frontend_csp_event_requires_directive(self):
        parsed = parse_report(
            body({"eventType": "csp_violation", "source": "frontend", "payload": {}})
        )
        with pytest.raises(InvalidReportError):
            CspViolation.from_frontend(parsed.report)


class TestAnalysis:
    @pytest.mark.parametrize(
        "directive, blocked, expected",
        [
            ("script-src", "inline", Severity.CRITICAL),
            ("script-src-elem", "eval", Severity.CRITICAL),
            ("script-src", "https://cdn.example.com/a.js", Severity.HIGH),
            ("object-src", "https://plugins.example.com/x.swf", Severity.HIGH),
            ("frame-src", "https://ads.example.com/", Severity.MEDIUM),
            ("connect-src", "https://api.example.com/", Severity.MEDIUM),
            ("img-src", "https://img.example.com/x.png", Severity.LOW),
        ],
    )
    def test_severity_by_directive(self, directive, blocked, expected):
        assert analyze_violation_severity(directive, blocked) is expected

    def test_inline_script_and_eval(self):
        indicators = detect_attack_indicators("script-src", "javascript:eval(atob('x'))")
        assert indicators == ["inline_script_injection", "eval_attempt"]

    def test_suspicious_tld_only_for_scripts(self):
        assert detect_attack_indicators("script-src", "https://free-prizes.tk/p.js") == [
            "suspicious_domain"
        ]
        assert detect_attack_indicators("img-src", "https://free-prizes.tk/p.png") == []

    def test_external_connect(self):
        assert detect_attack_indicators(
            "connect-src", "https://exfil.example.net/collect", ALLOWED
        ) == ["external_connection_attempt"]
        assert detect_attack_indicators(
            "connect-src", "https://abc.supabase.co/rest/v1", ALLOWED
        ) == []

    def test_upgrade(self):
        assert upgrade_severity(Severity.LOW) is Severity.MEDIUM
        assert upgrade_severity(Severity.MEDIUM) is Severity.HIGH
        assert upgrade_severity(Severity.HIGH) is Severity.HIGH
        assert upgrade_severity(Severity.CRITICAL) is Severity.CRITICAL


async def stored_events(session):
    result = await session.execute(select(SecurityEvent).order_by(SecurityEvent.event_type))
    return list(result.scalars().all())


class TestRecordReport:
    """Staging events from parsed reports"""

    async def test_browser_report_is_sanitized(self, session):
        fingerprint = ClientFingerprint.from_raw("203.0.113.5", "Mozilla/5.0", salt="s")
        record_report(session, parse_report(body({"csp-report": BROWSER_REPORT})), fingerprint, ALLOWED)
        await session.commit()

        [event] = await stored_events(session)
        assert event.event_type == "csp_violation"
        assert event.source == BROWSER_SOURCE
        assert event.severity == "low"
        assert event.payload == {
            "blockedURI": "https://tracker.example.org/pixel.gif",
            "documentURI": "https://belizevibes.com/checkout",
            "violatedDirective": "img-src",
            "statusCode": 200,
        }
        assert event.ip_hash == fingerprint.ip_hash
        assert event.ip_hash != "203.0.113.5"

    async def test_bare_report_source(self, session):
        record_report(session, parse_report(body(BROWSER_REPORT)), ClientFingerprint(), ALLOWED)
        await session.commit()

        [event] = await stored_events(session)
        assert event.source == BROWSER_DIRECT_SOURCE

    async def test_attack_adds_suspicious_ip_event(self, session):
        report = {
            "document-uri": "https://belizevibes.com/",
            "violated-directive": "script-src",
            "blocked-uri": "javascript:eval(document.cookie)",
        }
        record_report(session, parse_report(body({"csp-report": report})), ClientFingerprint(), ALLOWED)
        await session.commit()

        csp, suspicious = await stored_events(session)
        # script-src + eval → critical, already the top severity
        assert csp.severity == "critical"
        assert csp.payload["attackIndicators"] == ["inline_script_injection", "eval_attempt"]
        assert csp.payload["blockedURI"] == "javascript:"

        assert suspicious.event_type == "suspicious_ip"
        assert suspicious.source == ATTACK_DETECTION_SOURCE
        assert suspicious.severity == "medium"
        assert suspicious.payload["confidence"] == pytest.approx(2 / 3)

    async def test_single_indicator_upgrades_severity(self, session):
        report = {
            "document-uri": "https://belizevibes.com/",
            "violated-directive": "connect-src",
            "blocked-uri": "https://exfil.example.net/collect?d=1",
        }
        record_report(session, parse_report(body(report)), ClientFingerprint(), ALLOWED)
        await session.commit()

        [event] = await stored_events(session)
        assert event.severity == "high"
        assert event.payload["attackIndicators"] == ["external_connection_attempt"]

    async def test_frontend_event_stored_as_reported(self, session):
        event = {
            "eventType": "error_burst",
            "source": "frontend",
            "severity": "high",
            "payload": {"errorCount": 10, "userAgent": "Mozilla/5.0 " * 10},
            "userId": "user-123",
            "route": "/dashboard",
        }
        record_report(session, parse_report(body({"csp-report": event})), ClientFingerprint(), ALLOWED)
        await session.commit()

        [stored] = await stored_events(session)
        assert stored.event_type == "error_burst"
        assert stored.severity == "high"
        assert stored.user_id == "user-123"
        assert stored.route == "/dashboard"
        assert len(stored.payload["userAgent"]) == 50
