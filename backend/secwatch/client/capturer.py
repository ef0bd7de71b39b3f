"""
In-process security event capturer.

Embed one SecurityEventCapturer per process to report:
  • CSP violations forwarded by a front-end       → csp_violation
  • uncaught exceptions (sys.excepthook) and
    unhandled asyncio task exceptions              → error_burst, once the
                                                     same error repeats
                                                     BURST_THRESHOLD times
                                                     inside BURST_WINDOW_MS
  • auth anomalies, suspicious activity and
    admin actions reported by application code

Every payload is sanitized before it is queued, and no handler ever
raises into the code that triggered it: telemetry must not turn one
error into two.
"""

from __future__ import annotations

import asyncio
import datetime
import json
import logging
import platform
import sys
import time
import traceback
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlsplit

from secwatch.client.config import CapturerSettings
from secwatch.client.transport import TransportQueue
from secwatch.core.sanitizer import PREFIX_LIMIT, TEXT_LIMIT, sanitize_payload
from secwatch.models.enums import SecurityEventType, Severity

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

DEFAULT_SOURCE = "frontend"
AUTH_SOURCE = "frontend-auth"
BEHAVIOR_SOURCE = "frontend-behavior"
ADMIN_SOURCE = "frontend-admin"


def monotonic_ms() -> float:
    return time.monotonic() * 1000


# ── Burst detection ─────────────────────────────────────────
@dataclass(slots=True)
class BurstWindow:
    count: int
    window_start: float


@dataclass(frozen=True, slots=True)
class BurstStats:
    total_errors: int
    unique_patterns: int


class BurstTracker:
    """
    Sliding-window counter per error key.

    A key's window opens on its first occurrence. Reaching `threshold`
    inside the window reports the burst once and forgets the key; an
    occurrence after the window has closed starts a fresh window.
    """

    def __init__(self, threshold: int, window_ms: float, clock: Clock = monotonic_ms) -> None:
        self.threshold = threshold
        self.window_ms = window_ms
        self._clock = clock
        self._windows: dict[str, BurstWindow] = {}

    def record(self, key: str) -> int | None:
        """Count one occurrence. Returns the burst size when a burst fires."""
        now = self._clock()
        burst: int | None = None

        window = self._windows.get(key)
        if window is None or now - window.window_start > self.window_ms:
            self._windows[key] = BurstWindow(count=1, window_start=now)
        else:
            window.count += 1
            if window.count >= self.threshold:
                burst = window.count
                del self._windows[key]

        self._prune(now)
        return burst

    def _prune(self, now: float) -> None:
        horizon = self.window_ms * 2
        stale = [k for k, w in self._windows.items() if now - w.window_start > horizon]
        for key in stale:
            del self._windows[key]

    def stats(self) -> BurstStats:
        return BurstStats(
            total_errors=sum(w.count for w in self._windows.values()),
            unique_patterns=len(self._windows),
        )

    def clear(self) -> None:
        self._windows.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._windows


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    message: str
    source: str | None = None
    line: int | None = None
    column: int | None = None
    stack: str | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorInfo:
        frames = traceback.extract_tb(exc.__traceback__)
        last = frames[-1] if frames else None
        return cls(
            message=f"{type(exc).__name__}: {exc}",
            source=last.filename if last else None,
            line=last.lineno if last else None,
            column=getattr(last, "colno", None),
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )


def error_key(
    message: str | None,
    source: str | None = None,
    line: int | None = None,
    column: int | None = None,
) -> str:
    """PII-safe grouping key: message prefix | source path | line | column."""
    path = "unknown"
    if source:
        try:
            path = urlsplit(source).path or source.split("?", 1)[0]
        except ValueError:
            path = source.split("?", 1)[0]

    parts = [(message or "")[:PREFIX_LIMIT], path, line, column]
    return "|".join(str(part) for part in parts if part)


# ── Capturer ────────────────────────────────────────────────
class SecurityEventCapturer:
    def __init__(
        self,
        config: CapturerSettings | None = None,
        transport: TransportQueue | None = None,
        clock: Clock = monotonic_ms,
        user_agent: str | None = None,
    ) -> None:
        self.config = config or CapturerSettings()
        self.transport = transport or TransportQueue(
            self.config.REPORT_ENDPOINT,
            send_delay=self.config.SEND_DELAY_MS / 1000,
            timeout=self.config.REQUEST_TIMEOUT_S,
        )
        self.bursts = BurstTracker(
            self.config.BURST_THRESHOLD,
            self.config.BURST_WINDOW_MS,
            clock,
        )
        self.user_agent = user_agent or (
            f"secwatch-capturer (Python {platform.python_version()}; {platform.system()})"
        )
        self.enabled = self.config.ENABLED
        self._previous_excepthook: Callable[..., Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Callable[..., Any] | None = None

    # ── Signal handlers ─────────────────────────────────────
    def handle_csp_violation(self, report: Mapping[str, Any]) -> None:
        """Forward one browser CSP report (W3C kebab-case keys)."""
        if not self.enabled:
            return
        try:
            self._emit(
                SecurityEventType.CSP_VIOLATION,
                DEFAULT_SOURCE,
                {
                    "blockedURI": report.get("blocked-uri"),
                    "documentURI": report.get("document-uri"),
                    "violatedDirective": report.get("violated-directive"),
                    "statusCode": report.get("status-code"),
                },
                Severity.MEDIUM,
            )
        except Exception:
            logger.warning("Failed to capture CSP violation", exc_info=True)

    def handle_error(self, info: ErrorInfo) -> None:
        """Count one runtime error; report an error_burst when it repeats."""
        if not self.enabled:
            return
        try:
            key = error_key(info.message, info.source, info.line, info.column)
            count = self.bursts.record(key)
            if count is not None:
                self._report_error_burst(key, count)
        except Exception:
            logger.warning("Failed to capture runtime error", exc_info=True)

    def handle_exception(self, exc: BaseException) -> None:
        try:
            info = ErrorInfo.from_exception(exc)
        except Exception:
            logger.warning("Failed to inspect exception", exc_info=True)
            return
        self.handle_error(info)

    def _report_error_burst(self, key: str, count: int) -> None:
        self._emit(
            SecurityEventType.ERROR_BURST,
            DEFAULT_SOURCE,
            {
                "errorCount": count,
                "timeWindow": f"{self.config.BURST_WINDOW_MS}ms",
                "errorTypes": [key],
                "userAgent": self.user_agent,
            },
            Severity.HIGH,
        )

    # ── Application reports ─────────────────────────────────
    def report_auth_anomaly(self, attempt_type: str, failure_reason: str | None = None) -> None:
        """attempt_type: login | password_reset | email_change | role_escalation."""
        if not self.enabled:
            return
        severity = Severity.CRITICAL if attempt_type == "role_escalation" else Severity.MEDIUM
        try:
            self._emit(
                SecurityEventType.AUTH_ANOMALY,
                AUTH_SOURCE,
                {
                    "attemptType": attempt_type,
                    "failureReason": failure_reason,
                    "userAgent": self.user_agent,
                },
                severity,
            )
        except Exception:
            logger.warning("Failed to capture auth anomaly", exc_info=True)

    def report_suspicious_activity(self, activity_type: str, indicators: Sequence[str]) -> None:
        if not self.enabled:
            return
        try:
            self._emit(
                SecurityEventType.SUSPICIOUS_IP,
                BEHAVIOR_SOURCE,
                {
                    "pattern": activity_type,
                    "confidence": len(indicators) / 10,
                    "indicators": list(indicators),
                },
                Severity.MEDIUM,
            )
        except Exception:
            logger.warning("Failed to capture suspicious activity", exc_info=True)

    def report_admin_action(
        self,
        action: str,
        target: str | None = None,
        details: Any = None,
    ) -> None:
        if not self.enabled:
            return
        try:
            serialized = None
            if details is not None:
                serialized = json.dumps(details, default=str)[:TEXT_LIMIT]
            self._emit(
                SecurityEventType.ADMIN_ACTION,
                ADMIN_SOURCE,
                {"action": action, "target": target, "details": serialized},
                Severity.MEDIUM,
            )
        except Exception:
            logger.warning("Failed to capture admin action", exc_info=True)

    # ── State ───────────────────────────────────────────────
    def get_error_burst_stats(self) -> BurstStats:
        return self.bursts.stats()

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        if not enabled:
            self.transport.clear()
            self.bursts.clear()

    def is_enabled(self) -> bool:
        return self.enabled

    # ── Hooks ───────────────────────────────────────────────
    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Hook sys.excepthook and, when a loop is given or running, its
        exception handler. Previous handlers keep running after ours.
        """
        if self._previous_excepthook is None:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self._excepthook

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is not None and self._loop is None:
            self._loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._loop_exception_handler)

    def uninstall(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_loop_handler)
            self._loop = None
            self._previous_loop_handler = None

    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self.handle_exception(exc)
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _loop_exception_handler(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        exc = context.get("exception")
        if exc is not None:
            self.handle_exception(exc)
        else:
            self.handle_error(ErrorInfo(message=context.get("message") or "Unhandled promise rejection"))

        if self._previous_loop_handler is not None:
            self._previous_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    # ── Emit ────────────────────────────────────────────────
    def _emit(
        self,
        event_type: SecurityEventType,
        source: str,
        payload: Mapping[str, Any],
        severity: Severity,
    ) -> None:
        event = {
            "eventType": event_type.value,
            "source": source,
            "payload": sanitize_payload(payload),
            "severity": severity.value,
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        self.transport.enqueue(event)
