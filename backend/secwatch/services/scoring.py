"""
Heuristic scoring rules for usage anomalies, security events and cost
efficiency.

These formulas are fixed heuristics, NOT statistical models. Downstream
alerting and dashboards depend on the thresholds below; some can be
overridden per call where a parameter exists.

Every rule is a pure function of a KeyUsageWindow with no I/O, so the
rule set for one key is independent of every other key.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from secwatch.models.enums import AnomalyType, Severity

# ── Anomaly rule thresholds ─────────────────────────────────
BASELINE_REQUESTS_PER_HOUR = 10
DEFAULT_THRESHOLD_MULTIPLIER = 3.0
ERROR_RATE_THRESHOLD_PCT = 20.0
ERROR_RATE_HIGH_PCT = 50.0
IP_DIVERSITY_MIN_IPS = 10
IP_DIVERSITY_MIN_CALLS = 50
COST_PER_REQUEST_THRESHOLD = 0.10

# ── Risk thresholds (both exclusive) ────────────────────────
PERSIST_RISK_THRESHOLD = 50   # anomaly → SecurityEvent
BREACH_RISK_THRESHOLD = 70    # risk → security_breach alert

# ── Cost efficiency ─────────────────────────────────────────
_HUNDRED = Decimal("100")
ERROR_RATE_PENALTY_FACTOR = Decimal("10")
COST_PENALTY_FACTOR = Decimal("1000")
COST_PENALTY_CAP = Decimal("50")

# ── Security event risk ─────────────────────────────────────
SEVERITY_BASE_RISK: dict[Severity, int] = {
    Severity.CRITICAL: 80,
    Severity.HIGH: 60,
    Severity.MEDIUM: 30,
    Severity.LOW: 10,
}
HIGH_VOLUME_REQUESTS = 100
HIGH_VOLUME_RISK = 20
ESCALATING_TYPE_TERMS = ("breach", "attack")
ESCALATING_TYPE_RISK = 30
EXTERNAL_IP_RISK = 10
INTERNAL_IP_PREFIX = "10."


@dataclass(frozen=True, slots=True)
class KeyUsageWindow:
    """Per-key usage totals over an analysis window."""

    key_id: uuid.UUID
    hours: float
    total_calls: int
    failed_calls: int
    unique_ips: int
    total_cost: Decimal

    @property
    def requests_per_hour(self) -> float:
        return self.total_calls / self.hours

    @property
    def error_rate(self) -> float:
        return self.failed_calls / self.total_calls * 100

    @property
    def avg_cost_per_request(self) -> float:
        return float(self.total_cost) / self.total_calls


@dataclass(frozen=True, slots=True)
class Anomaly:
    """A detected deviation from the fixed baseline. Never persisted as-is."""

    type: AnomalyType
    key_id: uuid.UUID
    severity: Severity
    description: str
    risk_score: float


# ── Risk formulas ───────────────────────────────────────────
def frequency_risk(
    requests_per_hour: float,
    baseline: float = BASELINE_REQUESTS_PER_HOUR,
) -> float:
    return min(90.0, 30 + (requests_per_hour / baseline) * 10)


def error_rate_risk(error_rate_pct: float) -> float:
    return min(95.0, 20 + error_rate_pct)


def ip_diversity_risk(unique_ips: int) -> float:
    return min(70.0, 30.0 + unique_ips)


def cost_risk(avg_cost_per_request: float) -> float:
    return min(60.0, 20 + avg_cost_per_request * 100)


# ── Rules ───────────────────────────────────────────────────
def check_frequency(
    window: KeyUsageWindow,
    threshold_multiplier: float = DEFAULT_THRESHOLD_MULTIPLIER,
    baseline: float = BASELINE_REQUESTS_PER_HOUR,
) -> Anomaly | None:
    rph = window.requests_per_hour
    if rph <= baseline * threshold_multiplier:
        return None
    return Anomaly(
        type=AnomalyType.UNUSUAL_FREQUENCY,
        key_id=window.key_id,
        severity=Severity.MEDIUM,
        description=(
            f"Unusual request frequency: {rph:.1f} req/hour "
            f"(normal: ~{baseline:g})"
        ),
        risk_score=frequency_risk(rph, baseline),
    )


def check_error_rate(window: KeyUsageWindow) -> Anomaly | None:
    rate = window.error_rate
    if rate <= ERROR_RATE_THRESHOLD_PCT:
        return None
    return Anomaly(
        type=AnomalyType.HIGH_ERROR_RATE,
        key_id=window.key_id,
        severity=Severity.HIGH if rate > ERROR_RATE_HIGH_PCT else Severity.MEDIUM,
        description=f"High error rate: {rate:.1f}% over {window.hours:g} hours",
        risk_score=error_rate_risk(rate),
    )


def check_ip_diversity(window: KeyUsageWindow) -> Anomaly | None:
    if not (
        window.unique_ips > IP_DIVERSITY_MIN_IPS
        and window.total_calls > IP_DIVERSITY_MIN_CALLS
    ):
        return None
    return Anomaly(
        type=AnomalyType.DISTRIBUTED_REQUESTS,
        key_id=window.key_id,
        severity=Severity.MEDIUM,
        description=f"Requests from {window.unique_ips} different IP addresses",
        risk_score=ip_diversity_risk(window.unique_ips),
    )


def check_cost_per_request(window: KeyUsageWindow) -> Anomaly | None:
    avg = window.avg_cost_per_request
    if avg <= COST_PER_REQUEST_THRESHOLD:
        return None
    return Anomaly(
        type=AnomalyType.HIGH_COST_REQUESTS,
        key_id=window.key_id,
        severity=Severity.LOW,
        description=f"High average cost per request: ${avg:.4f}",
        risk_score=cost_risk(avg),
    )


_WINDOW_RULES: tuple[Callable[[KeyUsageWindow], Anomaly | None], ...] = (
    check_error_rate,
    check_ip_diversity,
    check_cost_per_request,
)


def evaluate_window(
    window: KeyUsageWindow,
    threshold_multiplier: float = DEFAULT_THRESHOLD_MULTIPLIER,
) -> list[Anomaly]:
    """Run every rule against one key's window; returns the anomalies found."""
    if window.total_calls == 0:
        return []

    found = [check_frequency(window, threshold_multiplier)]
    found.extend(rule(window) for rule in _WINDOW_RULES)
    return [anomaly for anomaly in found if anomaly is not None]


# ── Cost efficiency ─────────────────────────────────────────
def cost_efficiency_score(error_rate_pct: Decimal, cost_per_call: Decimal) -> Decimal:
    """
    0–100 heuristic: start at 100, lose 10 points per percent of errors
    and up to 50 points for cost per call (1 point per $0.001).
    """
    cost_penalty = min(COST_PENALTY_CAP, cost_per_call * COST_PENALTY_FACTOR)
    score = _HUNDRED - error_rate_pct * ERROR_RATE_PENALTY_FACTOR - cost_penalty
    return max(Decimal("0"), score)


# ── Security event risk ─────────────────────────────────────
def security_event_risk(
    severity: Severity,
    event_type: str = "",
    request_count: int | None = None,
    source_ip: str | None = None,
) -> int:
    """Risk score for a logged security event when the caller supplies none."""
    score = SEVERITY_BASE_RISK[severity]
    if request_count and request_count > HIGH_VOLUME_REQUESTS:
        score += HIGH_VOLUME_RISK
    if any(term in event_type for term in ESCALATING_TYPE_TERMS):
        score += ESCALATING_TYPE_RISK
    if source_ip and not source_ip.startswith(INTERNAL_IP_PREFIX):
        score += EXTERNAL_IP_RISK
    return min(100, score)
