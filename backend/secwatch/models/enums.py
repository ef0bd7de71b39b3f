"""
Closed value sets shared by models, schemas and services.

str-valued Enums: members compare equal to their DB/JSON string, and
adding a new kind is an explicit code change rather than a free-form
string showing up in the event store.
"""

from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    # Client / edge signals
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CSP_VIOLATION = "csp_violation"
    AUTH_ANOMALY = "auth_anomaly"
    RLS_DENIAL = "rls_denial"
    ERROR_BURST = "error_burst"
    SUSPICIOUS_IP = "suspicious_ip"
    ADMIN_ACTION = "admin_action"
    PAYMENT_FRAUD = "payment_fraud"
    DATA_EXPORT = "data_export"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    # Usage anomalies (one per AnomalyType)
    UNUSUAL_FREQUENCY = "unusual_frequency"
    HIGH_ERROR_RATE = "high_error_rate"
    DISTRIBUTED_REQUESTS = "distributed_requests"
    HIGH_COST_REQUESTS = "high_cost_requests"


class AnomalyType(str, Enum):
    UNUSUAL_FREQUENCY = "unusual_frequency"
    HIGH_ERROR_RATE = "high_error_rate"
    DISTRIBUTED_REQUESTS = "distributed_requests"
    HIGH_COST_REQUESTS = "high_cost_requests"

    @property
    def event_type(self) -> SecurityEventType:
        """The SecurityEvent type a persisted anomaly of this kind uses."""
        return SecurityEventType(self.value)


class AlertType(str, Enum):
    USAGE_THRESHOLD = "usage_threshold"
    COST_THRESHOLD = "cost_threshold"
    ERROR_RATE = "error_rate"
    RESPONSE_TIME = "response_time"
    RATE_LIMIT = "rate_limit"
    SECURITY_BREACH = "security_breach"
    KEY_EXPIRY = "key_expiry"
    SERVICE_OUTAGE = "service_outage"
    UNUSUAL_ACTIVITY = "unusual_activity"
    QUOTA_EXCEEDED = "quota_exceeded"


class PeriodType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class KeyStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class RecommendationCategory(str, Enum):
    COST = "cost"
    PERFORMANCE = "performance"
    SECURITY = "security"
    USAGE = "usage"


class ImplementationEffort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def sql_in(column: str, enum: type[Enum]) -> str:
    """Render a CHECK constraint body restricting a column to an enum's values."""
    values = ", ".join(f"'{member.value}'" for member in enum)
    return f"{column} IN ({values})"
