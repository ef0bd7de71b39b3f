"""
Settings for the in-process security event capturer.

Loaded from SECURITY_MONITORING_* environment variables so a host
process can enable reporting without code changes.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CapturerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SECURITY_MONITORING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    ENABLED: bool = True
    REPORT_ENDPOINT: str = "http://localhost:8000/ingest/csp-report"

    # ── Error burst detection ───────────────────────────────
    # An error_burst event fires when the same error is seen this many
    # times within the window.
    BURST_THRESHOLD: int = Field(default=10, ge=1)
    BURST_WINDOW_MS: int = Field(default=60_000, ge=1)

    # ── Transport ───────────────────────────────────────────
    SEND_DELAY_MS: int = Field(default=100, ge=0)
    REQUEST_TIMEOUT_S: float = Field(default=5.0, gt=0)
