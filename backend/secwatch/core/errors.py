"""Service-level errors mapped to HTTP responses by the routers."""


class InsufficientDataError(Exception):
    """Raised when a job lacks the history it needs to produce a result.

    Surfaced as a 400 — a forecast built on too little data would be
    misleading, so it is never silently degraded.
    """


class InvalidReportError(ValueError):
    """Raised when an ingested security report is unparseable or incomplete."""
