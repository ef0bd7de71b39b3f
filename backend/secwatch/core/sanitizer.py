"""
PII scrubbing for security telemetry.

Every event payload passes through sanitize_payload() before it leaves
the capturing process, and the ingest endpoint runs it again on arrival.
This is the single compliance boundary of the pipeline:

  • URIs keep scheme, host, port and path — never query strings,
    fragments or embedded credentials.
  • User agents and stack traces keep a short prefix only.
  • Referrers, cookies and the full CSP policy are dropped outright.
  • Client IPs and user agents stored server-side are salted SHA-256
    digests (same scheme as API key hashing: high-entropy lookup keys,
    not passwords).

None of these functions raise: a value that cannot be parsed is
reduced to a coarser representation instead.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

# Free text beyond this prefix is removed.
PREFIX_LIMIT = 50
# Cap for any other free-text payload value.
TEXT_LIMIT = 500

# Schemes without a network location whose body may carry inline code or data.
_OPAQUE_SCHEMES = frozenset({"data", "blob", "javascript", "about", "filesystem"})

# Payload keys that are never forwarded.
_DROPPED_KEYS = frozenset({
    "originalpolicy",
    "original-policy",
    "referrer",
    "cookie",
    "cookies",
    "authorization",
})


def sanitize_uri(uri: str | None) -> str | None:
    """
    Strip query, fragment and userinfo from a URI.

    Falls back to splitting on '?' and '#' when the value is not an
    absolute URL (or fails to parse). Idempotent.
    """
    if not uri:
        return None

    try:
        parts = urlsplit(uri)
        host = parts.hostname
        if parts.scheme and host:
            if ":" in host:
                host = f"[{host}]"  # IPv6 literal
            port = f":{parts.port}" if parts.port else ""
            return f"{parts.scheme}://{host}{port}{parts.path}"
        if parts.scheme in _OPAQUE_SCHEMES:
            return f"{parts.scheme}:"
    except ValueError:
        # Malformed netloc (bad IPv6 literal, non-numeric port, …)
        pass

    return uri.split("?", 1)[0].split("#", 1)[0]


def sanitize_user_agent(user_agent: str | None) -> str | None:
    """Keep only the leading product tokens of a user agent."""
    if not user_agent:
        return None
    return user_agent[:PREFIX_LIMIT]


def sanitize_stack(stack: str | None) -> str | None:
    """Keep only the first line fragment of a stack trace."""
    if not stack:
        return None
    return stack[:PREFIX_LIMIT]


def sanitize_payload(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    """
    Return a PII-safe copy of an event payload.

    Keys are matched loosely (case-insensitive, camelCase or kebab-case)
    so both browser CSP reports and our own event payloads are covered.
    """
    if not payload:
        return {}

    clean: dict[str, Any] = {}
    for key, value in payload.items():
        normalized = str(key).lower()
        if normalized in _DROPPED_KEYS:
            continue
        clean[key] = _sanitize_value(normalized, value)
    return clean


def _sanitize_value(normalized_key: str, value: Any) -> Any:
    if isinstance(value, Mapping):
        return sanitize_payload(value)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(normalized_key, item) for item in value]
    if not isinstance(value, str):
        return value

    compact = normalized_key.replace("-", "").replace("_", "")
    if "uri" in compact or "url" in compact:
        return sanitize_uri(value)
    if "useragent" in compact:
        return sanitize_user_agent(value)
    if "stack" in compact:
        return sanitize_stack(value)
    return value[:TEXT_LIMIT]


def hash_identifier(value: str | None, salt: str = "") -> str | None:
    """
    One-way hash an IP address or user agent for storage.

    Returns the hex digest, or None when there is nothing to hash.
    """
    if not value:
        return None
    return hashlib.sha256(f"{salt}{value}".encode("utf-8")).hexdigest()
