from __future__ import annotations

from datetime import datetime, timezone


def utc_timestamp() -> str:
    """Current UTC time as RFC 3339 with a ``Z`` suffix, e.g. ``2026-01-01T00:00:00Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
