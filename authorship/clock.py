"""
Wall-clock time source for claims.

The registry never reads a clock itself; callers that act as the
authoritative party (the CLI, the HTTP API) take "now" from here and pass
it in explicitly.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def unix_now() -> int:
    """Current UTC time in whole unix seconds."""
    return round(time.time())


def format_timestamp(unix_seconds: int) -> str:
    """Render a unix timestamp as ISO 8601 UTC, e.g. '2024-01-01T00:00:00+00:00'."""
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc).isoformat()
