from __future__ import annotations

from datetime import datetime, timedelta, timezone


def now_utc_iso() -> str:
    """Return an RFC 3339/ISO timestamp in UTC with seconds precision."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def utc_iso_seconds_ago(seconds: float) -> str:
    """Return the UTC ISO timestamp for ``seconds`` before now.

    Same format as :func:`now_utc_iso`, so the two compare lexically.
    """
    moment = datetime.now(timezone.utc) - timedelta(seconds=seconds)
    return moment.replace(microsecond=0).isoformat()
