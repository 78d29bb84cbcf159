"""
claimgate/core/time.py

Wire timestamp used by emitted events and journal lines.

Format: YYYY-MM-DDTHH:MM:SS.mmmZ
        (milliseconds, explicit Z, no +00:00, no microseconds)
"""

from datetime import datetime, timezone


def event_timestamp() -> str:
    """Return current UTC time as YYYY-MM-DDTHH:MM:SS.mmmZ."""
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
