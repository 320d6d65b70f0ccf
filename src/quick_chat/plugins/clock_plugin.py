import os
from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..tool_registry import tool

LOCALTIME_PATH = Path("/etc/localtime")


def resolve_timezone_name(configured=None, localtime_path=LOCALTIME_PATH) -> str:
    """Return the IANA name of the zone the clock reports in.

    Order: the configured name, the ``TZ`` variable, the zone that
    ``/etc/localtime`` links to, then ``UTC``.
    """
    for candidate in (configured, os.getenv("TZ")):
        if candidate:
            candidate = candidate.lstrip(":")
            try:
                ZoneInfo(candidate)
                return candidate
            except (ZoneInfoNotFoundError, ValueError):
                continue

    try:
        target = str(localtime_path.resolve())
    except OSError:
        return "UTC"
    _, sep, name = target.partition("zoneinfo/")
    if sep and name:
        try:
            ZoneInfo(name)
            return name
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return "UTC"


def format_local_timestamp(dt: datetime) -> str:
    """Format like ``10/19/2026, 3:04:05 PM``."""
    hour = dt.hour % 12 or 12
    return f"{dt.month}/{dt.day}/{dt.year}, {hour}:{dt:%M:%S} {dt:%p}"


class ClockPlugin:
    """Plugin that tells the model the current date and time."""

    def __init__(self, timezone_name=None, now=None):
        self.timezone_name = resolve_timezone_name(timezone_name)
        try:
            self.timezone = ZoneInfo(self.timezone_name)
        except ZoneInfoNotFoundError:
            # no tz database on this host
            self.timezone = timezone.utc
        self._now = now or datetime.now

    @tool(name="currentTime", description="Get the current date and time")
    def current_time(self) -> dict:
        dt = self._now(self.timezone)
        return {
            "currentTime": format_local_timestamp(dt),
            "timezone": self.timezone_name,
        }

    def hook_provide_tools(self):
        return [self.current_time]
