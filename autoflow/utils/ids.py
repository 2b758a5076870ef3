"""Identifier and timestamp helpers shared by runs, events and stores."""

import secrets
import string
from datetime import datetime, timezone
from typing import Optional

_ALPHANUM = string.ascii_lowercase + string.digits
_URL_SAFE = string.ascii_letters + string.digits + "_-"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision and ``Z``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return to_iso(utc_now())


def _random(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_run_id(now: Optional[datetime] = None) -> str:
    """Generate a run id like ``run-20260118093000-k3x9a``."""
    stamp = (now or utc_now()).strftime("%Y%m%d%H%M%S")
    return f"run-{stamp}-{_random(_ALPHANUM, 5)}"


def generate_event_id() -> str:
    return _random(_URL_SAFE, 10)
