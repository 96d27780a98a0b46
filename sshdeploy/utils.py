"""sshdeploy CLI - Utility functions"""

import re
import uuid
from datetime import datetime, timezone

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (how the database stores it)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_run_id() -> str:
    """Generate a unique deployment run id."""
    return uuid.uuid4().hex


def strip_ansi(text: str) -> str:
    """Remove ANSI color codes from captured output."""
    return ANSI_ESCAPE.sub("", text)


def format_duration(seconds: float) -> str:
    """Format seconds as a short human readable duration."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"
