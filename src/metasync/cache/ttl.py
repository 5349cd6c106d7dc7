"""Time-to-live validity policy for cached categories."""

from typing import Optional


def is_valid(last_refresh_at: Optional[float], ttl: float, now: float) -> bool:
    """
    Decide whether a category refreshed at ``last_refresh_at`` is still fresh.

    Args:
        last_refresh_at: Epoch seconds of the last successful refresh (None = never)
        ttl: Time-to-live in seconds. Zero makes every check invalid.
        now: Current epoch seconds

    Returns:
        True if the category may be served without contacting upstream
    """
    if last_refresh_at is None:
        return False
    return now - last_refresh_at < ttl


def format_age(last_refresh_at: Optional[float], now: float) -> str:
    """Render the age of a category as ``"<m>m <s>s"`` or ``"never"``."""
    if last_refresh_at is None:
        return "never"
    age = max(0.0, now - last_refresh_at)
    minutes, seconds = divmod(int(age), 60)
    return f"{minutes}m {seconds}s"
