"""
Replay window check for signed launch requests.

Cafe24 requires apps to refuse launch URLs older than two hours. This is a
pure time comparison; no nonces are stored.
"""

import math
import time
from typing import Optional, Union

from funding_pricer.utils.logger import get_logger

logger = get_logger(__name__)

REPLAY_WINDOW_SECONDS = 2 * 60 * 60


def parse_timestamp(value: Union[str, int, float, None]) -> Optional[float]:
    """Parse an epoch-seconds value, returning None when absent, malformed or not finite."""
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def timestamp_age(value: Union[str, int, float, None], now: Optional[float] = None) -> Optional[float]:
    """Absolute distance in seconds between ``now`` and the request timestamp."""
    request_time = parse_timestamp(value)
    if request_time is None:
        return None
    current = time.time() if now is None else now
    return abs(current - request_time)


def is_replay(
    timestamp_seconds: Union[str, int, float, None],
    now: Optional[float] = None,
    window_seconds: int = REPLAY_WINDOW_SECONDS,
) -> bool:
    """
    Decide whether a launch request must be rejected as a possible replay.

    Args:
        timestamp_seconds: Request ``timestamp`` parameter (epoch seconds)
        now: Current epoch seconds (defaults to time.time())
        window_seconds: Acceptance window

    Returns:
        True if the timestamp is absent, malformed or more than
        ``window_seconds`` away from now in either direction.
    """
    age = timestamp_age(timestamp_seconds, now)
    if age is None:
        logger.warning("Launch request rejected: timestamp missing or malformed")
        return True

    if age > window_seconds:
        logger.error(
            f"Launch request rejected as replay: timestamp {timestamp_seconds} "
            f"is {int(age // 60)} minutes away from now"
        )
        return True

    return False
