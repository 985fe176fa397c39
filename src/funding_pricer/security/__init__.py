"""
Trust boundary checks: launch signatures, replay window and OAuth state.
"""

from funding_pricer.security.csrf_state import CsrfStateStore, STATE_TTL, validate_state_format
from funding_pricer.security.replay import REPLAY_WINDOW_SECONDS, is_replay
from funding_pricer.security.signature import verify_signature

__all__ = [
    "CsrfStateStore",
    "STATE_TTL",
    "validate_state_format",
    "REPLAY_WINDOW_SECONDS",
    "is_replay",
    "verify_signature",
]
