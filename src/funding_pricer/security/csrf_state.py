"""
Single-use CSRF state tokens for the OAuth authorization-code flow.

A state is ``<mall_id>:<random>`` and lives for ten minutes. The callback
consumes it exactly once; an unknown, expired or already used state never
authorizes an exchange.
"""

import re
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from funding_pricer.database.operations import OAuthStateRepository
from funding_pricer.utils.exceptions import InvalidStateError
from funding_pricer.utils.logger import get_logger
from funding_pricer.utils.timeutils import utcnow

logger = get_logger(__name__)

STATE_TTL = timedelta(minutes=10)

# token_urlsafe(32) yields 43 characters; browser-generated suffixes vary
_SUFFIX_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{16,128}$")


def validate_state_format(mall_id: str, state: str) -> None:
    """
    Check that ``state`` belongs to ``mall_id`` and has a random suffix.

    Raises:
        InvalidStateError: If the prefix or suffix is wrong
    """
    prefix = f"{mall_id}:"
    if not state or not state.startswith(prefix):
        raise InvalidStateError(
            "State does not belong to this mall",
            {"mall_id": mall_id},
        )
    if not _SUFFIX_PATTERN.match(state[len(prefix):]):
        raise InvalidStateError(
            "State suffix is malformed",
            {"mall_id": mall_id},
        )


class CsrfStateStore:
    """Issues, registers and consumes OAuth states backed by ``oauth_states``."""

    def __init__(
        self,
        repository: OAuthStateRepository,
        clock: Callable[[], datetime] = utcnow,
        ttl: timedelta = STATE_TTL,
    ):
        self.repository = repository
        self.clock = clock
        self.ttl = ttl

    def issue(self, mall_id: str) -> str:
        """
        Create and persist a fresh state for ``mall_id``.

        Raises:
            DatabaseError: If the state could not be stored
        """
        state = f"{mall_id}:{secrets.token_urlsafe(32)}"
        self.repository.insert(state, mall_id, self.clock() + self.ttl)
        logger.info(f"Issued OAuth state for mall {mall_id}")
        return state

    def register(self, mall_id: str, state: str) -> str:
        """
        Persist a state generated by the client.

        Raises:
            InvalidStateError: If the format check fails (nothing is written)
            DatabaseError: If the state could not be stored
        """
        validate_state_format(mall_id, state)
        self.repository.insert(state, mall_id, self.clock() + self.ttl)
        logger.info(f"Registered client OAuth state for mall {mall_id}")
        return state

    def consume(self, state: Optional[str]) -> Optional[str]:
        """
        Atomically look up and delete ``state``.

        Returns:
            The owning mall_id, or None if the state is unknown, expired or
            already consumed
        """
        if not state:
            return None

        now = self.clock()
        row = self.repository.get_unexpired(state, now)
        if row is None:
            purged = self.repository.purge_expired(now)
            if purged:
                logger.debug(f"Purged {purged} expired OAuth states")
            logger.warning("OAuth state not found, expired or already used")
            return None

        # Another callback racing on the same state loses here
        if not self.repository.delete(state):
            logger.warning(f"OAuth state for mall {row.mall_id} was consumed concurrently")
            return None

        logger.info(f"Consumed OAuth state for mall {row.mall_id}")
        return row.mall_id
