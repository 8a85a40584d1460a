"""
Key Generator - Human-typable access key identifiers.

Keys look like KWA-7QX-M4P-Z9: a fixed prefix and 8 characters from an
alphabet without the look-alike characters 0/O and 1/I.
"""

import secrets
from typing import Protocol

from structlog import get_logger

from alchemist.exceptions import GenerationExhaustedError
from alchemist.services.plans import get_plan

logger = get_logger(__name__)

KEY_PREFIX = "KWA"
KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
KEY_GROUPS = (3, 3, 2)
DEFAULT_MAX_ATTEMPTS = 20


class KeyExistenceChecker(Protocol):
    """Anything that can tell whether a key id is already taken."""

    async def exists(self, key_id: str) -> bool: ...


class KeyGenerator:
    """Draws random access key ids and checks them for uniqueness."""

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        if max_attempts <= 0:
            raise ValueError(f"max_attempts must be positive: {max_attempts}")
        self.max_attempts = max_attempts

    @staticmethod
    def generate_candidate() -> str:
        """Draw one key id. Pure apart from the CSPRNG."""
        groups = [
            "".join(secrets.choice(KEY_ALPHABET) for _ in range(size)) for size in KEY_GROUPS
        ]
        return "-".join([KEY_PREFIX, *groups])

    async def generate_unique(self, store: KeyExistenceChecker) -> str:
        """
        Draw candidates until one is not present in the store.

        Raises:
            GenerationExhaustedError: If every attempt collided
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generate_candidate()
            if not await store.exists(candidate):
                if attempt > 1:
                    logger.info("access_key_collision_resolved", attempts=attempt)
                return candidate

        logger.error("access_key_generation_exhausted", attempts=self.max_attempts)
        raise GenerationExhaustedError(self.max_attempts)

    @staticmethod
    def credits_for_plan(plan: str) -> int:
        """Credits granted by a plan; unknown plans raise UnknownPlanError."""
        return get_plan(plan).credits
