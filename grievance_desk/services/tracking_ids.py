"""
Tracking IDs: the public stand-in for a complaint and its filer.

A tracking ID is 12 symbols drawn uniformly from a 62-symbol alphabet with a
cryptographically secure source, giving 62^12 (~3.2e21) possibilities. It
encodes nothing: no user, no timestamp, no sequence.
"""

import logging
import secrets
import string
from collections.abc import Awaitable, Callable

from ..core.exceptions import ExhaustedRetriesError

logger = logging.getLogger(__name__)

TRACKING_ID_LENGTH = 12
TRACKING_ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
MAX_GENERATION_ATTEMPTS = 10

_ALPHABET_SET = frozenset(TRACKING_ID_ALPHABET)


def generate_tracking_id() -> str:
    """Generate one candidate tracking ID."""
    return "".join(secrets.choice(TRACKING_ID_ALPHABET) for _ in range(TRACKING_ID_LENGTH))


async def generate_unique_tracking_id(
    exists: Callable[[str], Awaitable[bool]],
    max_attempts: int = MAX_GENERATION_ATTEMPTS,
) -> str:
    """Generate a tracking ID that the ``exists`` predicate reports as free.

    Candidates are checked one at a time. Raises ExhaustedRetriesError once
    ``max_attempts`` candidates have all collided.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = generate_tracking_id()
        if not await exists(candidate):
            return candidate
        logger.warning(f"Tracking ID collision on attempt {attempt}/{max_attempts}")

    raise ExhaustedRetriesError(
        f"Failed to generate a unique tracking ID after {max_attempts} attempts"
    )


def is_valid_tracking_id(value: object) -> bool:
    """Format check only: exact length and alphabet membership."""
    if not isinstance(value, str) or len(value) != TRACKING_ID_LENGTH:
        return False
    return all(ch in _ALPHABET_SET for ch in value)
