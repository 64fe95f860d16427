"""Size tiers deciding how (and whether) stored content is decoded."""

import logging

from .errors import MIB, OversizeError

logger = logging.getLogger(__name__)

WARN_SIZE = 50 * MIB
MAX_SIZE = 200 * MIB

NORMAL = 'normal'
CAUTIOUS = 'cautious'
REJECTED = 'rejected'


def classify_size(size, warn_size=WARN_SIZE, max_size=MAX_SIZE):
    """Classify a byte size; unknown sizes are treated as normal."""
    if size is None:
        return NORMAL
    if size > max_size:
        return REJECTED
    if size > warn_size:
        return CAUTIOUS
    return NORMAL


def check_size(size, warn_size=WARN_SIZE, max_size=MAX_SIZE, name=None):
    """
    Apply the size policy before any decode work starts.

    Returns the tier for sizes that may proceed and raises OversizeError
    for sizes above ``max_size``.
    """
    tier = classify_size(size, warn_size=warn_size, max_size=max_size)
    label = name or 'content'

    if tier == REJECTED:
        logger.warning('Rejecting %s: %d bytes exceeds limit of %d bytes', label, size, max_size)
        raise OversizeError(size, max_size)
    if tier == CAUTIOUS:
        logger.warning('Large file %s (%.1f MB); processing may be slow', label, size / MIB)

    return tier
