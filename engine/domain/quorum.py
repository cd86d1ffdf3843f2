# SPDX-License-Identifier: Apache-2.0

"""
Quorum domain logic.

Pure functions computing meeting-validity and qualified-vote thresholds from
the number of active titular seats and the number of members present.
"""

import logging
import math

from models.responses import QuorumResult

logger = logging.getLogger(__name__)


def minimum_quorum(active_titular_count: int) -> int:
    """Simple majority: floor(n / 2) + 1."""
    return active_titular_count // 2 + 1


def qualified_quorum(active_titular_count: int) -> int:
    """Two-thirds majority used for votes that require qualified approval."""
    return math.ceil(active_titular_count * 2 / 3)


def presence_percent(active_titular_count: int, present_count: int) -> int:
    """Rounded presence percentage, 0 for an empty roster."""
    if active_titular_count == 0:
        return 0
    # half rounds up
    return math.floor(present_count / active_titular_count * 100 + 0.5)


def compute_quorum(active_titular_count: int, present_count: int) -> QuorumResult:
    """
    Compute quorum thresholds and pass/fail for a council composition.

    Args:
        active_titular_count: Number of active titular seats
        present_count: Number of those members present

    Returns:
        QuorumResult with minimum, qualified, has_quorum and presence_percent

    Raises:
        ValueError: If either count is negative
    """
    if active_titular_count < 0 or present_count < 0:
        raise ValueError("Counts cannot be negative")

    if active_titular_count == 0:
        logger.warning(
            "Quorum requested for an empty titular roster",
            extra={"extra_fields": {"present_count": present_count}}
        )

    minimum = minimum_quorum(active_titular_count)

    return QuorumResult(
        minimum=minimum,
        qualified=qualified_quorum(active_titular_count),
        has_quorum=active_titular_count > 0 and present_count >= minimum,
        presence_percent=presence_percent(active_titular_count, present_count)
    )
