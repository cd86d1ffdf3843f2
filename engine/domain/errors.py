# SPDX-License-Identifier: Apache-2.0

"""
Exception taxonomy for the council-governance engine.
"""

from typing import List, Optional


class CouncilError(Exception):
    """Base class for engine exceptions."""

    def __init__(self, message: str, error_type: str = "council-error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type


class ValidationError(CouncilError):
    """Input rejected before any write."""

    def __init__(self, message: str, field: Optional[str] = None,
                 validation_errors: Optional[List[str]] = None):
        super().__init__(message, "validation-error")
        self.field = field
        self.reason = message
        self.validation_errors = validation_errors or [message]


class NotFoundError(CouncilError):
    """Referenced member, meeting or event does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} not found: {entity_id}", "resource-not-found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StoreError(CouncilError):
    """The record store call failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message, "store-error")
        self.operation = operation


class ChannelError(CouncilError):
    """A channel dispatch failed."""

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message, "channel-error")
        self.channel = channel


class ConcurrencyError(CouncilError):
    """Another worker won the claim on a queued event."""

    def __init__(self, event_id: str):
        super().__init__(f"Notification event already claimed: {event_id}", "claim-lost")
        self.event_id = event_id
