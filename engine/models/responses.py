# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Result models returned by engine operations.
"""

from typing import List, Dict, Optional
from pydantic import BaseModel, Field
from .base import ValueObject
from .entities import CouncilMember, CouncilAlert


class QuorumResult(ValueObject):
    """Quorum thresholds for a council composition."""

    minimum: int = Field(..., description="Simple-majority quorum")
    qualified: int = Field(..., description="Two-thirds qualified majority")
    has_quorum: bool = Field(..., description="Whether presence reaches the simple majority")
    presence_percent: int = Field(..., description="Rounded presence percentage")


class QuorumStatus(ValueObject):
    """Quorum of one meeting, joined from roster and attendance."""

    meeting_id: str
    active_titular_count: int
    present_count: int
    minimum: int
    qualified: int
    has_quorum: bool
    presence_percent: int


class MandateStatus(ValueObject):
    """Mandate window classification for a member on a given day."""

    is_expired: bool
    is_near_expiration: bool
    days_remaining: int


class AbsenceCheck(ValueObject):
    """Consecutive-absence classification."""

    has_warning: bool = False
    has_critical: bool = False
    message: Optional[str] = None


class StatusReport(BaseModel):
    """Council roster status report."""

    total: int = Field(default=0, description="Members on the roster")
    active: int = Field(default=0, description="Active members")
    inactive: int = Field(default=0, description="Inactive members")
    expiring_mandates: List[CouncilMember] = Field(default_factory=list, description="Members near or past mandate end")
    excessive_absences: List[CouncilMember] = Field(default_factory=list, description="Members with an absence warning")
    degraded: bool = Field(default=False, description="True when the roster could not be fully read")
    errors: List[str] = Field(default_factory=list, description="Errors met while building the report")


class AlertDispatchResult(BaseModel):
    """Outcome of evaluating and forwarding alerts for one member."""

    member_id: str
    alerts: List[CouncilAlert] = Field(default_factory=list, description="Alerts durably recorded")
    forwarded: int = Field(default=0, description="Channel sends that succeeded")
    errors: List[str] = Field(default_factory=list)


class ProcessingReport(BaseModel):
    """Outcome of one notification queue pass."""

    processed_count: int = Field(default=0, description="Events dispatched and marked sent")
    failed_count: int = Field(default=0, description="Events marked failed")
    skipped_count: int = Field(default=0, description="Events claimed by another worker or cancelled")
    in_flight_count: int = Field(
        default=0, description="Events whose send outlived the dispatch timeout; status is written when it ends"
    )
    errors: List[str] = Field(default_factory=list, description="Per-event error messages")


class NotificationReport(BaseModel):
    """Notification queue totals, optionally for a single meeting."""

    total: int = 0
    pending: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    by_kind: Dict[str, int] = Field(default_factory=dict)


class MeetingStats(ValueObject):
    """Attendance statistics for a meeting."""

    meeting_id: str
    presence_percent: int
    has_quorum: bool
    has_minutes: bool


class AttendanceOutcome(ValueObject):
    """Result of a single attendance mark."""

    member_id: str
    present: bool
    consecutive_absences: int
    alert: Optional[CouncilAlert] = None
