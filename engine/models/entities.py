# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the CODEMA council-governance engine.
"""

from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from .base import BaseEntity, ValueObject, utc_now
from .enums import (
    Segment,
    SeatType,
    MemberStatus,
    MeetingType,
    MeetingStatus,
    NotificationKind,
    NotificationChannel,
    NotificationStatus,
    AlertKind,
    AlertSeverity
)

MAX_MANDATE_YEARS = 4


def add_years(start: date, years: int) -> date:
    """Shift a date by whole calendar years, clamping Feb 29 to Feb 28."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


class ChannelPreferences(ValueObject):
    """Per-member opt-in for each notification channel."""

    email: bool = Field(default=True, description="Receive e-mail notifications")
    sms: bool = Field(default=True, description="Receive SMS notifications")
    whatsapp: bool = Field(default=False, description="Receive WhatsApp notifications")

    def allows(self, channel: str) -> bool:
        """Check whether the member opted in to a channel."""
        return bool(getattr(self, NotificationChannel(channel).value))


class CouncilMember(BaseEntity):
    """Councillor enrolled in the municipal environmental council."""

    full_name: str = Field(..., min_length=1, max_length=200, description="Councillor full name")
    email: Optional[str] = Field(None, description="Contact e-mail")
    phone: Optional[str] = Field(None, description="Contact phone, (XX) XXXXX-XXXX")
    represented_entity: Optional[str] = Field(None, max_length=200, description="Entity the seat represents")
    segment: Segment = Field(..., description="Represented sector")
    seat_type: SeatType = Field(default=SeatType.TITULAR, description="Titular or alternate seat")
    status: MemberStatus = Field(default=MemberStatus.ACTIVE, description="Lifecycle status")
    mandate_start: date = Field(..., description="First day of the mandate")
    mandate_end: date = Field(..., description="Last day of the mandate")
    consecutive_absences: int = Field(default=0, ge=0, description="Cached trailing absence count")
    total_absences: int = Field(default=0, ge=0, description="Total recorded absences")
    preferences: ChannelPreferences = Field(default_factory=ChannelPreferences, description="Channel opt-ins")

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        """Validate member name."""
        if not v.strip():
            raise ValueError('Member name cannot be empty')
        return v.strip()

    @model_validator(mode='after')
    def validate_mandate_window(self):
        """Mandate must end after it starts and last at most four years."""
        if self.mandate_end <= self.mandate_start:
            raise ValueError('Mandate end must be after mandate start')
        if self.mandate_end > add_years(self.mandate_start, MAX_MANDATE_YEARS):
            raise ValueError(f'Mandate cannot exceed {MAX_MANDATE_YEARS} years')
        return self

    def is_active(self) -> bool:
        """Check if the member currently holds an active seat."""
        return self.status == MemberStatus.ACTIVE

    def counts_toward_quorum(self) -> bool:
        """Only active titular seats count toward quorum."""
        return self.is_active() and self.seat_type == SeatType.TITULAR

    def address_for(self, channel: str) -> Optional[str]:
        """Return the contact address used for a channel."""
        if channel == NotificationChannel.EMAIL:
            return self.email
        return self.phone


class Meeting(BaseEntity):
    """Council meeting."""

    title: str = Field(..., min_length=1, max_length=300, description="Meeting title")
    type: MeetingType = Field(default=MeetingType.ORDINARY, description="Meeting type")
    scheduled_at: datetime = Field(..., description="Scheduled start (timezone-aware)")
    location: str = Field(..., description="Meeting location")
    status: MeetingStatus = Field(default=MeetingStatus.SCHEDULED, description="Meeting status")
    agenda: Optional[str] = Field(None, description="Agenda text")
    minutes: Optional[str] = Field(None, description="Approved minutes text")

    @field_validator('scheduled_at')
    @classmethod
    def validate_scheduled_at(cls, v):
        """Meeting times must carry a timezone."""
        if v.tzinfo is None:
            raise ValueError('scheduled_at must be timezone-aware')
        return v

    def accepts_attendance(self) -> bool:
        """Attendance can only be recorded for scheduled or held meetings."""
        return self.status in (MeetingStatus.SCHEDULED, MeetingStatus.HELD)


class AttendanceRecord(BaseModel):
    """Attendance of one member at one meeting, keyed by (meeting_id, member_id)."""

    model_config = BaseEntity.model_config

    meeting_id: str = Field(..., description="Meeting identifier")
    member_id: str = Field(..., description="Council member identifier")
    present: bool = Field(..., description="Whether the member attended")
    arrival_time: Optional[datetime] = Field(None, description="Arrival time, set iff present")
    justification: Optional[str] = Field(None, description="Absence justification, set iff absent")
    recorded_at: datetime = Field(default_factory=utc_now, description="When the record was written")

    @model_validator(mode='after')
    def validate_presence_fields(self):
        """Arrival time goes with presence, justification with absence."""
        if self.present:
            if self.arrival_time is None:
                raise ValueError('arrival_time is required when present')
            if self.justification is not None:
                raise ValueError('justification only applies to absences')
        else:
            if self.arrival_time is not None:
                raise ValueError('arrival_time must be empty when absent')
            if self.justification is None:
                raise ValueError('justification is required when absent')
        return self


class Recipient(ValueObject):
    """Resolved recipient of a queued notification."""

    member_id: str = Field(..., description="Council member identifier")
    name: str = Field(..., description="Display name")
    address: str = Field(..., description="E-mail address or phone number for the channel")


class NotificationEvent(BaseEntity):
    """Queued convocation, reminder or cancellation notice for one channel."""

    meeting_id: str = Field(..., description="Meeting identifier")
    kind: NotificationKind = Field(..., description="Notification kind")
    channel: NotificationChannel = Field(..., description="Delivery channel")
    due_at: datetime = Field(..., description="Earliest dispatch time")
    status: NotificationStatus = Field(default=NotificationStatus.PENDING, description="Queue status")
    recipient_count: int = Field(..., ge=1, description="Number of opted-in recipients")
    recipients: List[Recipient] = Field(default_factory=list, description="Resolved recipients")
    include_agenda: bool = Field(default=False, description="Send agenda text with the notice")
    claimed_by: Optional[str] = Field(None, description="Worker holding the dispatch lease")
    claim_expires_at: Optional[datetime] = Field(None, description="Dispatch lease expiry")
    attempt_count: int = Field(default=0, ge=0, description="Dispatch attempts made")
    sent_at: Optional[datetime] = Field(None, description="When dispatch succeeded")
    failed_at: Optional[datetime] = Field(None, description="When dispatch failed")
    cancelled_at: Optional[datetime] = Field(None, description="When the event was cancelled")
    error: Optional[str] = Field(None, description="Last dispatch error")

    @model_validator(mode='after')
    def validate_recipient_count(self):
        """recipient_count mirrors the resolved recipient list when present."""
        if self.recipients and len(self.recipients) != self.recipient_count:
            raise ValueError('recipient_count must match recipients')
        return self

    def is_terminal(self) -> bool:
        """Check whether the event left the pending state."""
        return self.status != NotificationStatus.PENDING


class CouncilAlert(BaseEntity):
    """Append-only mandate or absence alert about a council member."""

    member_id: str = Field(..., description="Council member identifier")
    kind: AlertKind = Field(..., description="Alert kind")
    severity: AlertSeverity = Field(..., description="Alert severity")
    message: str = Field(..., min_length=1, description="Human-readable message")
