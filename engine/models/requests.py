# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for engine operations.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator
from .enums import NotificationChannel


class ChannelSelection(BaseModel):
    """Channels enabled for a meeting's notifications."""

    model_config = ConfigDict(frozen=True)

    email: bool = Field(default=True, description="Enable e-mail")
    sms: bool = Field(default=True, description="Enable SMS")
    whatsapp: bool = Field(default=False, description="Enable WhatsApp")

    def enabled(self) -> List[NotificationChannel]:
        """Enabled channels in a stable order."""
        return [
            channel for channel in NotificationChannel
            if getattr(self, channel.value)
        ]


class ScheduleConfig(BaseModel):
    """Convocation scheduling configuration for a meeting."""

    model_config = ConfigDict(frozen=True)

    lead_days: int = Field(default=3, ge=0, le=365, description="Days of notice before the meeting")
    reminder_24h: bool = Field(default=True, description="Queue a reminder 24 hours before")
    reminder_2h: bool = Field(default=True, description="Queue a reminder 2 hours before")
    include_agenda: bool = Field(default=True, description="Send agenda text with notices")
    channels: ChannelSelection = Field(default_factory=ChannelSelection, description="Enabled channels")


class AttendanceEntry(BaseModel):
    """One line of a bulk attendance registration."""

    member_id: str = Field(..., min_length=1, description="Council member identifier")
    present: bool = Field(..., description="Whether the member attended")
    justification: Optional[str] = Field(None, description="Absence justification")

    @model_validator(mode='after')
    def default_justification(self):
        """Absent entries without a justification record an empty one."""
        if not self.present and self.justification is None:
            self.justification = ""
        return self


class BulkAttendanceRequest(BaseModel):
    """Attendance registration for many members of one meeting."""

    meeting_id: str = Field(..., min_length=1, description="Meeting identifier")
    entries: List[AttendanceEntry] = Field(..., min_length=1, description="Attendance entries")

    @model_validator(mode='after')
    def validate_unique_members(self):
        """A member may appear only once per registration."""
        member_ids = [entry.member_id for entry in self.entries]
        if len(member_ids) != len(set(member_ids)):
            raise ValueError('Each member may appear only once')
        return self
