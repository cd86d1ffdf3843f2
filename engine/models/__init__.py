# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the CODEMA governance engine.
"""

# Base models
from .base import BaseEntity, ValueObject, generate_object_id, utc_now

# Enumerations
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

# Core entities
from .entities import (
    ChannelPreferences,
    CouncilMember,
    Meeting,
    AttendanceRecord,
    Recipient,
    NotificationEvent,
    CouncilAlert
)

# Request models
from .requests import (
    ChannelSelection,
    ScheduleConfig,
    AttendanceEntry,
    BulkAttendanceRequest
)

# Response models
from .responses import (
    QuorumResult,
    QuorumStatus,
    MandateStatus,
    AbsenceCheck,
    StatusReport,
    AlertDispatchResult,
    ProcessingReport,
    NotificationReport,
    MeetingStats,
    AttendanceOutcome
)

__all__ = [
    "BaseEntity",
    "ValueObject",
    "generate_object_id",
    "utc_now",
    "Segment",
    "SeatType",
    "MemberStatus",
    "MeetingType",
    "MeetingStatus",
    "NotificationKind",
    "NotificationChannel",
    "NotificationStatus",
    "AlertKind",
    "AlertSeverity",
    "ChannelPreferences",
    "CouncilMember",
    "Meeting",
    "AttendanceRecord",
    "Recipient",
    "NotificationEvent",
    "CouncilAlert",
    "ChannelSelection",
    "ScheduleConfig",
    "AttendanceEntry",
    "BulkAttendanceRequest",
    "QuorumResult",
    "QuorumStatus",
    "MandateStatus",
    "AbsenceCheck",
    "StatusReport",
    "AlertDispatchResult",
    "ProcessingReport",
    "NotificationReport",
    "MeetingStats",
    "AttendanceOutcome"
]
