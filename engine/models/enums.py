# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the CODEMA council-governance engine.
"""

from enum import Enum


class Segment(str, Enum):
    """Represented sector of a council seat."""
    GOVERNMENT = "government"
    CIVIL_SOCIETY = "civil_society"
    PRODUCTIVE_SECTOR = "productive_sector"
    ACADEMIC = "academic"


class SeatType(str, Enum):
    """Council seat type. Only titular seats count toward quorum."""
    TITULAR = "titular"
    ALTERNATE = "alternate"


class MemberStatus(str, Enum):
    """Council member lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    LICENSED = "licensed"
    REMOVED = "removed"


class MeetingType(str, Enum):
    """Meeting type enumeration."""
    ORDINARY = "ordinary"
    EXTRAORDINARY = "extraordinary"
    PUBLIC = "public"


class MeetingStatus(str, Enum):
    """Meeting lifecycle status."""
    SCHEDULED = "scheduled"
    HELD = "held"
    CANCELLED = "cancelled"


class NotificationKind(str, Enum):
    """Kind of queued council notification."""
    CONVOCATION = "convocation"
    REMINDER_24H = "reminder_24h"
    REMINDER_2H = "reminder_2h"
    CANCELLATION = "cancellation"


class NotificationChannel(str, Enum):
    """Delivery channels handed to the channel sender."""
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


class NotificationStatus(str, Enum):
    """Notification queue status. Everything but PENDING is terminal."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AlertKind(str, Enum):
    """Council member alert kinds."""
    MANDATE_EXPIRED = "mandate_expired"
    MANDATE_EXPIRING = "mandate_expiring"
    ABSENCE_CRITICAL = "absence_critical"
    ABSENCE_WARNING = "absence_warning"


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    WARNING = "warning"
    CRITICAL = "critical"
