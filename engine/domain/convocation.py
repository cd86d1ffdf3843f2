# SPDX-License-Identifier: Apache-2.0

"""
Convocation domain logic.

This module contains pure functions deriving the notification events of a
meeting (convocation plus reminders, or a cancellation notice), resolving
recipients per channel, guarding queue status transitions and building the
payload handed to the channel sender.
"""

from datetime import datetime, timedelta
from typing import List, Dict, Any, Iterable

from models.entities import CouncilMember, Meeting, NotificationEvent, Recipient
from models.enums import NotificationKind, NotificationChannel, NotificationStatus, MeetingStatus
from models.requests import ScheduleConfig
from .errors import ValidationError

REMINDER_OFFSETS = {
    NotificationKind.REMINDER_24H: timedelta(hours=24),
    NotificationKind.REMINDER_2H: timedelta(hours=2),
}

# pending is the only state a transition may leave
ALLOWED_TRANSITIONS = {
    NotificationStatus.PENDING: {
        NotificationStatus.SENT,
        NotificationStatus.FAILED,
        NotificationStatus.CANCELLED,
    },
}


def can_transition(current: str, target: str) -> bool:
    """Check whether a queue status transition is allowed."""
    return NotificationStatus(target) in ALLOWED_TRANSITIONS.get(NotificationStatus(current), set())


def resolve_recipients(invitees: Iterable[CouncilMember], channel: str) -> List[Recipient]:
    """
    Resolve the recipients of a channel.

    Members are kept when they opted in to the channel and have an address for
    it. Duplicate members are collapsed.
    """
    recipients = []
    seen = set()
    for member in invitees:
        if member.id in seen or not member.preferences.allows(channel):
            continue
        address = member.address_for(channel)
        if not address:
            continue
        seen.add(member.id)
        recipients.append(Recipient(member_id=member.id, name=member.full_name, address=address))
    return recipients


def compute_due_times(meeting: Meeting, config: ScheduleConfig, now: datetime) -> Dict[str, datetime]:
    """
    Compute due times for a meeting's convocation and reminders.

    The convocation is due lead_days before the meeting, collapsing to now when
    less notice than that remains. Reminders are kept only when enabled and
    still in the future.

    Returns:
        Mapping of notification kind to due time
    """
    due_times = {
        NotificationKind.CONVOCATION.value: max(meeting.scheduled_at - timedelta(days=config.lead_days), now)
    }

    enabled_reminders = {
        NotificationKind.REMINDER_24H: config.reminder_24h,
        NotificationKind.REMINDER_2H: config.reminder_2h,
    }
    for kind, enabled in enabled_reminders.items():
        due_at = meeting.scheduled_at - REMINDER_OFFSETS[kind]
        if enabled and due_at > now:
            due_times[kind.value] = due_at

    return due_times


def plan_notification_events(meeting: Meeting, invitees: List[CouncilMember],
                             config: ScheduleConfig, now: datetime) -> List[NotificationEvent]:
    """
    Derive the pending notification events for a newly scheduled meeting.

    One event is planned per (kind, enabled channel); channels without any
    opted-in recipient produce no event.

    Args:
        meeting: Meeting being convened
        invitees: Council members invited to the meeting
        config: Scheduling configuration
        now: Current time

    Returns:
        List of unsaved NotificationEvent entities

    Raises:
        ValidationError: If the meeting is not scheduled or already started
    """
    if meeting.status != MeetingStatus.SCHEDULED:
        raise ValidationError(f"Cannot convene a {meeting.status} meeting", field="status")
    if meeting.scheduled_at <= now:
        raise ValidationError("Cannot convene a meeting that already started", field="scheduled_at")

    due_times = compute_due_times(meeting, config, now)
    events = []

    for channel in config.channels.enabled():
        recipients = resolve_recipients(invitees, channel.value)
        if not recipients:
            continue
        for kind, due_at in due_times.items():
            events.append(_new_event(meeting, kind, channel.value, due_at, recipients,
                                     config.include_agenda, now))

    return events


def plan_cancellation_events(meeting: Meeting, invitees: List[CouncilMember],
                             channels: Iterable[NotificationChannel], now: datetime) -> List[NotificationEvent]:
    """Derive the cancellation notices for a meeting, due immediately."""
    events = []
    for channel in channels:
        recipients = resolve_recipients(invitees, NotificationChannel(channel).value)
        if recipients:
            events.append(_new_event(meeting, NotificationKind.CANCELLATION.value,
                                     NotificationChannel(channel).value, now, recipients, False, now))
    return events


def _new_event(meeting: Meeting, kind: str, channel: str, due_at: datetime,
               recipients: List[Recipient], include_agenda: bool, now: datetime) -> NotificationEvent:
    return NotificationEvent(
        meeting_id=meeting.id,
        kind=kind,
        channel=channel,
        due_at=due_at,
        status=NotificationStatus.PENDING,
        recipient_count=len(recipients),
        recipients=recipients,
        include_agenda=include_agenda,
        created_at=now,
        updated_at=now
    )


def build_template_data(event: NotificationEvent, meeting: Meeting) -> Dict[str, Any]:
    """
    Build the content payload handed to the channel sender.

    The sender owns template rendering; this only supplies meeting metadata,
    plus the agenda text when the event was configured to include it.
    """
    data = {
        "event_id": event.id,
        "kind": event.kind,
        "meeting": {
            "id": meeting.id,
            "title": meeting.title,
            "type": meeting.type,
            "scheduled_at": meeting.scheduled_at.isoformat(),
            "location": meeting.location,
            "status": meeting.status,
        },
    }
    if event.include_agenda and meeting.agenda:
        data["meeting"]["agenda"] = meeting.agenda
    return data
