# SPDX-License-Identifier: Apache-2.0

"""
Convocation scheduler.

Derives the notification events of a meeting and persists them as pending
queue entries; cancels a meeting's pending entries when it is called off.
"""

import logging
from collections import Counter
from typing import List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.convocation import plan_notification_events, plan_cancellation_events
from domain.errors import NotFoundError, StoreError, ValidationError
from domain.validation import ensure_valid, validate_meeting_data
from models.entities import CouncilMember, Meeting, NotificationEvent
from models.enums import MeetingStatus, MemberStatus, NotificationStatus
from models.requests import ScheduleConfig, ChannelSelection
from models.responses import NotificationReport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ConvocationScheduler:
    """Plans, enqueues and cancels meeting notifications."""

    def __init__(self, store, audit, clock):
        self.store = store
        self.audit = audit
        self.clock = clock

    def schedule(self, meeting: Meeting, invitees: List[CouncilMember],
                 config: Optional[ScheduleConfig] = None) -> List[NotificationEvent]:
        """
        Enqueue the convocation and reminders of a meeting.

        Args:
            meeting: Scheduled meeting in the future
            invitees: Members to convene
            config: Lead time, reminders, agenda inclusion and channels

        Returns:
            The pending NotificationEvents written to the queue

        Raises:
            ValidationError: If the meeting is not scheduled, already started or
                fails meeting validation (location, agenda of an extraordinary meeting)
            StoreError: If the queue write failed
        """
        config = config or ScheduleConfig()

        with tracer.start_as_current_span("convocation.schedule") as span:
            span.set_attributes({
                "meeting.id": meeting.id,
                "convocation.invitees": len(invitees),
                "convocation.lead_days": config.lead_days
            })

            now = self.clock.now()
            validation = validate_meeting_data(meeting.model_dump(), now)
            ensure_valid(validation)
            for warning in validation.warnings:
                logger.warning(warning, extra={"extra_fields": {"meeting_id": meeting.id}})

            events = plan_notification_events(meeting, invitees, config, now)
            if not events:
                logger.warning(
                    "No notification events planned; no invitee is reachable on the enabled channels",
                    extra={"extra_fields": {"meeting_id": meeting.id}}
                )
                return []

            try:
                self.store.insert_notification_events(events)
            except StoreError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("convocation.events", len(events))
            logger.info(
                f"Queued {len(events)} notification events for meeting {meeting.id}",
                extra={"extra_fields": {
                    "meeting_id": meeting.id,
                    "kinds": sorted({event.kind for event in events}),
                    "channels": sorted({event.channel for event in events})
                }}
            )
            self.audit.log("convocation.schedule", "meeting", meeting.id, {"events": len(events)})
            return events

    def cancel(self, meeting_id: str) -> int:
        """
        Cancel every pending event of a meeting.

        Sent and failed events are history and stay untouched.

        Returns:
            Number of events cancelled
        """
        with tracer.start_as_current_span("convocation.cancel") as span:
            span.set_attribute("meeting.id", meeting_id)

            cancelled = self.store.cancel_pending_notification_events(meeting_id, self.clock.now())

            span.set_attribute("convocation.cancelled", cancelled)
            logger.info(f"Cancelled {cancelled} pending notification events for meeting {meeting_id}")
            self.audit.log("convocation.cancel", "meeting", meeting_id, {"cancelled": cancelled})
            return cancelled

    def cancel_meeting(self, meeting_id: str, invitees: Optional[List[CouncilMember]] = None,
                       channels: Optional[ChannelSelection] = None) -> List[NotificationEvent]:
        """
        Call off a scheduled meeting and queue the cancellation notices.

        Args:
            meeting_id: Meeting to cancel
            invitees: Members to notify; every active member when omitted
            channels: Channels for the notice; the default selection when omitted

        Returns:
            The cancellation NotificationEvents, due immediately

        Raises:
            NotFoundError: Unknown meeting
            ValidationError: Meeting is not in scheduled status
        """
        channels = channels or ChannelSelection()

        with tracer.start_as_current_span("convocation.cancel_meeting") as span:
            span.set_attribute("meeting.id", meeting_id)

            meeting = self.store.get_meeting(meeting_id)
            if meeting is None:
                raise NotFoundError("Meeting", meeting_id)

            now = self.clock.now()
            moved = self.store.update_meeting_status(
                meeting_id, MeetingStatus.SCHEDULED.value, MeetingStatus.CANCELLED.value, now
            )
            if not moved:
                raise ValidationError(f"Only scheduled meetings can be cancelled (is {meeting.status})",
                                      field="status")
            meeting.status = MeetingStatus.CANCELLED

            self.cancel(meeting_id)

            if invitees is None:
                invitees = self.store.list_members(status=MemberStatus.ACTIVE.value)
            events = plan_cancellation_events(meeting, invitees, channels.enabled(), now)
            self.store.insert_notification_events(events)

            logger.info(
                f"Meeting {meeting_id} cancelled",
                extra={"extra_fields": {"meeting_id": meeting_id, "notices": len(events)}}
            )
            self.audit.log("meeting.cancel", "meeting", meeting_id, {"notices": len(events)})
            return events

    def notification_report(self, meeting_id: Optional[str] = None) -> NotificationReport:
        """Queue totals by status and by kind, for one meeting or the whole queue."""
        with tracer.start_as_current_span("convocation.notification_report") as span:
            if meeting_id:
                span.set_attribute("meeting.id", meeting_id)

            events = self.store.list_notification_events(meeting_id)
            statuses = Counter(event.status for event in events)

            return NotificationReport(
                total=len(events),
                pending=statuses[NotificationStatus.PENDING.value],
                sent=statuses[NotificationStatus.SENT.value],
                failed=statuses[NotificationStatus.FAILED.value],
                cancelled=statuses[NotificationStatus.CANCELLED.value],
                by_kind=dict(Counter(event.kind for event in events))
            )
