# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.

Engine components run against an in-memory record store with the same
interface as CouncilStore, a controllable clock and a recording channel
sender.
"""

import os
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List
from unittest.mock import Mock

import pytest

from domain.errors import ChannelError, StoreError
from models.entities import (
    AttendanceRecord, CouncilAlert, CouncilMember, Meeting, NotificationEvent
)
from models.enums import MeetingStatus, NotificationStatus, Segment
from services.alerts import AlertPublisher
from services.attendance import AttendanceLedger
from services.convocation import ConvocationScheduler
from services.mandates import MandateMonitor
from services.notification_queue import NotificationQueueProcessor

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['MONGODB_DATABASE'] = 'codema_test'

NOW = datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class InMemoryCouncilStore:
    """Thread-safe record store double mirroring CouncilStore."""

    def __init__(self):
        self.members: Dict[str, CouncilMember] = {}
        self.meetings: Dict[str, Meeting] = {}
        self.attendance: Dict[tuple, AttendanceRecord] = {}
        self.events: Dict[str, NotificationEvent] = {}
        self.alerts: List[CouncilAlert] = []
        self.failures: Dict[str, int] = {}
        self.transactions = 0
        self._lock = threading.RLock()

    def fail(self, operation: str, times: int = 1) -> None:
        """Make the next `times` calls of an operation raise StoreError."""
        self.failures[operation] = times

    def _check(self, operation: str) -> None:
        remaining = self.failures.get(operation, 0)
        if remaining:
            self.failures[operation] = remaining - 1
            raise StoreError(f"Store operation {operation} failed: simulated", operation=operation)

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield None

    # Council members

    def save_member(self, member):
        with self._lock:
            self._check("save_member")
            self.members[member.id] = member.model_copy(deep=True)
            return member

    def get_member(self, member_id, session=None):
        with self._lock:
            self._check("get_member")
            member = self.members.get(member_id)
            return member.model_copy(deep=True) if member else None

    def list_members(self, status=None, seat_type=None):
        with self._lock:
            self._check("list_members")
            return [
                member.model_copy(deep=True) for member in self.members.values()
                if (status is None or member.status == status)
                and (seat_type is None or member.seat_type == seat_type)
            ]

    def update_member_counters(self, member_id, consecutive_absences, total_delta, now, session=None):
        with self._lock:
            self._check("update_member_counters")
            member = self.members.get(member_id)
            if member is None:
                return False
            member.consecutive_absences = consecutive_absences
            member.total_absences = max(0, member.total_absences + total_delta)
            member.updated_at = now
            return True

    # Meetings

    def save_meeting(self, meeting):
        with self._lock:
            self._check("save_meeting")
            self.meetings[meeting.id] = meeting.model_copy(deep=True)
            return meeting

    def get_meeting(self, meeting_id, session=None):
        with self._lock:
            self._check("get_meeting")
            meeting = self.meetings.get(meeting_id)
            return meeting.model_copy(deep=True) if meeting else None

    def update_meeting_status(self, meeting_id, from_status, to_status, now):
        with self._lock:
            self._check("update_meeting_status")
            meeting = self.meetings.get(meeting_id)
            if meeting is None or meeting.status != from_status:
                return False
            meeting.status = to_status
            meeting.updated_at = now
            return True

    def list_recent_held_meetings(self, limit, session=None):
        with self._lock:
            self._check("list_recent_held_meetings")
            held = [m for m in self.meetings.values() if m.status == MeetingStatus.HELD]
            held.sort(key=lambda m: m.scheduled_at, reverse=True)
            return [m.model_copy(deep=True) for m in held[:limit]]

    # Attendance

    def upsert_attendance(self, record, session=None):
        with self._lock:
            self._check("upsert_attendance")
            key = (record.meeting_id, record.member_id)
            previous = self.attendance.get(key)
            self.attendance[key] = record.model_copy(deep=True)
            return previous

    def list_attendance(self, meeting_id, present=None):
        with self._lock:
            self._check("list_attendance")
            return [
                record.model_copy(deep=True) for (m_id, _), record in self.attendance.items()
                if m_id == meeting_id and (present is None or record.present == present)
            ]

    def find_member_attendance(self, member_id, meeting_ids, session=None):
        with self._lock:
            self._check("find_member_attendance")
            return {
                m_id: self.attendance[(m_id, member_id)].model_copy(deep=True)
                for m_id in meeting_ids if (m_id, member_id) in self.attendance
            }

    # Notification events

    def insert_notification_events(self, events):
        with self._lock:
            self._check("insert_notification_events")
            for event in events:
                self.events[event.id] = event.model_copy(deep=True)
            return events

    def get_notification_event(self, event_id):
        with self._lock:
            event = self.events.get(event_id)
            return event.model_copy(deep=True) if event else None

    def _claimable(self, event, now):
        return (event.status == NotificationStatus.PENDING
                and (event.claimed_by is None or event.claim_expires_at <= now))

    def find_due_notification_events(self, now, limit):
        with self._lock:
            self._check("find_due_notification_events")
            due = [e for e in self.events.values() if e.due_at <= now and self._claimable(e, now)]
            due.sort(key=lambda e: e.due_at)
            return [e.model_copy(deep=True) for e in due[:limit]]

    def claim_notification_event(self, event_id, worker_id, now, lease_until):
        with self._lock:
            self._check("claim_notification_event")
            event = self.events.get(event_id)
            if event is None or not self._claimable(event, now):
                return None
            event.claimed_by = worker_id
            event.claim_expires_at = lease_until
            event.attempt_count += 1
            event.updated_at = now
            return event.model_copy(deep=True)

    def complete_notification_event(self, event_id, worker_id, status, now, error=None):
        with self._lock:
            self._check("complete_notification_event")
            event = self.events.get(event_id)
            if event is None or event.status != NotificationStatus.PENDING or event.claimed_by != worker_id:
                return None
            event.status = status
            event.claimed_by = None
            event.claim_expires_at = None
            event.updated_at = now
            if status == NotificationStatus.SENT:
                event.sent_at = now
            else:
                event.failed_at = now
                event.error = error
            return event.model_copy(deep=True)

    def cancel_pending_notification_events(self, meeting_id, now):
        with self._lock:
            self._check("cancel_pending_notification_events")
            cancelled = 0
            for event in self.events.values():
                if event.meeting_id == meeting_id and event.status == NotificationStatus.PENDING:
                    event.status = NotificationStatus.CANCELLED
                    event.cancelled_at = now
                    event.updated_at = now
                    cancelled += 1
            return cancelled

    def list_notification_events(self, meeting_id=None):
        with self._lock:
            self._check("list_notification_events")
            events = [e for e in self.events.values() if meeting_id is None or e.meeting_id == meeting_id]
            return [e.model_copy(deep=True) for e in sorted(events, key=lambda e: e.due_at)]

    def count_notification_events(self, status):
        with self._lock:
            self._check("count_notification_events")
            return sum(1 for e in self.events.values() if e.status == status)

    # Alerts

    def insert_alert(self, alert):
        with self._lock:
            self._check("insert_alert")
            self.alerts.append(alert.model_copy(deep=True))
            return alert

    def list_alerts(self, member_id):
        with self._lock:
            return [a.model_copy(deep=True) for a in self.alerts if a.member_id == member_id]


class FakeChannelSender:
    """Channel sender recording every send; failing channels raise ChannelError."""

    def __init__(self):
        self.calls = []
        self.failing_channels = set()
        self.on_send = None
        self._lock = threading.Lock()

    def send(self, channel, recipients, template_data):
        with self._lock:
            self.calls.append((channel, list(recipients), template_data))
        if self.on_send is not None:
            self.on_send(channel, recipients, template_data)
        if channel in self.failing_channels:
            raise ChannelError(f"{channel} gateway unavailable", channel=channel)
        return True

    def sent_event_ids(self):
        return [data.get("event_id") for _, _, data in self.calls if data.get("event_id")]


@pytest.fixture
def clock():
    """Controllable clock set to a Monday afternoon."""
    return FakeClock()


@pytest.fixture
def store():
    """Empty in-memory record store."""
    return InMemoryCouncilStore()


@pytest.fixture
def sender():
    """Recording channel sender."""
    return FakeChannelSender()


@pytest.fixture
def audit():
    """Audit sink mock."""
    return Mock()


@pytest.fixture
def alert_publisher(store, sender):
    return AlertPublisher(store, sender)


@pytest.fixture
def ledger(store, audit, clock, alert_publisher):
    return AttendanceLedger(store, audit, clock, alert_publisher)


@pytest.fixture
def monitor(store, clock, alert_publisher):
    return MandateMonitor(store, clock, alert_publisher)


@pytest.fixture
def scheduler(store, audit, clock):
    return ConvocationScheduler(store, audit, clock)


@pytest.fixture
def processor(store, sender, clock):
    processor = NotificationQueueProcessor(store, sender, clock, worker_id="worker-a", dispatch_timeout=2.0)
    yield processor
    processor.close()


@pytest.fixture
def make_member(store):
    """Factory saving a council member with sensible defaults."""
    def factory(save: bool = True, **overrides) -> CouncilMember:
        fields = {
            "full_name": "Ana Souza",
            "email": "ana@example.org",
            "phone": "(31) 99999-0000",
            "segment": Segment.CIVIL_SOCIETY,
            "mandate_start": date(2024, 1, 1),
            "mandate_end": date(2027, 12, 31),
        }
        fields.update(overrides)
        member = CouncilMember(**fields)
        if save:
            store.save_member(member)
        return member
    return factory


@pytest.fixture
def make_meeting(store, clock):
    """Factory saving a meeting; scheduled ten days out by default."""
    def factory(save: bool = True, **overrides) -> Meeting:
        fields = {
            "title": "Ordinary meeting",
            "scheduled_at": clock.now() + timedelta(days=10),
            "location": "Town hall, room 2",
            "agenda": "1. Approval of minutes\n2. Licensing requests",
        }
        fields.update(overrides)
        meeting = Meeting(**fields)
        if save:
            store.save_meeting(meeting)
        return meeting
    return factory


@pytest.fixture
def held_meetings(make_meeting, clock):
    """Three held meetings, one per past month, oldest first."""
    return [
        make_meeting(title=f"Meeting {i}", status=MeetingStatus.HELD,
                     scheduled_at=clock.now() - timedelta(days=30 * (3 - i)))
        for i in range(3)
    ]
