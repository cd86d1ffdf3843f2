# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Council record store backed by MongoDB.

Every call runs under a client-side timeout and inside a tracing span; any
pymongo failure surfaces as StoreError. Notification status changes are
single compare-and-swap updates on the `status` field, so the first terminal
transition wins.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Any, Iterable

import pymongo
from pymongo import ReturnDocument, DESCENDING, ASCENDING
from pymongo.errors import PyMongoError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.errors import StoreError
from models.entities import CouncilMember, Meeting, AttendanceRecord, NotificationEvent, CouncilAlert
from models.enums import MeetingStatus, NotificationStatus
from .mongodb import MongoDBService, MEMBERS, MEETINGS, ATTENDANCE, NOTIFICATION_EVENTS, ALERTS

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DATE_FIELDS = ("mandate_start", "mandate_end")


def to_document(entity) -> Dict[str, Any]:
    """Convert an entity to a Mongo document; BSON has no plain date type."""
    document = entity.model_dump()
    for key in DATE_FIELDS:
        value = document.get(key)
        if isinstance(value, date) and not isinstance(value, datetime):
            document[key] = datetime.combine(value, time.min, tzinfo=timezone.utc)
    if "id" in document:
        document["_id"] = document.pop("id")
    return document


def from_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a Mongo document back to entity fields."""
    document = dict(document)
    _id = document.pop("_id", None)
    if "id" not in document and isinstance(_id, str):
        document["id"] = _id
    for key in DATE_FIELDS:
        value = document.get(key)
        if isinstance(value, datetime):
            document[key] = value.date()
    return document


class CouncilStore:
    """Record store for members, meetings, attendance, notification events and alerts."""

    def __init__(self, mongo_service: MongoDBService, operation_timeout: float = 5.0):
        self.mongo_service = mongo_service
        self.operation_timeout = operation_timeout
        logger.info("Council store initialized")

    def _collection(self, name: str):
        return self.mongo_service.get_collection(name)

    @contextmanager
    def _operation(self, name: str, **attributes):
        """Trace, time-bound and error-translate one store call."""
        with tracer.start_as_current_span(f"store.{name}") as span:
            span.set_attributes({
                f"store.{key}": value for key, value in attributes.items() if value is not None
            })
            try:
                with pymongo.timeout(self.operation_timeout):
                    yield span
            except PyMongoError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(
                    f"Store operation {name} failed",
                    extra={"extra_fields": {"operation": name, "error": str(e), **attributes}}
                )
                raise StoreError(f"Store operation {name} failed: {e}", operation=name) from e

    @contextmanager
    def transaction(self):
        """
        MongoDB service transaction scope; failing to start or commit it
        raises StoreError like any other store call.
        """
        try:
            with self.mongo_service.transaction() as session:
                yield session
        except PyMongoError as e:
            logger.error(
                "Store transaction failed",
                extra={"extra_fields": {"operation": "transaction", "error": str(e)}}
            )
            raise StoreError(f"Store transaction failed: {e}", operation="transaction") from e

    # Council members

    def save_member(self, member: CouncilMember) -> CouncilMember:
        """Insert or replace a member."""
        with self._operation("save_member", member_id=member.id):
            self._collection(MEMBERS).replace_one({"_id": member.id}, to_document(member), upsert=True)
        return member

    def get_member(self, member_id: str, session=None) -> Optional[CouncilMember]:
        with self._operation("get_member", member_id=member_id):
            document = self._collection(MEMBERS).find_one({"_id": member_id}, session=session)
        return CouncilMember(**from_document(document)) if document else None

    def list_members(self, status: str = None, seat_type: str = None) -> List[CouncilMember]:
        query = {}
        if status:
            query["status"] = status
        if seat_type:
            query["seat_type"] = seat_type
        with self._operation("list_members", status=status, seat_type=seat_type):
            documents = list(self._collection(MEMBERS).find(query).sort("full_name", ASCENDING))
        return [CouncilMember(**from_document(document)) for document in documents]

    def update_member_counters(self, member_id: str, consecutive_absences: int, total_delta: int,
                               now: datetime, session=None) -> bool:
        """Write the cached absence counters; total_absences never drops below zero."""
        update = [
            {"$set": {
                "consecutive_absences": consecutive_absences,
                "total_absences": {"$max": [0, {"$add": [{"$ifNull": ["$total_absences", 0]}, total_delta]}]},
                "updated_at": now,
            }}
        ]
        with self._operation("update_member_counters", member_id=member_id):
            result = self._collection(MEMBERS).update_one({"_id": member_id}, update, session=session)
        return result.matched_count > 0

    # Meetings

    def save_meeting(self, meeting: Meeting) -> Meeting:
        with self._operation("save_meeting", meeting_id=meeting.id):
            self._collection(MEETINGS).replace_one({"_id": meeting.id}, to_document(meeting), upsert=True)
        return meeting

    def get_meeting(self, meeting_id: str, session=None) -> Optional[Meeting]:
        with self._operation("get_meeting", meeting_id=meeting_id):
            document = self._collection(MEETINGS).find_one({"_id": meeting_id}, session=session)
        return Meeting(**from_document(document)) if document else None

    def update_meeting_status(self, meeting_id: str, from_status: str, to_status: str, now: datetime) -> bool:
        """Move a meeting between statuses only if it is still in from_status."""
        with self._operation("update_meeting_status", meeting_id=meeting_id, to_status=to_status):
            result = self._collection(MEETINGS).update_one(
                {"_id": meeting_id, "status": from_status},
                {"$set": {"status": to_status, "updated_at": now}}
            )
        return result.modified_count > 0

    def list_recent_held_meetings(self, limit: int, session=None) -> List[Meeting]:
        """Most recent held meetings, newest first."""
        with self._operation("list_recent_held_meetings", limit=limit):
            cursor = self._collection(MEETINGS).find(
                {"status": MeetingStatus.HELD.value}, session=session
            ).sort("scheduled_at", DESCENDING).limit(limit)
            documents = list(cursor)
        return [Meeting(**from_document(document)) for document in documents]

    # Attendance

    def upsert_attendance(self, record: AttendanceRecord, session=None) -> Optional[AttendanceRecord]:
        """
        Write the single record for (meeting_id, member_id).

        Returns:
            The record it replaced, or None when none existed
        """
        fields = record.model_dump()
        with self._operation("upsert_attendance", meeting_id=record.meeting_id, member_id=record.member_id):
            previous = self._collection(ATTENDANCE).find_one_and_update(
                {"meeting_id": record.meeting_id, "member_id": record.member_id},
                {"$set": fields},
                upsert=True,
                return_document=ReturnDocument.BEFORE,
                session=session
            )
        return AttendanceRecord(**from_document(previous)) if previous else None

    def list_attendance(self, meeting_id: str, present: bool = None) -> List[AttendanceRecord]:
        query = {"meeting_id": meeting_id}
        if present is not None:
            query["present"] = present
        with self._operation("list_attendance", meeting_id=meeting_id):
            documents = list(self._collection(ATTENDANCE).find(query))
        return [AttendanceRecord(**from_document(document)) for document in documents]

    def find_member_attendance(self, member_id: str, meeting_ids: Iterable[str],
                               session=None) -> Dict[str, AttendanceRecord]:
        """A member's records for the given meetings, keyed by meeting id."""
        meeting_ids = list(meeting_ids)
        if not meeting_ids:
            return {}
        with self._operation("find_member_attendance", member_id=member_id):
            documents = list(self._collection(ATTENDANCE).find(
                {"member_id": member_id, "meeting_id": {"$in": meeting_ids}}, session=session
            ))
        records = [AttendanceRecord(**from_document(document)) for document in documents]
        return {record.meeting_id: record for record in records}

    # Notification events

    def insert_notification_events(self, events: List[NotificationEvent]) -> List[NotificationEvent]:
        if not events:
            return events
        with self._operation("insert_notification_events", count=len(events)):
            self._collection(NOTIFICATION_EVENTS).insert_many([to_document(event) for event in events])
        return events

    def get_notification_event(self, event_id: str) -> Optional[NotificationEvent]:
        with self._operation("get_notification_event", event_id=event_id):
            document = self._collection(NOTIFICATION_EVENTS).find_one({"_id": event_id})
        return NotificationEvent(**from_document(document)) if document else None

    def find_due_notification_events(self, now: datetime, limit: int) -> List[NotificationEvent]:
        """Pending events due by now whose dispatch lease is free or expired."""
        query = {
            "status": NotificationStatus.PENDING.value,
            "due_at": {"$lte": now},
            "$or": [{"claimed_by": None}, {"claim_expires_at": {"$lte": now}}],
        }
        with self._operation("find_due_notification_events", limit=limit):
            cursor = self._collection(NOTIFICATION_EVENTS).find(query).sort("due_at", ASCENDING).limit(limit)
            documents = list(cursor)
        return [NotificationEvent(**from_document(document)) for document in documents]

    def claim_notification_event(self, event_id: str, worker_id: str, now: datetime,
                                 lease_until: datetime) -> Optional[NotificationEvent]:
        """
        Take the dispatch lease on a pending event.

        Returns:
            The claimed event, or None when another worker holds it or it left pending
        """
        query = {
            "_id": event_id,
            "status": NotificationStatus.PENDING.value,
            "$or": [{"claimed_by": None}, {"claim_expires_at": {"$lte": now}}],
        }
        update = {
            "$set": {"claimed_by": worker_id, "claim_expires_at": lease_until, "updated_at": now},
            "$inc": {"attempt_count": 1},
        }
        with self._operation("claim_notification_event", event_id=event_id, worker_id=worker_id):
            document = self._collection(NOTIFICATION_EVENTS).find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        return NotificationEvent(**from_document(document)) if document else None

    def complete_notification_event(self, event_id: str, worker_id: str, status: str, now: datetime,
                                    error: str = None) -> Optional[NotificationEvent]:
        """
        Apply the terminal status of a dispatch held under this worker's lease.

        Returns:
            The updated event, or None when the event was cancelled or re-claimed meanwhile
        """
        fields = {
            "status": status,
            "claimed_by": None,
            "claim_expires_at": None,
            "updated_at": now,
        }
        if status == NotificationStatus.SENT:
            fields["sent_at"] = now
        else:
            fields["failed_at"] = now
            fields["error"] = error

        with self._operation("complete_notification_event", event_id=event_id, status=status):
            document = self._collection(NOTIFICATION_EVENTS).find_one_and_update(
                {"_id": event_id, "status": NotificationStatus.PENDING.value, "claimed_by": worker_id},
                {"$set": fields},
                return_document=ReturnDocument.AFTER
            )
        return NotificationEvent(**from_document(document)) if document else None

    def cancel_pending_notification_events(self, meeting_id: str, now: datetime) -> int:
        """Cancel every pending event of a meeting; sent and failed events are left alone."""
        with self._operation("cancel_pending_notification_events", meeting_id=meeting_id):
            result = self._collection(NOTIFICATION_EVENTS).update_many(
                {"meeting_id": meeting_id, "status": NotificationStatus.PENDING.value},
                {"$set": {"status": NotificationStatus.CANCELLED.value, "cancelled_at": now, "updated_at": now}}
            )
        return result.modified_count

    def list_notification_events(self, meeting_id: str = None) -> List[NotificationEvent]:
        query = {"meeting_id": meeting_id} if meeting_id else {}
        with self._operation("list_notification_events", meeting_id=meeting_id):
            documents = list(self._collection(NOTIFICATION_EVENTS).find(query).sort("due_at", ASCENDING))
        return [NotificationEvent(**from_document(document)) for document in documents]

    def count_notification_events(self, status: str) -> int:
        with self._operation("count_notification_events", status=status):
            return self._collection(NOTIFICATION_EVENTS).count_documents({"status": status})

    # Alerts

    def insert_alert(self, alert: CouncilAlert) -> CouncilAlert:
        with self._operation("insert_alert", member_id=alert.member_id, kind=alert.kind):
            self._collection(ALERTS).insert_one(to_document(alert))
        return alert

    def list_alerts(self, member_id: str) -> List[CouncilAlert]:
        with self._operation("list_alerts", member_id=member_id):
            documents = list(self._collection(ALERTS).find({"member_id": member_id}).sort("created_at", ASCENDING))
        return [CouncilAlert(**from_document(document)) for document in documents]
