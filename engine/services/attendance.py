# SPDX-License-Identifier: Apache-2.0

"""
Attendance ledger.

Records per-meeting, per-member attendance and keeps each member's absence
counters in step with it. The consecutive-absence count is always rebuilt
from the most recent held meetings; the value stored on the member is a cache
of that scan.
"""

import logging
from datetime import datetime
from typing import List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.attendance import (
    ABSENCE_SCAN_WINDOW,
    build_presence_record,
    build_absence_record,
    ensure_meeting_accepts_attendance,
    count_trailing_absences,
    total_absences_delta
)
from domain.errors import NotFoundError, StoreError
from domain.mandates import build_absence_alert
from domain.quorum import compute_quorum
from models.entities import AttendanceRecord
from models.enums import MemberStatus, SeatType
from models.requests import BulkAttendanceRequest
from models.responses import AttendanceOutcome, QuorumStatus, MeetingStats
from .alerts import AlertPublisher

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AttendanceLedger:
    """Attendance state, absence bookkeeping and meeting quorum."""

    def __init__(self, store, audit, clock, alert_publisher: Optional[AlertPublisher] = None, cache=None):
        self.store = store
        self.audit = audit
        self.clock = clock
        self.alert_publisher = alert_publisher or AlertPublisher(store)
        self.cache = cache

    def _load(self, meeting_id: str, member_id: str):
        meeting = self.store.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        member = self.store.get_member(member_id)
        if member is None:
            raise NotFoundError("CouncilMember", member_id)
        ensure_meeting_accepts_attendance(meeting)
        return meeting, member

    def mark_present(self, meeting_id: str, member_id: str, arrival_time: datetime) -> AttendanceOutcome:
        """
        Record a member as present and reset their consecutive absences.

        Args:
            meeting_id: Scheduled or held meeting
            member_id: Council member
            arrival_time: When the member arrived

        Returns:
            AttendanceOutcome with consecutive_absences 0

        Raises:
            ValidationError: Missing arrival time or meeting not open for attendance
            NotFoundError: Unknown meeting or member
            StoreError: The ledger write failed
        """
        with tracer.start_as_current_span("attendance.mark_present") as span:
            span.set_attributes({"meeting.id": meeting_id, "member.id": member_id})

            self._load(meeting_id, member_id)
            record = build_presence_record(meeting_id, member_id, arrival_time, self.clock.now())

            try:
                self._write(record, span)
            except StoreError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            self.audit.log("attendance.mark_present", "attendance_record", f"{meeting_id}:{member_id}", {
                "meeting_id": meeting_id,
                "member_id": member_id,
                "arrival_time": arrival_time.isoformat()
            })

            return AttendanceOutcome(member_id=member_id, present=True, consecutive_absences=0)

    def mark_absent(self, meeting_id: str, member_id: str, justification: str) -> AttendanceOutcome:
        """
        Record a member as absent and re-evaluate the absence alert policy.

        Args:
            meeting_id: Scheduled or held meeting
            member_id: Council member
            justification: Absence justification; an empty string is accepted

        Returns:
            AttendanceOutcome with the rebuilt consecutive count and any alert raised

        Raises:
            ValidationError: Missing justification or meeting not open for attendance
            NotFoundError: Unknown meeting or member
            StoreError: The ledger write or the alert write failed
        """
        with tracer.start_as_current_span("attendance.mark_absent") as span:
            span.set_attributes({"meeting.id": meeting_id, "member.id": member_id})

            _, member = self._load(meeting_id, member_id)
            record = build_absence_record(meeting_id, member_id, justification, self.clock.now())

            try:
                consecutive = self._write(record, span)
            except StoreError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            self.audit.log("attendance.mark_absent", "attendance_record", f"{meeting_id}:{member_id}", {
                "meeting_id": meeting_id,
                "member_id": member_id,
                "justified": bool(justification),
                "consecutive_absences": consecutive
            })

            alert = build_absence_alert(member_id, consecutive, self.clock.now())
            if alert is not None:
                self.alert_publisher.record(alert)
                self.alert_publisher.forward(member, alert)
                span.set_attribute("attendance.alert", alert.kind)

            return AttendanceOutcome(
                member_id=member_id,
                present=False,
                consecutive_absences=consecutive,
                alert=alert
            )

    def _write(self, record: AttendanceRecord, span) -> int:
        """
        Upsert the record and refresh the member's counters as one unit.

        The counter refresh is retried once; a second failure aborts the
        transaction when transactions are enabled.

        Returns:
            The member's consecutive absence count after the write
        """
        with self.store.transaction() as session:
            previous = self.store.upsert_attendance(record, session=session)
            delta = total_absences_delta(previous, record.present)

            try:
                consecutive = self._refresh_counters(record, delta, session)
            except StoreError as e:
                logger.warning(
                    "Absence counter refresh failed, retrying once",
                    extra={"extra_fields": {
                        "meeting_id": record.meeting_id,
                        "member_id": record.member_id,
                        "error": str(e)
                    }}
                )
                span.add_event("counter_refresh_retry")
                consecutive = self._refresh_counters(record, delta, session)

        # counters feed the roster status report
        if self.cache is not None:
            self.cache.invalidate_status_report()

        logger.info(
            "Attendance recorded",
            extra={"extra_fields": {
                "meeting_id": record.meeting_id,
                "member_id": record.member_id,
                "present": record.present,
                "replaced": previous is not None,
                "consecutive_absences": consecutive
            }}
        )
        return consecutive

    def _refresh_counters(self, record: AttendanceRecord, delta: int, session) -> int:
        if record.present:
            consecutive = 0
        else:
            held = self.store.list_recent_held_meetings(ABSENCE_SCAN_WINDOW, session=session)
            held_ids = [meeting.id for meeting in held]
            records = self.store.find_member_attendance(record.member_id, held_ids, session=session)
            consecutive = count_trailing_absences(held_ids, records)

        self.store.update_member_counters(record.member_id, consecutive, delta, self.clock.now(), session=session)
        return consecutive

    def get_quorum_status(self, meeting_id: str) -> QuorumStatus:
        """
        Join the active titular roster with a meeting's attendance.

        Only present records of active titular members count.
        """
        with tracer.start_as_current_span("attendance.get_quorum_status") as span:
            span.set_attribute("meeting.id", meeting_id)

            meeting = self.store.get_meeting(meeting_id)
            if meeting is None:
                raise NotFoundError("Meeting", meeting_id)

            titulars = self.store.list_members(status=MemberStatus.ACTIVE.value, seat_type=SeatType.TITULAR.value)
            titular_ids = {member.id for member in titulars}
            present = self.store.list_attendance(meeting_id, present=True)
            present_count = len({record.member_id for record in present if record.member_id in titular_ids})

            result = compute_quorum(len(titular_ids), present_count)
            span.set_attributes({
                "quorum.active_titulars": len(titular_ids),
                "quorum.present": present_count,
                "quorum.has_quorum": result.has_quorum
            })

            return QuorumStatus(
                meeting_id=meeting_id,
                active_titular_count=len(titular_ids),
                present_count=present_count,
                minimum=result.minimum,
                qualified=result.qualified,
                has_quorum=result.has_quorum,
                presence_percent=result.presence_percent
            )

    def register_bulk_attendance(self, request: BulkAttendanceRequest,
                                 arrival_time: datetime = None) -> List[AttendanceOutcome]:
        """
        Apply a roll call in one call.

        Entries are applied in order and the first failure is raised; entries
        before it stay recorded.

        Args:
            request: Meeting and per-member entries
            arrival_time: Arrival time stamped on present members (defaults to now)

        Returns:
            One AttendanceOutcome per entry
        """
        arrival_time = arrival_time or self.clock.now()
        outcomes = []
        for entry in request.entries:
            if entry.present:
                outcomes.append(self.mark_present(request.meeting_id, entry.member_id, arrival_time))
            else:
                outcomes.append(self.mark_absent(request.meeting_id, entry.member_id, entry.justification))

        logger.info(f"Bulk attendance registered for meeting {request.meeting_id}: {len(outcomes)} entries")
        return outcomes

    def meeting_stats(self, meeting_id: str) -> MeetingStats:
        """Presence percentage, quorum flag and minutes presence for a meeting."""
        meeting = self.store.get_meeting(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)

        status = self.get_quorum_status(meeting_id)
        return MeetingStats(
            meeting_id=meeting_id,
            presence_percent=status.presence_percent,
            has_quorum=status.has_quorum,
            has_minutes=bool(meeting.minutes and meeting.minutes.strip())
        )
