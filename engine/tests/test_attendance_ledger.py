# SPDX-License-Identifier: Apache-2.0

"""
Tests for the attendance ledger: marks, absence counters, alerts and quorum.
"""

from datetime import datetime, timedelta, timezone

import pytest

from domain.attendance import count_trailing_absences, total_absences_delta
from domain.errors import NotFoundError, StoreError, ValidationError
from models.entities import AttendanceRecord
from models.enums import AlertKind, MeetingStatus, MemberStatus, SeatType
from models.requests import AttendanceEntry, BulkAttendanceRequest


class TestMarkPresent:
    """Test presence marks."""

    def test_resets_consecutive_absences(self, ledger, make_member, make_meeting, store, clock):
        """Marking present resets the counter whatever its prior value."""
        member = make_member(consecutive_absences=5, total_absences=7)
        meeting = make_meeting()

        outcome = ledger.mark_present(meeting.id, member.id, clock.now())

        assert outcome.consecutive_absences == 0
        stored = store.get_member(member.id)
        assert stored.consecutive_absences == 0
        assert stored.total_absences == 7

    def test_record_carries_arrival_time(self, ledger, make_member, make_meeting, store, clock):
        member = make_member()
        meeting = make_meeting()
        arrival = clock.now() + timedelta(minutes=3)

        ledger.mark_present(meeting.id, member.id, arrival)

        record = store.attendance[(meeting.id, member.id)]
        assert record.present is True
        assert record.arrival_time == arrival
        assert record.justification is None

    def test_missing_arrival_time_rejected(self, ledger, make_member, make_meeting, store):
        member = make_member()
        meeting = make_meeting()

        with pytest.raises(ValidationError) as exc_info:
            ledger.mark_present(meeting.id, member.id, None)

        assert exc_info.value.field == "arrival_time"
        assert store.attendance == {}

    def test_cancelled_meeting_rejected(self, ledger, make_member, make_meeting, clock):
        member = make_member()
        meeting = make_meeting(status=MeetingStatus.CANCELLED)

        with pytest.raises(ValidationError):
            ledger.mark_present(meeting.id, member.id, clock.now())

    def test_unknown_member(self, ledger, make_meeting, clock):
        meeting = make_meeting()
        with pytest.raises(NotFoundError):
            ledger.mark_present(meeting.id, "missing", clock.now())

    def test_present_after_absence_corrects_total(self, ledger, make_member, held_meetings, store, clock):
        member = make_member()
        ledger.mark_absent(held_meetings[2].id, member.id, "")
        assert store.get_member(member.id).total_absences == 1

        ledger.mark_present(held_meetings[2].id, member.id, clock.now())

        assert store.get_member(member.id).total_absences == 0
        assert len(store.attendance) == 1


class TestMarkAbsent:
    """Test absence marks and the consecutive-absence scan."""

    def test_empty_justification_accepted(self, ledger, make_member, held_meetings, store):
        member = make_member()

        ledger.mark_absent(held_meetings[2].id, member.id, "")

        record = store.attendance[(held_meetings[2].id, member.id)]
        assert record.present is False
        assert record.justification == ""
        assert record.arrival_time is None

    def test_missing_justification_rejected(self, ledger, make_member, held_meetings, store):
        member = make_member()
        with pytest.raises(ValidationError) as exc_info:
            ledger.mark_absent(held_meetings[2].id, member.id, None)
        assert exc_info.value.field == "justification"
        assert store.attendance == {}

    def test_repeated_mark_is_single_record(self, ledger, make_member, held_meetings, store):
        """Marking the same absence twice upserts one record."""
        member = make_member()

        ledger.mark_absent(held_meetings[2].id, member.id, "Medical appointment")
        ledger.mark_absent(held_meetings[2].id, member.id, "Medical appointment")

        records = [key for key in store.attendance if key[1] == member.id]
        assert len(records) == 1
        stored = store.get_member(member.id)
        assert stored.total_absences == 1
        assert stored.consecutive_absences == 1

    def test_three_absences_raise_one_critical_alert(self, ledger, make_member, held_meetings, store):
        """Three consecutive absences across held meetings produce exactly one critical alert."""
        member = make_member()

        outcomes = [ledger.mark_absent(meeting.id, member.id, "") for meeting in held_meetings]

        assert [o.consecutive_absences for o in outcomes] == [1, 2, 3]
        kinds = [alert.kind for alert in store.list_alerts(member.id)]
        assert kinds.count(AlertKind.ABSENCE_CRITICAL.value) == 1
        assert kinds.count(AlertKind.ABSENCE_WARNING.value) == 1
        assert outcomes[2].alert.severity == "critical"
        assert "subject to mandate loss" in outcomes[2].alert.message

    def test_presence_breaks_the_streak(self, ledger, make_member, held_meetings, store, clock):
        member = make_member()
        ledger.mark_absent(held_meetings[0].id, member.id, "")
        ledger.mark_present(held_meetings[1].id, member.id, clock.now())

        outcome = ledger.mark_absent(held_meetings[2].id, member.id, "")

        assert outcome.consecutive_absences == 1
        assert outcome.alert is None

    def test_scan_is_source_of_truth(self, ledger, make_member, held_meetings, store):
        """A drifted stored counter is replaced by the scan result."""
        member = make_member(consecutive_absences=9)

        outcome = ledger.mark_absent(held_meetings[2].id, member.id, "")

        assert outcome.consecutive_absences == 1
        assert store.get_member(member.id).consecutive_absences == 1

    def test_alert_forwarded_to_channels(self, ledger, make_member, held_meetings, sender):
        member = make_member()
        for meeting in held_meetings[1:]:
            ledger.mark_absent(meeting.id, member.id, "")

        assert {call[0] for call in sender.calls} == {"email", "sms"}
        assert all(call[2]["kind"] == AlertKind.ABSENCE_WARNING.value for call in sender.calls)

    def test_write_runs_in_transaction(self, ledger, make_member, held_meetings, store):
        member = make_member()
        ledger.mark_absent(held_meetings[2].id, member.id, "")
        assert store.transactions == 1

    def test_audit_entry_written(self, ledger, make_member, held_meetings, audit):
        member = make_member()
        ledger.mark_absent(held_meetings[2].id, member.id, "Travel")
        audit.log.assert_called_once()
        assert audit.log.call_args[0][0] == "attendance.mark_absent"


class TestFailureSemantics:
    """Test store failure handling."""

    def test_counter_refresh_retried_once(self, ledger, make_member, held_meetings, store):
        member = make_member()
        store.fail("update_member_counters", times=1)

        outcome = ledger.mark_absent(held_meetings[2].id, member.id, "")

        assert outcome.consecutive_absences == 1
        assert store.get_member(member.id).total_absences == 1

    def test_second_refresh_failure_surfaces(self, ledger, make_member, held_meetings, store):
        member = make_member()
        store.fail("update_member_counters", times=2)

        with pytest.raises(StoreError):
            ledger.mark_absent(held_meetings[2].id, member.id, "")

    def test_attendance_write_failure_surfaces(self, ledger, make_member, held_meetings, store, sender):
        member = make_member()
        store.fail("upsert_attendance")

        with pytest.raises(StoreError):
            ledger.mark_absent(held_meetings[2].id, member.id, "")
        assert sender.calls == []


class TestQuorumStatus:
    """Test quorum joined from roster and attendance."""

    def test_counts_only_active_titulars(self, ledger, make_member, make_meeting, clock):
        meeting = make_meeting()
        titulars = [make_member(full_name=f"Titular {i}") for i in range(5)]
        alternate = make_member(full_name="Alternate", seat_type=SeatType.ALTERNATE)
        licensed = make_member(full_name="Licensed", status=MemberStatus.LICENSED)

        for member in titulars[:2] + [alternate, licensed]:
            ledger.mark_present(meeting.id, member.id, clock.now())
        ledger.mark_absent(meeting.id, titulars[2].id, "")

        status = ledger.get_quorum_status(meeting.id)

        assert status.active_titular_count == 5
        assert status.present_count == 2
        assert status.minimum == 3
        assert status.has_quorum is False
        assert status.presence_percent == 40

    def test_quorum_reached(self, ledger, make_member, make_meeting, clock):
        meeting = make_meeting()
        titulars = [make_member(full_name=f"Titular {i}") for i in range(3)]
        for member in titulars[:2]:
            ledger.mark_present(meeting.id, member.id, clock.now())

        status = ledger.get_quorum_status(meeting.id)

        assert status.has_quorum is True
        assert status.presence_percent == 67

    def test_empty_roster(self, ledger, make_meeting):
        status = ledger.get_quorum_status(make_meeting().id)
        assert status.has_quorum is False
        assert status.minimum == 1

    def test_unknown_meeting(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.get_quorum_status("missing")


class TestBulkAndStats:
    """Test bulk registration and meeting statistics."""

    def test_bulk_registration(self, ledger, make_member, make_meeting, store):
        meeting = make_meeting(minutes="Minutes approved.")
        present, absent = make_member(full_name="Present One"), make_member(full_name="Absent One")

        outcomes = ledger.register_bulk_attendance(BulkAttendanceRequest(
            meeting_id=meeting.id,
            entries=[
                AttendanceEntry(member_id=present.id, present=True),
                AttendanceEntry(member_id=absent.id, present=False),
            ]
        ))

        assert [o.present for o in outcomes] == [True, False]
        assert store.attendance[(meeting.id, absent.id)].justification == ""

        stats = ledger.meeting_stats(meeting.id)
        assert stats.presence_percent == 50
        assert stats.has_quorum is False
        assert stats.has_minutes is True

    def test_duplicate_members_rejected(self):
        with pytest.raises(ValueError):
            BulkAttendanceRequest(meeting_id="m1", entries=[
                AttendanceEntry(member_id="a", present=True),
                AttendanceEntry(member_id="a", present=False),
            ])


class TestAttendanceDomain:
    """Test the pure streak and total helpers."""

    def _absent(self, meeting_id):
        return AttendanceRecord(meeting_id=meeting_id, member_id="m", present=False, justification="")

    def test_missing_record_is_skipped(self):
        records = {"c": self._absent("c"), "a": self._absent("a")}
        assert count_trailing_absences(["c", "b", "a"], records) == 2

    def test_presence_ends_streak(self):
        present = AttendanceRecord(meeting_id="b", member_id="m", present=True, arrival_time=datetime.now(timezone.utc))
        records = {"c": self._absent("c"), "b": present, "a": self._absent("a")}
        assert count_trailing_absences(["c", "b", "a"], records) == 1

    def test_window_is_three(self):
        records = {key: self._absent(key) for key in "edcba"}
        assert count_trailing_absences(list("edcba"), records) == 3

    def test_total_delta(self):
        absent = self._absent("x")
        assert total_absences_delta(None, False) == 1
        assert total_absences_delta(absent, False) == 0
        assert total_absences_delta(absent, True) == -1
        assert total_absences_delta(None, True) == 0
