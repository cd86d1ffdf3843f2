# SPDX-License-Identifier: Apache-2.0

"""
Attendance domain logic.

Pure functions building attendance records and deriving the consecutive-absence
count from the most recent held meetings. The scan is the source of truth; the
counter stored on the member is a cache of its last result.
"""

from datetime import datetime
from typing import Dict, List, Optional

from models.entities import AttendanceRecord, Meeting
from .errors import ValidationError

ABSENCE_SCAN_WINDOW = 3


def build_presence_record(meeting_id: str, member_id: str, arrival_time: datetime,
                          recorded_at: datetime) -> AttendanceRecord:
    """Build a present attendance record."""
    if arrival_time is None:
        raise ValidationError("Arrival time is required for a present member", field="arrival_time")

    return AttendanceRecord(
        meeting_id=meeting_id,
        member_id=member_id,
        present=True,
        arrival_time=arrival_time,
        justification=None,
        recorded_at=recorded_at
    )


def build_absence_record(meeting_id: str, member_id: str, justification: Optional[str],
                         recorded_at: datetime) -> AttendanceRecord:
    """
    Build an absent attendance record.

    An empty justification is accepted; a missing one is not.

    Raises:
        ValidationError: If justification is None or not a string
    """
    if justification is None:
        raise ValidationError("Justification is required for an absence", field="justification")
    if not isinstance(justification, str):
        raise ValidationError("Justification must be text", field="justification")

    return AttendanceRecord(
        meeting_id=meeting_id,
        member_id=member_id,
        present=False,
        arrival_time=None,
        justification=justification,
        recorded_at=recorded_at
    )


def ensure_meeting_accepts_attendance(meeting: Meeting) -> None:
    """Attendance may only be written for scheduled or held meetings."""
    if not meeting.accepts_attendance():
        raise ValidationError(
            f"Cannot record attendance for a {meeting.status} meeting",
            field="meeting_id"
        )


def count_trailing_absences(held_meeting_ids: List[str],
                            records_by_meeting: Dict[str, AttendanceRecord]) -> int:
    """
    Count trailing absences across the most recent held meetings.

    Args:
        held_meeting_ids: Held meeting ids ordered by scheduled_at, newest first
        records_by_meeting: The member's attendance records keyed by meeting id

    Returns:
        Number of absences counted back from the newest meeting until a
        present record. Meetings without a record for the member are skipped,
        so roll calls entered out of order still add up.
    """
    count = 0
    for meeting_id in held_meeting_ids[:ABSENCE_SCAN_WINDOW]:
        record = records_by_meeting.get(meeting_id)
        if record is None:
            continue
        if record.present:
            break
        count += 1
    return count


def total_absences_delta(previous: Optional[AttendanceRecord], present: bool) -> int:
    """
    Change in a member's total absences caused by overwriting a record.

    Only a transition into or out of absence moves the total, so re-marking
    the same state is idempotent.
    """
    was_absent = previous is not None and not previous.present
    if present:
        return -1 if was_absent else 0
    return 0 if was_absent else 1
