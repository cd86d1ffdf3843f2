# SPDX-License-Identifier: Apache-2.0

"""
Council roster administration: member enrollment and meeting creation.

Both paths validate before any write and surface every rejection as the
engine's ValidationError naming the failing field.
"""

import logging
from typing import Any, Dict

from opentelemetry import trace

from domain.validation import build_meeting, build_member
from models.entities import CouncilMember, Meeting

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CouncilRoster:
    """Creates council members and meetings from administrative input."""

    def __init__(self, store, audit, clock):
        self.store = store
        self.audit = audit
        self.clock = clock

    def enroll_member(self, data: Dict[str, Any]) -> CouncilMember:
        """
        Validate and save a new council member.

        Raises:
            ValidationError: Bad mandate window, contact format or missing field
            StoreError: If the write failed
        """
        with tracer.start_as_current_span("roster.enroll_member") as span:
            member = build_member(data)
            span.set_attribute("member.id", member.id)

            self.store.save_member(member)

            logger.info(
                f"Member {member.id} enrolled",
                extra={"extra_fields": {"member_id": member.id, "segment": member.segment,
                                        "seat_type": member.seat_type}}
            )
            self.audit.log("member.enroll", "member", member.id, {"mandate_end": member.mandate_end.isoformat()})
            return member

    def create_meeting(self, data: Dict[str, Any]) -> Meeting:
        """
        Validate and save a new meeting.

        Raises:
            ValidationError: Past date, short location, extraordinary meeting without agenda
            StoreError: If the write failed
        """
        with tracer.start_as_current_span("roster.create_meeting") as span:
            meeting = build_meeting(data, self.clock.now())
            span.set_attribute("meeting.id", meeting.id)

            self.store.save_meeting(meeting)

            logger.info(
                f"Meeting {meeting.id} created",
                extra={"extra_fields": {"meeting_id": meeting.id, "type": meeting.type}}
            )
            self.audit.log("meeting.create", "meeting", meeting.id, {"scheduled_at": meeting.scheduled_at})
            return meeting
