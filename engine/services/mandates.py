# SPDX-License-Identifier: Apache-2.0

"""
Mandate monitor.

Classifies mandate windows, builds the roster status report and raises the
mandate and absence alerts for each member.
"""

import logging
from datetime import date
from typing import List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.errors import StoreError
from domain.mandates import classify_mandate, build_member_alerts, needs_attention, has_absence_condition
from models.entities import CouncilMember
from models.enums import MemberStatus
from models.responses import MandateStatus, StatusReport, AlertDispatchResult
from .alerts import AlertPublisher

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class MandateMonitor:
    """Mandate expiration and absence monitoring over the council roster."""

    def __init__(self, store, clock, alert_publisher: AlertPublisher, cache=None, cache_ttl: int = 300):
        self.store = store
        self.clock = clock
        self.alert_publisher = alert_publisher
        self.cache = cache
        self.cache_ttl = cache_ttl

    def classify(self, member: CouncilMember, today: Optional[date] = None) -> MandateStatus:
        """Classify a member's mandate window against today (the clock's day by default)."""
        return classify_mandate(member.mandate_end, today or self.clock.today())

    def generate_status_report(self, roster: Optional[List[CouncilMember]] = None) -> StatusReport:
        """
        Aggregate roster counts and the members needing attention.

        Args:
            roster: Members to report on; the whole stored roster when omitted

        Returns:
            StatusReport. When the roster cannot be read the report is empty
            and flagged degraded instead of raising.
        """
        with tracer.start_as_current_span("mandates.generate_status_report") as span:
            from_store = roster is None

            if from_store:
                if self.cache is not None:
                    cached = self.cache.get_cached_status_report()
                    if cached is not None:
                        span.set_attribute("report.cache_hit", True)
                        return cached
                try:
                    roster = self.store.list_members()
                except StoreError as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    logger.warning(
                        "Roster unavailable, returning degraded status report",
                        extra={"extra_fields": {"error": str(e)}}
                    )
                    return StatusReport(degraded=True, errors=[e.message])

            today = self.clock.today()
            report = StatusReport(
                total=len(roster),
                active=sum(1 for member in roster if member.status == MemberStatus.ACTIVE),
                inactive=sum(1 for member in roster if member.status == MemberStatus.INACTIVE),
                expiring_mandates=[member for member in roster if needs_attention(member, today)],
                excessive_absences=[member for member in roster if has_absence_condition(member)]
            )

            span.set_attributes({
                "report.total": report.total,
                "report.expiring": len(report.expiring_mandates),
                "report.absences": len(report.excessive_absences)
            })

            if from_store and self.cache is not None:
                self.cache.cache_status_report(report, self.cache_ttl)

            return report

    def send_alerts(self, member: CouncilMember) -> AlertDispatchResult:
        """
        Evaluate, persist and forward a member's mandate and absence alerts.

        Each call raises fresh alerts; duplicate suppression belongs to the
        consumers of the alert channel.
        """
        with tracer.start_as_current_span("mandates.send_alerts") as span:
            span.set_attribute("member.id", member.id)

            alerts = build_member_alerts(member, self.clock.today(), self.clock.now())
            if not alerts:
                return AlertDispatchResult(member_id=member.id)

            result = self.alert_publisher.publish(member, alerts)
            if result.errors:
                span.set_status(Status(StatusCode.ERROR, "; ".join(result.errors)))

            logger.info(
                f"Alerts evaluated for member {member.id}",
                extra={"extra_fields": {
                    "member_id": member.id,
                    "recorded": len(result.alerts),
                    "forwarded": result.forwarded,
                    "errors": len(result.errors)
                }}
            )
            return result

    def sweep(self) -> List[AlertDispatchResult]:
        """
        Run send_alerts over every active member.

        Raises:
            StoreError: If the active roster cannot be read
        """
        with tracer.start_as_current_span("mandates.sweep") as span:
            members = self.store.list_members(status=MemberStatus.ACTIVE.value)
            results = [self.send_alerts(member) for member in members]
            results = [result for result in results if result.alerts or result.errors]

            span.set_attributes({"sweep.members": len(members), "sweep.alerted": len(results)})
            logger.info(f"Mandate sweep finished: {len(results)} of {len(members)} members alerted")

            if self.cache is not None:
                self.cache.invalidate_status_report()
            return results
