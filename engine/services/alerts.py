# SPDX-License-Identifier: Apache-2.0

"""
Alert publishing shared by the attendance ledger and the mandate monitor.

An alert is forwarded to the member's channels only after it has been durably
recorded; an alert that could not be stored is never announced.
"""

import logging
from typing import List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.errors import ChannelError, StoreError
from models.entities import CouncilMember, CouncilAlert, Recipient
from models.enums import NotificationChannel
from models.responses import AlertDispatchResult

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AlertPublisher:
    """Persists council alerts and forwards them to the channel sender."""

    def __init__(self, store, channel_sender=None):
        self.store = store
        self.channel_sender = channel_sender

    def record(self, alert: CouncilAlert) -> CouncilAlert:
        """
        Append an alert to the store.

        Raises:
            StoreError: If the alert could not be written
        """
        with tracer.start_as_current_span("alerts.record") as span:
            span.set_attributes({
                "alert.member_id": alert.member_id,
                "alert.kind": alert.kind,
                "alert.severity": alert.severity
            })
            self.store.insert_alert(alert)
            logger.info(
                f"Council alert recorded: {alert.kind}",
                extra={"extra_fields": {
                    "alert_id": alert.id,
                    "member_id": alert.member_id,
                    "severity": alert.severity
                }}
            )
            return alert

    def forward(self, member: CouncilMember, alert: CouncilAlert, errors: Optional[List[str]] = None) -> int:
        """
        Send a recorded alert on every channel the member opted in to.

        Channel failures are logged and appended to errors, never raised.

        Returns:
            Number of channels the alert was handed to
        """
        if self.channel_sender is None:
            return 0

        forwarded = 0
        for channel in NotificationChannel:
            if not member.preferences.allows(channel.value):
                continue
            address = member.address_for(channel.value)
            if not address:
                continue

            recipient = Recipient(member_id=member.id, name=member.full_name, address=address)
            template_data = {
                "kind": alert.kind,
                "alert": {
                    "id": alert.id,
                    "severity": alert.severity,
                    "message": alert.message,
                    "created_at": alert.created_at.isoformat(),
                },
                "member": {"id": member.id, "name": member.full_name},
            }
            try:
                self.channel_sender.send(channel.value, [recipient], template_data)
                forwarded += 1
            except ChannelError as e:
                logger.warning(
                    f"Alert forwarding failed on {channel.value}",
                    extra={"extra_fields": {"alert_id": alert.id, "member_id": member.id, "error": str(e)}}
                )
                if errors is not None:
                    errors.append(f"{alert.kind}/{channel.value}: {e.message}")

        return forwarded

    def publish(self, member: CouncilMember, alerts: List[CouncilAlert]) -> AlertDispatchResult:
        """
        Record then forward each alert.

        A store failure for one alert skips its forwarding and is reported in
        the result; the remaining alerts are still processed.
        """
        result = AlertDispatchResult(member_id=member.id)

        with tracer.start_as_current_span("alerts.publish") as span:
            span.set_attributes({"alert.member_id": member.id, "alert.count": len(alerts)})

            for alert in alerts:
                try:
                    self.record(alert)
                except StoreError as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    logger.error(
                        "Alert not recorded; skipping channel send",
                        extra={"extra_fields": {"member_id": member.id, "kind": alert.kind, "error": str(e)}}
                    )
                    result.errors.append(f"{alert.kind}: {e.message}")
                    continue

                result.alerts.append(alert)
                result.forwarded += self.forward(member, alert, result.errors)

        return result
