# SPDX-License-Identifier: Apache-2.0

"""
Notification queue processor.

Each pass selects pending events that are due, claims each one under a
time-limited lease before dispatching it, and writes its terminal status.
A claim that loses to another worker is skipped; a status write that finds
the event already cancelled is a no-op.

A send that outlives the dispatch timeout is never reported failed while it
may still go out: if it had not started it is cancelled and marked failed,
otherwise the event stays claimed and its status is written when the send
ends. Channel senders are expected to finish within the lease.
"""

import logging
import os
import socket
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import timedelta

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from domain.convocation import build_template_data
from domain.errors import ChannelError, ConcurrencyError, StoreError
from models.entities import NotificationEvent
from models.enums import NotificationStatus
from models.responses import ProcessingReport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class DispatchStillRunning(Exception):
    """A send outlived the dispatch timeout after it had started."""

    def __init__(self, event_id: str):
        super().__init__(f"Dispatch of event {event_id} still running")
        self.event_id = event_id


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class NotificationQueueProcessor:
    """Dispatches due notification events through the channel sender."""

    def __init__(
        self,
        store,
        channel_sender,
        clock,
        worker_id: str = None,
        batch_limit: int = 50,
        lease_seconds: int = 300,
        dispatch_timeout: float = 5.0,
        max_workers: int = 4
    ):
        """
        Initialize the processor.

        Args:
            store: Record store holding the queue
            channel_sender: Collaborator exposing send(channel, recipients, template_data)
            clock: Clock providing now()
            worker_id: Lease owner name; unique per process by default
            batch_limit: Maximum events handled per pass
            lease_seconds: How long a claim stays exclusive; must exceed dispatch_timeout
            dispatch_timeout: Seconds a pass waits on one dispatch before moving on
            max_workers: Threads available to run dispatch calls
        """
        if lease_seconds <= dispatch_timeout:
            raise ValueError("lease_seconds must be longer than dispatch_timeout")

        self.store = store
        self.channel_sender = channel_sender
        self.clock = clock
        self.worker_id = worker_id or default_worker_id()
        self.batch_limit = batch_limit
        self.lease = timedelta(seconds=lease_seconds)
        self.dispatch_timeout = dispatch_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dispatch")

    def process_queue(self) -> ProcessingReport:
        """
        Run one pass over the due pending events.

        Never raises: store and channel failures are reported per event and
        one event's failure does not stop the others.

        Returns:
            ProcessingReport with per-outcome counts and errors
        """
        report = ProcessingReport()

        with tracer.start_as_current_span("queue.process") as span:
            span.set_attribute("queue.worker_id", self.worker_id)

            try:
                due = self.store.find_due_notification_events(self.clock.now(), self.batch_limit)
            except StoreError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error("Could not read the notification queue", extra={"extra_fields": {"error": str(e)}})
                report.errors.append(f"queue: {e.message}")
                return report

            for event in due:
                self._handle(event, report)

            span.set_attributes({
                "queue.due": len(due),
                "queue.sent": report.processed_count,
                "queue.failed": report.failed_count,
                "queue.skipped": report.skipped_count,
                "queue.in_flight": report.in_flight_count
            })

        if due:
            logger.info(
                "Notification queue pass finished",
                extra={"extra_fields": {
                    "worker_id": self.worker_id,
                    "due": len(due),
                    "sent": report.processed_count,
                    "failed": report.failed_count,
                    "skipped": report.skipped_count,
                    "in_flight": report.in_flight_count
                }}
            )
        return report

    def _claim(self, event: NotificationEvent) -> NotificationEvent:
        now = self.clock.now()
        claimed = self.store.claim_notification_event(event.id, self.worker_id, now, now + self.lease)
        if claimed is None:
            raise ConcurrencyError(event.id)
        return claimed

    def _complete(self, event: NotificationEvent, error):
        """Write the terminal status under this worker's lease; None when the write was a no-op."""
        status = NotificationStatus.FAILED if error else NotificationStatus.SENT
        return self.store.complete_notification_event(
            event.id, self.worker_id, status.value, self.clock.now(), error
        )

    def _handle(self, event: NotificationEvent, report: ProcessingReport) -> None:
        with tracer.start_as_current_span("queue.dispatch_event") as span:
            span.set_attributes({
                "event.id": event.id,
                "event.kind": event.kind,
                "event.channel": event.channel,
                "meeting.id": event.meeting_id
            })

            try:
                event = self._claim(event)
            except ConcurrencyError:
                span.set_attribute("queue.claim_lost", True)
                report.skipped_count += 1
                return
            except StoreError as e:
                report.errors.append(f"{event.id}: {e.message}")
                return

            try:
                error = self._dispatch(event)
            except DispatchStillRunning:
                span.set_attribute("queue.in_flight", True)
                report.in_flight_count += 1
                return

            if error:
                span.set_status(Status(StatusCode.ERROR, error))

            try:
                completed = self._complete(event, error)
            except StoreError as e:
                # lease expiry returns the event to the queue
                report.errors.append(f"{event.id}: {e.message}")
                return

            if completed is None:
                logger.info(
                    f"Notification event {event.id} left pending during dispatch; status write skipped",
                    extra={"extra_fields": {"event_id": event.id, "failed": bool(error)}}
                )
                report.skipped_count += 1
            elif error:
                report.failed_count += 1
                report.errors.append(f"{event.id}: {error}")
            else:
                report.processed_count += 1

    def _dispatch(self, event: NotificationEvent):
        """
        Send one event; returns an error message, or None on success.

        Raises:
            DispatchStillRunning: When the send outlived the timeout but had
                already started; its status is written once it finishes
        """
        try:
            meeting = self.store.get_meeting(event.meeting_id)
        except StoreError as e:
            return e.message
        if meeting is None:
            return f"Meeting not found: {event.meeting_id}"

        template_data = build_template_data(event, meeting)
        future = self._executor.submit(self.channel_sender.send, event.channel, event.recipients, template_data)

        try:
            future.result(timeout=self.dispatch_timeout)
        except FutureTimeoutError:
            if future.cancel():
                logger.warning(
                    f"Dispatch of event {event.id} timed out before it started",
                    extra={"extra_fields": {"event_id": event.id, "channel": event.channel,
                                            "timeout": self.dispatch_timeout}}
                )
                return f"Dispatch timed out after {self.dispatch_timeout}s before it started"
            if future.done():
                exception = future.exception()
                return self._dispatch_error(event, exception) if exception else None

            logger.warning(
                f"Dispatch of event {event.id} still running after {self.dispatch_timeout}s; lease kept",
                extra={"extra_fields": {"event_id": event.id, "channel": event.channel,
                                        "timeout": self.dispatch_timeout}}
            )
            future.add_done_callback(lambda done: self._finish_late(event, done))
            raise DispatchStillRunning(event.id)
        except Exception as e:
            return self._dispatch_error(event, e)

        return None

    def _dispatch_error(self, event: NotificationEvent, error: Exception) -> str:
        if isinstance(error, ChannelError):
            logger.warning(
                f"Dispatch of event {event.id} failed",
                extra={"extra_fields": {"event_id": event.id, "channel": event.channel, "error": str(error)}}
            )
            return error.message

        logger.error(
            f"Unexpected error dispatching event {event.id}",
            extra={"extra_fields": {"event_id": event.id, "error_type": type(error).__name__}},
            exc_info=error
        )
        return str(error) or type(error).__name__

    def _finish_late(self, event: NotificationEvent, future) -> None:
        """Record the outcome of a send that finished after its pass moved on."""
        exception = future.exception()
        error = self._dispatch_error(event, exception) if exception else None

        try:
            completed = self._complete(event, error)
        except StoreError as e:
            logger.error(
                f"Could not record late dispatch of event {event.id}",
                extra={"extra_fields": {"event_id": event.id, "error": e.message}}
            )
            return

        logger.info(
            f"Late dispatch of event {event.id} finished",
            extra={"extra_fields": {
                "event_id": event.id,
                "failed": bool(error),
                "recorded": completed is not None
            }}
        )

    def close(self, wait: bool = False) -> None:
        """
        Release the dispatch threads.

        Queued sends are cancelled; with wait=True running sends finish and
        record their status before this returns.
        """
        self._executor.shutdown(wait=wait, cancel_futures=True)
