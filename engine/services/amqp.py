# SPDX-License-Identifier: Apache-2.0

"""
AMQP channel sender.

Hands each notification dispatch to the message broker as one persistent JSON
message on a topic exchange. Delivery workers bound to the exchange perform
the actual e-mail, SMS and WhatsApp delivery.
"""

import json
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Generator
from urllib.parse import urlparse

import pika
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from opentelemetry.propagate import inject

from domain.errors import ChannelError
from models.entities import Recipient


logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class AMQPConfig:
    """AMQP configuration settings."""
    url: str
    exchange: str = "codema.notifications"
    connection_timeout: int = 30
    heartbeat: int = 600
    blocked_connection_timeout: int = 300
    retry_delay: float = 1.0
    max_retries: int = 3
    # seconds one send may take across all attempts and backoff sleeps
    send_deadline: Optional[float] = None

    @property
    def attempt_timeout(self) -> float:
        if self.send_deadline is None:
            return self.connection_timeout
        # the deadline is shared evenly between the attempts
        return min(self.connection_timeout, self.send_deadline / (self.max_retries + 1))


@dataclass
class PublishResult:
    """Result of message publishing operation."""
    success: bool
    correlation_id: str
    exchange: str
    routing_key: str
    error: Optional[str] = None
    retry_count: int = 0


class AMQPConnectionError(Exception):
    """Raised when AMQP connection fails."""
    pass


def routing_key_for(channel: str, kind: str) -> str:
    """Routing key delivery workers bind on, e.g. channel.email.convocation."""
    return f"channel.{channel}.{kind}"


def _json_default(obj):
    if hasattr(obj, 'isoformat'):
        return obj.isoformat()
    return str(obj)


class AMQPChannelSender:
    """
    Channel sender publishing dispatches to a topic exchange.

    A fresh connection is opened per publish and always closed afterwards,
    so a broker restart never leaves the sender holding a dead channel.
    """

    def __init__(self, config: AMQPConfig):
        self.config = config
        self._connection_params = self._parse_connection_url(config.url)

    def _parse_connection_url(self, url: str) -> pika.ConnectionParameters:
        """Parse AMQP URL and create connection parameters."""
        parsed = urlparse(url)

        return pika.ConnectionParameters(
            host=parsed.hostname or 'localhost',
            port=parsed.port or 5672,
            virtual_host=parsed.path.lstrip('/') or '/',
            credentials=pika.PlainCredentials(
                username=parsed.username or 'guest',
                password=parsed.password or 'guest'
            ),
            connection_attempts=1,
            socket_timeout=self.config.attempt_timeout,
            stack_timeout=self.config.attempt_timeout,
            heartbeat=self.config.heartbeat,
            blocked_connection_timeout=self.config.blocked_connection_timeout
        )

    @contextmanager
    def _get_connection(self) -> Generator[pika.channel.Channel, None, None]:
        """Open a connection and channel, closing both on exit."""
        connection = None
        channel = None

        try:
            with tracer.start_as_current_span("amqp.connection.create") as span:
                connection = pika.BlockingConnection(self._connection_params)
                channel = connection.channel()
                span.set_attributes({
                    "amqp.host": self._connection_params.host,
                    "amqp.port": self._connection_params.port,
                    "amqp.virtual_host": self._connection_params.virtual_host
                })

            yield channel

        except pika.exceptions.AMQPConnectionError as e:
            logger.error(
                "AMQP connection failed",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "host": self._connection_params.host,
                        "port": self._connection_params.port
                    }
                }
            )
            raise AMQPConnectionError(f"Failed to connect to AMQP broker: {e}") from e

        finally:
            if channel and not channel.is_closed:
                try:
                    channel.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP channel: {e}")

            if connection and not connection.is_closed:
                try:
                    connection.close()
                except Exception as e:
                    logger.warning(f"Error closing AMQP connection: {e}")

    def declare_exchange(self) -> bool:
        """Declare the durable notification exchange. Returns False on failure."""
        with tracer.start_as_current_span("amqp.setup.exchange") as span:
            span.set_attribute("amqp.exchange", self.config.exchange)
            try:
                with self._get_connection() as channel:
                    channel.exchange_declare(
                        exchange=self.config.exchange,
                        exchange_type='topic',
                        durable=True,
                        auto_delete=False
                    )
                logger.info(f"AMQP exchange declared: {self.config.exchange}")
                return True
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.error(f"Failed to declare AMQP exchange {self.config.exchange}: {e}")
                return False

    def send(self, channel: str, recipients: List[Recipient], template_data: Dict[str, Any]) -> PublishResult:
        """
        Hand one dispatch to the broker.

        Args:
            channel: Notification channel (email, sms, whatsapp)
            recipients: Recipients with the address for this channel
            template_data: Content payload; must carry "kind"

        Returns:
            PublishResult of the successful publish

        Raises:
            ChannelError: When the message could not be published
        """
        kind = template_data.get("kind", "notification")
        routing_key = routing_key_for(channel, kind)
        correlation_id = template_data.get("event_id") or str(uuid.uuid4())

        with tracer.start_as_current_span("channel.send") as span:
            span.set_attributes({
                "channel.name": channel,
                "channel.kind": kind,
                "channel.recipient_count": len(recipients),
                "amqp.exchange": self.config.exchange,
                "amqp.routing_key": routing_key,
                "amqp.correlation_id": correlation_id
            })

            message = {
                "correlation_id": correlation_id,
                "channel": channel,
                "kind": kind,
                "recipients": [recipient.model_dump() for recipient in recipients],
                "data": template_data
            }

            trace_context = {}
            inject(trace_context)
            message["trace_context"] = trace_context

            result = self._publish_with_retry(routing_key, message, correlation_id)
            if not result.success:
                span.set_status(Status(StatusCode.ERROR, result.error or "publish failed"))
                raise ChannelError(
                    f"Dispatch on {channel} failed after {result.retry_count + 1} attempts: {result.error}",
                    channel=channel
                )
            return result

    def _publish_with_retry(self, routing_key: str, message: Dict[str, Any],
                            correlation_id: str) -> PublishResult:
        """Publish message with exponential backoff retry logic."""
        try:
            body = json.dumps(message, default=_json_default, ensure_ascii=False, separators=(',', ':'))
        except (TypeError, ValueError) as e:
            return PublishResult(
                success=False,
                correlation_id=correlation_id,
                exchange=self.config.exchange,
                routing_key=routing_key,
                error=f"Failed to serialize message: {e}"
            )

        last_error = None
        attempts = 0
        started = time.monotonic()

        for attempt in range(self.config.max_retries + 1):
            try:
                with self._get_connection() as channel:
                    properties = pika.BasicProperties(
                        correlation_id=correlation_id,
                        timestamp=int(time.time()),
                        delivery_mode=2,  # Persistent message
                        content_type='application/json',
                        headers=message.get('trace_context', {})
                    )

                    channel.basic_publish(
                        exchange=self.config.exchange,
                        routing_key=routing_key,
                        body=body,
                        properties=properties,
                        mandatory=True
                    )

                    logger.info(
                        "Dispatch published",
                        extra={
                            "extra_fields": {
                                "exchange": self.config.exchange,
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "attempt": attempt + 1
                            }
                        }
                    )

                    return PublishResult(
                        success=True,
                        correlation_id=correlation_id,
                        exchange=self.config.exchange,
                        routing_key=routing_key,
                        retry_count=attempt
                    )

            except Exception as e:
                last_error = e
                attempts = attempt + 1
                delay = self.config.retry_delay * (2 ** attempt)

                if attempt < self.config.max_retries and self._retry_fits(started, delay):
                    logger.warning(
                        "Dispatch publish failed, retrying",
                        extra={
                            "extra_fields": {
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "attempt": attempt + 1,
                                "retry_delay": delay,
                                "error": str(e)
                            }
                        }
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        "Dispatch publish failed, no retries left",
                        extra={
                            "extra_fields": {
                                "routing_key": routing_key,
                                "correlation_id": correlation_id,
                                "total_attempts": attempt + 1,
                                "error": str(e)
                            }
                        }
                    )
                    break

        return PublishResult(
            success=False,
            correlation_id=correlation_id,
            exchange=self.config.exchange,
            routing_key=routing_key,
            error=str(last_error),
            retry_count=attempts - 1
        )

    def _retry_fits(self, started: float, delay: float) -> bool:
        """Whether a backoff sleep plus one more attempt still ends within the send deadline."""
        if self.config.send_deadline is None:
            return True
        elapsed = time.monotonic() - started
        return elapsed + delay + self.config.attempt_timeout <= self.config.send_deadline

    def health_check(self) -> bool:
        """Check broker reachability with a passive declare of the exchange."""
        try:
            with self._get_connection() as channel:
                channel.exchange_declare(exchange=self.config.exchange, passive=True)
                return True
        except Exception as e:
            logger.warning(
                "AMQP health check failed",
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "host": self._connection_params.host
                    }
                }
            )
            return False
