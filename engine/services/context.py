# SPDX-License-Identifier: Apache-2.0

"""
Engine context: every collaborator of a process, built once.
"""

import logging
from dataclasses import dataclass

from utils.clock import SystemClock
from utils.config import EngineConfig
from .alerts import AlertPublisher
from .amqp import AMQPChannelSender, AMQPConfig
from .attendance import AttendanceLedger
from .audit import AuditService
from .convocation import ConvocationScheduler
from .health import HealthCheckService
from .mandates import MandateMonitor
from .mongodb import MongoDBService
from .notification_queue import NotificationQueueProcessor
from .redis import RedisService
from .roster import CouncilRoster
from .store import CouncilStore

logger = logging.getLogger(__name__)


@dataclass
class EngineContext:
    """Handles shared by the engine components of one process."""
    config: EngineConfig
    clock: SystemClock
    mongodb: MongoDBService
    store: CouncilStore
    cache: RedisService
    channel_sender: AMQPChannelSender
    audit: AuditService
    alerts: AlertPublisher
    attendance: AttendanceLedger
    mandates: MandateMonitor
    roster: CouncilRoster
    convocation: ConvocationScheduler
    queue: NotificationQueueProcessor
    health: HealthCheckService

    def close(self) -> None:
        """Let running sends record their status, then release the MongoDB connection pool."""
        self.queue.close(wait=True)
        self.mongodb.close_connection()


def build_engine_context(config: EngineConfig) -> EngineContext:
    """Construct every collaborator exactly once from the configuration."""
    clock = SystemClock(config.timezone)

    mongodb = MongoDBService(
        connection_string=config.mongodb_uri,
        database_name=config.mongodb_database,
        use_transactions=config.mongodb_use_transactions,
        max_pool_size=config.mongodb_max_pool_size,
        server_selection_timeout_ms=config.mongodb_server_selection_timeout_ms
    )
    store = CouncilStore(mongodb, operation_timeout=config.store_timeout_seconds)
    cache = RedisService(config.redis_url, default_ttl=config.status_report_cache_ttl)
    channel_sender = AMQPChannelSender(AMQPConfig(
        url=config.amqp_url,
        exchange=config.amqp_exchange,
        retry_delay=config.amqp_retry_delay,
        max_retries=config.amqp_max_retries,
        send_deadline=config.dispatch_timeout_seconds
    ))
    audit = AuditService(mongodb, clock)
    alerts = AlertPublisher(store, channel_sender)

    context = EngineContext(
        config=config,
        clock=clock,
        mongodb=mongodb,
        store=store,
        cache=cache,
        channel_sender=channel_sender,
        audit=audit,
        alerts=alerts,
        attendance=AttendanceLedger(store, audit, clock, alerts, cache=cache),
        mandates=MandateMonitor(store, clock, alerts, cache=cache, cache_ttl=config.status_report_cache_ttl),
        roster=CouncilRoster(store, audit, clock),
        convocation=ConvocationScheduler(store, audit, clock),
        queue=NotificationQueueProcessor(
            store,
            channel_sender,
            clock,
            batch_limit=config.queue_batch_limit,
            lease_seconds=config.queue_lease_seconds,
            dispatch_timeout=config.dispatch_timeout_seconds,
            max_workers=config.dispatch_max_workers
        ),
        health=HealthCheckService(
            mongodb, cache, channel_sender, store, clock,
            environment=config.environment,
            service_version=config.service_version
        )
    )

    logger.info(
        "Engine context built",
        extra={"extra_fields": {"environment": config.environment, "database": config.mongodb_database}}
    )
    return context
