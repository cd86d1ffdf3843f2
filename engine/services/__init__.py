# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Engine components, persistence and external integrations.
"""

from .mongodb import MongoDBService
from .store import CouncilStore
from .amqp import AMQPChannelSender, AMQPConfig, PublishResult
from .alerts import AlertPublisher
from .attendance import AttendanceLedger
from .mandates import MandateMonitor
from .convocation import ConvocationScheduler
from .notification_queue import NotificationQueueProcessor
from .roster import CouncilRoster

__all__ = [
    "MongoDBService",
    "CouncilStore",
    "AMQPChannelSender",
    "AMQPConfig",
    "PublishResult",
    "AlertPublisher",
    "AttendanceLedger",
    "MandateMonitor",
    "ConvocationScheduler",
    "NotificationQueueProcessor",
    "CouncilRoster"
]
