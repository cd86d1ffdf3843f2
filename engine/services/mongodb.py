# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with connection pooling, timeouts and optional transactions.
"""

import os
import logging
from contextlib import contextmanager
from typing import Dict, Optional, Any, Generator
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

logger = logging.getLogger(__name__)

MEMBERS = "council_members"
MEETINGS = "meetings"
ATTENDANCE = "attendance_records"
NOTIFICATION_EVENTS = "notification_events"
ALERTS = "council_alerts"
AUDIT_LOGS = "audit_logs"


class MongoDBService:
    """MongoDB service with connection pooling and transaction support."""

    def __init__(self, connection_string: str = None, database_name: str = None,
                 use_transactions: bool = None, max_pool_size: int = None,
                 server_selection_timeout_ms: int = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/codema_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'codema_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = max_pool_size or int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = server_selection_timeout_ms or int(
            os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000')
        )

        # Multi-document transactions need a replica set
        if use_transactions is None:
            use_transactions = os.getenv('MONGODB_USE_TRANSACTIONS', 'false').lower() == 'true'
        self.use_transactions = use_transactions

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    @contextmanager
    def transaction(self) -> Generator[Optional[ClientSession], None, None]:
        """
        Run a block inside a multi-document transaction when enabled.

        Yields the session to pass to collection calls, or None when
        transactions are disabled. The transaction commits on normal exit and
        aborts when the block raises.
        """
        if not self.use_transactions:
            yield None
            return

        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            # Ping the database
            result = self.client.admin.command('ping')

            # Get server info
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size,
                'transactions': self.use_transactions
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    # Index Management

    def create_indexes(self) -> None:
        """Create the indexes the council collections rely on."""
        try:
            logger.info("Creating MongoDB indexes...")

            members = self.get_collection(MEMBERS)
            members.create_index([("status", ASCENDING), ("seat_type", ASCENDING)])
            members.create_index("mandate_end")

            meetings = self.get_collection(MEETINGS)
            meetings.create_index([("status", ASCENDING), ("scheduled_at", DESCENDING)])

            # Upsert key for attendance
            attendance = self.get_collection(ATTENDANCE)
            attendance.create_index([("meeting_id", ASCENDING), ("member_id", ASCENDING)], unique=True)
            attendance.create_index([("member_id", ASCENDING), ("meeting_id", ASCENDING)])

            events = self.get_collection(NOTIFICATION_EVENTS)
            events.create_index([("status", ASCENDING), ("due_at", ASCENDING)])
            events.create_index([("meeting_id", ASCENDING), ("status", ASCENDING)])

            alerts = self.get_collection(ALERTS)
            alerts.create_index([("member_id", ASCENDING), ("created_at", DESCENDING)])

            audit_logs = self.get_collection(AUDIT_LOGS)
            audit_logs.create_index([("entity_type", ASCENDING), ("entity_id", ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index("trace_id")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise
