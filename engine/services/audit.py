# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Audit sink for engine actions with OpenTelemetry correlation.
"""

import logging
from typing import Dict, Optional, Any
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from models.base import generate_object_id
from .mongodb import MongoDBService, AUDIT_LOGS

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AuditService:
    """Fire-and-forget audit trail; a failed write is logged, never raised."""

    def __init__(self, mongo_service: MongoDBService, clock):
        self.mongo_service = mongo_service
        self.clock = clock
        logger.info("Audit service initialized")

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Record an audit trail entry.

        Args:
            action: Action performed (e.g. "attendance.mark_absent")
            entity_type: Type of entity acted upon
            entity_id: ID of the entity
            details: Extra context for the entry

        Returns:
            ID of the audit entry, or None when it could not be written
        """
        with tracer.start_as_current_span("audit.log") as span:
            span.set_attributes({
                "audit.action": action,
                "audit.entity_type": entity_type,
                "audit.entity_id": entity_id
            })

            entry = {
                "_id": generate_object_id(),
                "timestamp": self.clock.now(),
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "details": details or {},
                "schema_version": 1
            }

            span_context = span.get_span_context()
            if span_context.is_valid:
                entry["trace_id"] = format(span_context.trace_id, "032x")
                entry["span_id"] = format(span_context.span_id, "016x")

            try:
                self.mongo_service.get_collection(AUDIT_LOGS).insert_one(entry)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.warning(
                    "Failed to write audit trail entry",
                    extra={"extra_fields": {
                        "action": action,
                        "entity_type": entity_type,
                        "entity_id": entity_id,
                        "error": str(e)
                    }}
                )
                return None

            logger.debug(
                "Audit trail entry created",
                extra={"extra_fields": {
                    "audit_id": entry["_id"],
                    "action": action,
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "trace_id": entry.get("trace_id")
                }}
            )
            return entry["_id"]
