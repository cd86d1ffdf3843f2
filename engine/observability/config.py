# SPDX-License-Identifier: Apache-2.0

"""
OpenTelemetry Configuration

Sets up distributed tracing and logging for the CODEMA governance engine.
"""

import json
import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

from utils.config import EngineConfig

SERVICE_NAME = 'codema-governance-engine'

SAMPLING_RATIOS = {
    'production': 0.1,
    'staging': 0.5,
}


def setup_observability(config: EngineConfig) -> TracerProvider:
    """
    Initialize tracing and logging for the configured environment.

    Returns:
        The installed tracer provider, or None when tracing is disabled
    """
    setup_structured_logging(config.environment)

    if not config.otel_enabled:
        return None

    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": config.service_version,
        "deployment.environment": config.environment
    })

    tracer_provider = TracerProvider(
        sampler=TraceIdRatioBased(SAMPLING_RATIOS.get(config.environment, 1.0)),
        resource=resource
    )

    if config.environment in ('production', 'staging'):
        if config.otel_exporter_otlp_endpoint:
            otlp_exporter = OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint)
            tracer_provider.add_span_processor(
                BatchSpanProcessor(otlp_exporter, max_export_batch_size=512)
            )
        else:
            logging.getLogger(__name__).warning("No OTLP endpoint configured; spans are not exported")
    else:
        # Development: console output plus a local collector when configured
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        if config.otel_exporter_otlp_endpoint:
            otlp_exporter = OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint, insecure=True)
            tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(tracer_provider)
    return tracer_provider


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, merging extra_fields and the active trace id."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "extra_fields", None) or {})

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            entry["trace_id"] = format(span_context.trace_id, "032x")

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_structured_logging(environment: str):
    """Configure structured JSON logging with trace correlation."""
    log_level = {
        'production': logging.WARNING,
        'staging': logging.INFO,
        'development': logging.INFO
    }.get(environment, logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.basicConfig(level=log_level, handlers=[handler])

    if environment == 'production':
        logging.getLogger('pika').setLevel(logging.ERROR)
        logging.getLogger('pymongo').setLevel(logging.WARNING)

    elif environment == 'development':
        logging.getLogger('domain').setLevel(logging.DEBUG)
        logging.getLogger('services').setLevel(logging.DEBUG)
        logging.getLogger('pika').setLevel(logging.WARNING)
