"""Optional OpenTelemetry tracing.

Enabled with OTEL_ENABLED=true. Spans are exported over OTLP/gRPC to
OTEL_EXPORTER_ENDPOINT (Jaeger, Tempo, an OTel collector...). Requests, outbound
httpx calls (SMS) and SQLAlchemy queries are instrumented.

The exporter packages ship in the ``telemetry`` extra:
    pip install creatordeals[telemetry]
"""

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def setup_telemetry(app: "FastAPI") -> bool:
    """Instrument ``app`` when tracing is enabled. Returns True once configured."""
    from creatordeals.config import settings

    if not settings.otel_enabled:
        logger.info("OpenTelemetry disabled (OTEL_ENABLED=false)")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning(
            "OTEL_ENABLED is set but the OpenTelemetry packages are missing. "
            "Install with: pip install creatordeals[telemetry]"
        )
        return False

    from creatordeals.api.health import APP_VERSION
    from creatordeals.database import engine

    provider = TracerProvider(resource=Resource.create({
        "service.name": settings.otel_service_name,
        "service.version": APP_VERSION,
        "deployment.environment": settings.environment,
    }))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint)))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)
    HTTPXClientInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)

    logger.info(
        "OpenTelemetry initialized: endpoint=%s, service=%s",
        settings.otel_exporter_endpoint,
        settings.otel_service_name,
    )
    return True
