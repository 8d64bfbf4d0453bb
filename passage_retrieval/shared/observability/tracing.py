# OpenTelemetry tracing setup

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from passage_retrieval import __version__
from passage_retrieval.shared.config import Settings

from .logging import get_logger

logger = get_logger(__name__)


def get_tracer(name: str):
    """Get a tracer instance"""
    return trace.get_tracer(name)


def init_tracing(
    service_name: Optional[str] = None,
    endpoint: Optional[str] = None,
    environment: Optional[str] = None,
    set_global: bool = True,
) -> TracerProvider:
    """
    Initialize OpenTelemetry tracing for the retrieval service.

    Arguments left as None fall back to ``Settings`` (OTEL_SERVICE_NAME,
    OTEL_EXPORTER_OTLP_ENDPOINT, ENV). With an endpoint, spans are batched
    to ``<endpoint>/v1/traces`` over OTLP/HTTP; without one the provider
    records spans in-process only.
    """
    if service_name is None or endpoint is None or environment is None:
        settings = Settings()
        service_name = service_name or settings.otel_service_name
        endpoint = endpoint or settings.otel_exporter_otlp_endpoint
        environment = environment or settings.env

    resource = Resource.create(
        {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: __version__,
            "deployment.environment": environment,
        }
    )
    provider = TracerProvider(resource=resource)

    if endpoint:
        try:
            exporter = OTLPSpanExporter(endpoint=f"{endpoint.rstrip('/')}/v1/traces")
            provider.add_span_processor(BatchSpanProcessor(exporter))
            logger.info("OTLP trace exporter configured", endpoint=endpoint)
        except Exception as e:
            logger.warning("Failed to configure OTLP exporter", error=str(e))
    else:
        logger.info("OpenTelemetry tracing enabled (in-memory, no exporter)")

    if set_global:
        trace.set_tracer_provider(provider)

    logger.info(
        "OpenTelemetry tracing initialized",
        service=service_name,
        environment=environment,
    )
    return provider
