# Process-level observability wiring from environment settings

from dataclasses import dataclass
from typing import Optional

from opentelemetry.sdk.trace import TracerProvider

from passage_retrieval.shared.config import Settings, get_settings

from .logging import get_logger, setup_logging
from .tracing import init_tracing

logger = get_logger(__name__)


@dataclass(frozen=True)
class ObservabilityHandle:
    log_level: int
    tracer_provider: TracerProvider

    def shutdown(self) -> None:
        self.tracer_provider.shutdown()


def configure_observability(
    settings: Optional[Settings] = None,
    json_output: bool = True,
    set_global_tracer: bool = True,
) -> ObservabilityHandle:
    """
    Configure logging, then tracing, from LOG_LEVEL, OTEL_SERVICE_NAME,
    OTEL_EXPORTER_OTLP_ENDPOINT and ENV.

    Call once per process before building engines.

    Raises:
        ConfigurationError: LOG_LEVEL is not a known level
    """
    settings = settings or get_settings()
    level = setup_logging(settings.log_level, json_output=json_output)
    provider = init_tracing(
        service_name=settings.otel_service_name,
        endpoint=settings.otel_exporter_otlp_endpoint,
        environment=settings.env,
        set_global=set_global_tracer,
    )
    logger.info(
        "Observability configured",
        log_level=settings.log_level.upper(),
        service=settings.otel_service_name,
        exporter=bool(settings.otel_exporter_otlp_endpoint),
    )
    return ObservabilityHandle(log_level=level, tracer_provider=provider)
