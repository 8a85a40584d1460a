"""
Distributed Tracing with OpenTelemetry.

Spans cover the request, its SQL, each generation call and the credit and
payment steps. Credit and payment spans carry the key and session ids so a
shortfall or an overspend can be followed from the log line to the trace.
"""

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from alchemist.config import settings
from alchemist.models.domain import Authorization, CompletedPayment, DebitResult, PaymentOutcome

# Health checks and scrapes would otherwise dominate the trace volume
UNTRACED_URLS = "api/health,metrics"


def setup_tracing() -> None:
    """Install the OTLP exporting tracer provider when tracing is enabled."""
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Trace every request except health checks and metric scrapes."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace the queries of one async engine."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer(name: str) -> Tracer:
    return trace.get_tracer(name)


def add_span_attributes(span: Span, **attributes: Any) -> None:
    """Add attributes to a span, skipping None values."""
    for key, value in attributes.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            span.set_attribute(key, value)
        else:
            span.set_attribute(key, str(value))


def set_span_error(span: Span, error: Exception) -> None:
    """Mark span as error and record exception."""
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)


def record_authorization(span: Span, authorization: Authorization) -> None:
    """Credit check result on the current span."""
    add_span_attributes(
        span,
        key_id=authorization.key_id,
        **{
            "credits.requested": authorization.requested,
            "credits.allowed": authorization.allowed,
            "credits.remaining": authorization.remaining,
            "credits.partial": authorization.is_partial,
        },
    )


def record_debit(span: Span, result: DebitResult) -> None:
    """Balance after a settlement; an overspend is flagged as an event."""
    add_span_attributes(
        span,
        **{
            "credits.used": result.credits_used,
            "credits.total": result.credits_total,
        },
    )
    if result.overspent:
        span.add_event(
            "credit_overspend",
            {"overspend": result.credits_used - result.credits_total},
        )


def record_payment_outcome(span: Span, outcome: PaymentOutcome) -> None:
    """How a checkout session was settled."""
    if isinstance(outcome, CompletedPayment):
        add_span_attributes(
            span,
            access_key_id=outcome.access_key_id,
            **{"payment.status": "completed", "payment.replayed": outcome.replayed},
        )
    else:
        add_span_attributes(span, **{"payment.status": "failed", "payment.error": outcome.reason})
