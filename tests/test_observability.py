"""
Tests for logging context, metrics helpers and tracing helpers.
"""

from unittest.mock import MagicMock

import structlog
from prometheus_client import REGISTRY

from alchemist.observability.logging import add_app_context, log_context
from alchemist.observability.metrics import metrics
from alchemist.models.domain import Authorization, CompletedPayment, DebitResult, FailedPayment
from alchemist.observability.tracing import (
    add_span_attributes,
    record_authorization,
    record_debit,
    record_payment_outcome,
    set_span_error,
)


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestLogging:
    def test_app_context_added(self) -> None:
        event = add_app_context(None, "info", {"event": "x"})

        assert event["service"] == "keyword-alchemist-api"
        assert event["version"] == "1.0.0"

    def test_log_context_binds_and_unbinds(self) -> None:
        with log_context(request_id="req-1", key_id="KWA-AAA-BBB-CC"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["request_id"] == "req-1"
            assert bound["key_id"] == "KWA-AAA-BBB-CC"

        assert "request_id" not in structlog.contextvars.get_contextvars()


class TestMetrics:
    def test_settlement_counts_credits(self) -> None:
        before = sample("alchemist_credits_settled_total")

        metrics.record_settlement(success=True, credits=3)
        metrics.record_settlement(success=False, credits=5)

        assert sample("alchemist_credits_settled_total") == before + 3

    def test_unbilled_and_overspend(self) -> None:
        unbilled = sample("alchemist_unbilled_credits_total")
        overspend = sample("alchemist_overspend_detections_total")

        metrics.record_unbilled_credits(4)
        metrics.record_overspend()

        assert sample("alchemist_unbilled_credits_total") == unbilled + 4
        assert sample("alchemist_overspend_detections_total") == overspend + 1

    def test_labelled_counters(self) -> None:
        labels = {"plan": "pro", "source": "admin"}
        before = sample("alchemist_keys_minted_total", labels)

        metrics.record_key_minted("pro", "admin")

        assert sample("alchemist_keys_minted_total", labels) == before + 1


class TestTracing:
    def test_span_attributes_skip_none(self) -> None:
        span = MagicMock()

        add_span_attributes(span, key_id="KWA-AAA-BBB-CC", email=None)

        span.set_attribute.assert_called_once_with("key_id", "KWA-AAA-BBB-CC")

    def test_span_error_recorded(self) -> None:
        span = MagicMock()
        error = RuntimeError("boom")

        set_span_error(span, error)

        span.record_exception.assert_called_once_with(error)
        span.set_status.assert_called_once()

    def test_authorization_attributes(self) -> None:
        span = MagicMock()

        record_authorization(span, Authorization("KWA-AAA-BBB-CC", requested=5, allowed=3, remaining=3))

        attributes = {c.args[0]: c.args[1] for c in span.set_attribute.call_args_list}
        assert attributes == {
            "key_id": "KWA-AAA-BBB-CC",
            "credits.requested": 5,
            "credits.allowed": 3,
            "credits.remaining": 3,
            "credits.partial": True,
        }

    def test_overspent_debit_adds_event(self) -> None:
        span = MagicMock()

        record_debit(span, DebitResult("KWA-AAA-BBB-CC", credits_used=6, credits_total=3))

        span.set_attribute.assert_any_call("credits.used", 6)
        span.add_event.assert_called_once_with("credit_overspend", {"overspend": 3})

    def test_exact_debit_adds_no_event(self) -> None:
        span = MagicMock()

        record_debit(span, DebitResult("KWA-AAA-BBB-CC", credits_used=3, credits_total=3))

        span.add_event.assert_not_called()

    def test_payment_outcomes(self) -> None:
        completed = MagicMock()
        failed = MagicMock()

        record_payment_outcome(
            completed, CompletedPayment("cs_1", None, "pro", 240, None, replayed=True)
        )
        record_payment_outcome(failed, FailedPayment("cs_2", "pro", 240, "timeout", None))

        completed.set_attribute.assert_any_call("payment.status", "completed")
        completed.set_attribute.assert_any_call("payment.replayed", True)
        assert "access_key_id" not in [c.args[0] for c in completed.set_attribute.call_args_list]
        failed.set_attribute.assert_any_call("payment.error", "timeout")
