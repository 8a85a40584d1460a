"""
Tests for StripeProvider.

Webhook signature verification and event parsing use real Stripe signing;
checkout creation is tested with the Stripe API call patched.
"""

import json
import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from alchemist.exceptions import InvalidSignatureError, MalformedEventError, PaymentProviderError
from alchemist.services.payment_provider import CHECKOUT_COMPLETED, CheckoutRequestData
from alchemist.services.plans import get_plan
from alchemist.services.stripe_provider import StripeProvider
from tests.conftest import (
    TEST_WEBHOOK_SECRET,
    checkout_completed_event,
    encode_event,
    sign_payload,
)


class TestVerifyWebhook:
    """Tests for webhook signature verification."""

    async def test_valid_signature(self, stripe_provider: StripeProvider) -> None:
        payload = encode_event(checkout_completed_event())

        event = await stripe_provider.verify_webhook(payload, sign_payload(payload))

        assert event.event_id == "evt_test_1"
        assert event.event_type == CHECKOUT_COMPLETED
        assert event.object_id == "cs_test_123"
        assert event.customer_email == "a@b.com"
        assert event.customer_id == "cus_test_1"
        assert event.amount_minor == 10000
        assert event.currency == "USD"
        assert event.metadata_plan == "pro"
        assert event.metadata_credits == "240"

    async def test_wrong_secret(self, stripe_provider: StripeProvider) -> None:
        payload = encode_event(checkout_completed_event())

        with pytest.raises(InvalidSignatureError):
            await stripe_provider.verify_webhook(payload, sign_payload(payload, secret="whsec_other"))

    async def test_tampered_payload(self, stripe_provider: StripeProvider) -> None:
        payload = encode_event(checkout_completed_event())
        signature = sign_payload(payload)
        tampered = encode_event(checkout_completed_event(credits="99999"))

        with pytest.raises(InvalidSignatureError):
            await stripe_provider.verify_webhook(tampered, signature)

    async def test_stale_timestamp(self, stripe_provider: StripeProvider) -> None:
        """Signatures older than the tolerance are rejected."""
        payload = encode_event(checkout_completed_event())
        signature = sign_payload(payload, timestamp=int(time.time()) - 3600)

        with pytest.raises(InvalidSignatureError):
            await stripe_provider.verify_webhook(payload, signature)

    async def test_missing_signature(self, stripe_provider: StripeProvider) -> None:
        with pytest.raises(InvalidSignatureError, match="Missing"):
            await stripe_provider.verify_webhook(b"{}", "")

    async def test_secret_not_configured(self) -> None:
        provider = StripeProvider(api_key="sk_test", webhook_secret="")
        payload = encode_event(checkout_completed_event())

        with pytest.raises(InvalidSignatureError, match="not configured"):
            await provider.verify_webhook(payload, sign_payload(payload))

    async def test_signed_non_json_payload(self, stripe_provider: StripeProvider) -> None:
        payload = b"not json"

        with pytest.raises(MalformedEventError):
            await stripe_provider.verify_webhook(payload, sign_payload(payload))

    async def test_signed_event_without_object(self, stripe_provider: StripeProvider) -> None:
        payload = json.dumps({"id": "evt_1", "type": CHECKOUT_COMPLETED, "data": {}}).encode()

        with pytest.raises(MalformedEventError) as exc_info:
            await stripe_provider.verify_webhook(payload, sign_payload(payload))

        assert exc_info.value.event_id == "evt_1"


class TestParseEvent:
    """Tests for mapping Stripe payloads onto WebhookEvent."""

    def test_email_from_customer_details(self) -> None:
        raw = checkout_completed_event(customer_email=None)
        raw["data"]["object"]["customer_details"] = {"email": "details@b.com"}

        event = StripeProvider._parse_event(raw)

        assert event.customer_email == "details@b.com"

    def test_payment_intent_failure_message(self) -> None:
        raw = {
            "id": "evt_pi",
            "type": "payment_intent.payment_failed",
            "data": {
                "object": {
                    "id": "pi_1",
                    "amount": 599,
                    "currency": "usd",
                    "last_payment_error": {"message": "Your card was declined."},
                }
            },
        }

        event = StripeProvider._parse_event(raw)

        assert event.object_id == "pi_1"
        assert event.amount_minor == 599
        assert event.failure_message == "Your card was declined."
        assert event.metadata_plan is None

    def test_rejects_non_object(self) -> None:
        with pytest.raises(MalformedEventError):
            StripeProvider._parse_event(["not", "an", "event"])

    def test_rejects_missing_type(self) -> None:
        with pytest.raises(MalformedEventError):
            StripeProvider._parse_event({"id": "evt_1", "data": {"object": {"id": "cs_1"}}})


class TestCreateCheckoutSession:
    """Tests for checkout session creation."""

    @pytest.fixture
    def checkout_request(self) -> CheckoutRequestData:
        return CheckoutRequestData(
            plan=get_plan("blogger"),
            customer_email="a@b.com",
            success_url="https://app.test/success?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://app.test/pricing",
        )

    async def test_creates_one_time_payment(
        self, stripe_provider: StripeProvider, checkout_request: CheckoutRequestData
    ) -> None:
        """The plan price and credit metadata are sent to Stripe."""
        fake_session = MagicMock(id="cs_test_new", url="https://checkout.stripe.test/cs_test_new")

        with patch.object(stripe.checkout.Session, "create", return_value=fake_session) as create:
            session = await stripe_provider.create_checkout_session(checkout_request)

        assert session.session_id == "cs_test_new"
        assert session.checkout_url == "https://checkout.stripe.test/cs_test_new"

        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["customer_email"] == "a@b.com"
        assert kwargs["metadata"] == {
            "plan": "blogger",
            "credits": "50",
            "service": "keyword-alchemist",
        }
        price_data = kwargs["line_items"][0]["price_data"]
        assert price_data["unit_amount"] == 5000
        assert price_data["currency"] == "usd"

    async def test_stripe_error_wrapped(
        self, stripe_provider: StripeProvider, checkout_request: CheckoutRequestData
    ) -> None:
        with patch.object(
            stripe.checkout.Session,
            "create",
            side_effect=stripe.APIConnectionError("network down"),
        ):
            with pytest.raises(PaymentProviderError, match="network down"):
                await stripe_provider.create_checkout_session(checkout_request)


def test_from_settings_uses_configured_secret() -> None:
    from alchemist.config import settings

    provider = StripeProvider.from_settings(settings)

    assert provider.webhook_secret == TEST_WEBHOOK_SECRET
    assert provider.tolerance_seconds == settings.stripe_webhook_tolerance_seconds
