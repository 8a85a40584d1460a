"""
Stripe Payment Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.
"""

import json
from typing import Any

import stripe
from structlog import get_logger

from alchemist.config import Settings
from alchemist.exceptions import InvalidSignatureError, MalformedEventError, PaymentProviderError
from alchemist.models.domain import CheckoutSession
from alchemist.services.payment_provider import CheckoutRequestData, WebhookEvent

logger = get_logger(__name__)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class StripeProvider:
    """
    Stripe payment provider implementation.

    Implements the PaymentProvider protocol for Stripe Checkout.
    """

    def __init__(self, api_key: str, webhook_secret: str, tolerance_seconds: int = 300) -> None:
        """
        Initialize Stripe provider.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
            tolerance_seconds: Maximum age of a signed webhook timestamp
        """
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance_seconds = tolerance_seconds
        stripe.api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeProvider":
        """Build the provider from application settings."""
        return cls(
            api_key=settings.stripe_api_key,
            webhook_secret=settings.stripe_webhook_secret,
            tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
        )

    async def create_checkout_session(self, request: CheckoutRequestData) -> CheckoutSession:
        """
        Create a one-time-payment Stripe Checkout session.

        Raises:
            PaymentProviderError: If Stripe API call fails
        """
        plan = request.plan
        try:
            logger.info(
                "creating_stripe_checkout_session",
                plan=plan.plan.value,
                amount_minor=plan.price_minor,
            )

            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": plan.currency,
                            "product_data": {
                                "name": plan.name,
                                "description": (
                                    f"{plan.description} - {plan.credits} keyword credits"
                                ),
                            },
                            "unit_amount": plan.price_minor,
                        },
                        "quantity": 1,
                    }
                ],
                mode="payment",
                customer_email=request.customer_email,
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                metadata={
                    "plan": plan.plan.value,
                    "credits": str(plan.credits),
                    "service": request.service,
                },
            )

            logger.info("stripe_checkout_session_created", session_id=session.id)

            return CheckoutSession(session_id=session.id, checkout_url=session.url or "")

        except stripe.StripeError as exc:
            logger.error(
                "stripe_checkout_session_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise PaymentProviderError(f"Stripe checkout failed: {exc}") from exc

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify the Stripe-Signature header and parse the event.

        Raises:
            InvalidSignatureError: If signature verification fails
            MalformedEventError: If the verified payload is not a usable event
        """
        if not self.webhook_secret:
            logger.error("stripe_webhook_secret_missing")
            raise InvalidSignatureError("Webhook signing secret not configured")
        if not signature:
            raise InvalidSignatureError("Missing Stripe-Signature header")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidSignatureError("Payload is not valid UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                text, signature, self.webhook_secret, self.tolerance_seconds
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_webhook_verification_failed", error=str(exc))
            raise InvalidSignatureError(str(exc)) from exc

        try:
            event = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedEventError(None, "Payload is not valid JSON") from exc

        return self._parse_event(event)

    @staticmethod
    def _parse_event(event: Any) -> WebhookEvent:
        """Map a Stripe event payload onto WebhookEvent."""
        if not isinstance(event, dict):
            raise MalformedEventError(None, "Event must be a JSON object")

        event_id = event.get("id")
        event_type = event.get("type")
        if not event_id or not event_type:
            raise MalformedEventError(_optional_str(event_id), "Event id or type missing")

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict) or not obj.get("id"):
            raise MalformedEventError(event_id, "Event data object missing")

        metadata = obj.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = {}

        customer_details = obj.get("customer_details") or {}
        customer_email = obj.get("customer_email") or (
            customer_details.get("email") if isinstance(customer_details, dict) else None
        )

        last_error = obj.get("last_payment_error") or {}
        failure_message = last_error.get("message") if isinstance(last_error, dict) else None

        amount = obj.get("amount_total", obj.get("amount"))

        webhook_event = WebhookEvent(
            event_id=str(event_id),
            event_type=str(event_type),
            object_id=str(obj["id"]),
            customer_email=_optional_str(customer_email),
            customer_id=_optional_str(obj.get("customer")),
            amount_minor=amount if isinstance(amount, int) else None,
            currency=obj["currency"].upper() if obj.get("currency") else None,
            metadata_plan=_optional_str(metadata.get("plan")),
            metadata_credits=_optional_str(metadata.get("credits")),
            failure_message=_optional_str(failure_message),
        )

        logger.info(
            "stripe_webhook_verified",
            event_id=webhook_event.event_id,
            event_type=webhook_event.event_type,
        )
        return webhook_event
