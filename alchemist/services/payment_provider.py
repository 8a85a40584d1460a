"""
Payment Provider Protocol - Provider-agnostic interface.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from typing import Protocol

from alchemist.models.domain import CheckoutSession
from alchemist.services.plans import PlanConfig

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class CheckoutRequestData:
    """
    Provider-agnostic checkout request.

    One plan purchase for one customer.
    """

    plan: PlanConfig
    customer_email: str
    success_url: str
    cancel_url: str
    service: str = "keyword-alchemist"


@dataclass(frozen=True)
class WebhookEvent:
    """
    Provider-agnostic webhook event.

    Metadata values are kept as raw strings; the webhook processor validates
    them.
    """

    event_id: str
    event_type: str
    object_id: str  # Checkout session id or payment intent id
    customer_email: str | None = None
    customer_id: str | None = None
    amount_minor: int | None = None
    currency: str | None = None
    metadata_plan: str | None = None
    metadata_credits: str | None = None
    failure_message: str | None = None


class PaymentProvider(Protocol):
    """
    Payment provider protocol.

    The checkout and webhook routes only see this interface.
    """

    async def create_checkout_session(self, request: CheckoutRequestData) -> CheckoutSession:
        """
        Create a hosted checkout session for a plan.

        Raises:
            PaymentProviderError: If session creation fails
        """
        ...

    async def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse webhook event from provider.

        Raises:
            InvalidSignatureError: If signature verification fails
            MalformedEventError: If the payload is not a well-formed event
        """
        ...
