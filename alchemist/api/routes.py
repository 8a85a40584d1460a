"""
API Routes - FastAPI endpoints for access keys, keyword processing and payments.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from alchemist.api.dependencies import get_gateway, get_key_generator, get_payment_provider
from alchemist.config import Settings, get_settings
from alchemist.db.session import Database, get_database, get_db
from alchemist.exceptions import (
    InvalidKeyError,
    InvalidSignatureError,
    KeySuspendedError,
    MalformedEventError,
    PaymentProviderError,
    StorageUnavailableError,
)
from alchemist.models.api import (
    CheckoutRequest,
    CheckoutResponse,
    CheckoutSessionStatusResponse,
    HealthResponse,
    PartialCreditsResponse,
    PaymentStatus,
    PlanItem,
    PlanListResponse,
    ProcessKeywordsRequest,
    ProcessKeywordsResponse,
    ValidateKeyRequest,
    ValidateKeyResponse,
    WebhookAckResponse,
)
from alchemist.models.domain import CompletedPayment
from alchemist.services.gateway import RequestGateway
from alchemist.services.key_generator import KeyGenerator
from alchemist.services.key_store import KeyStore
from alchemist.services.payment_provider import (
    PAYMENT_INTENT_FAILED,
    PAYMENT_INTENT_SUCCEEDED,
    CheckoutRequestData,
    PaymentProvider,
)
from alchemist.services.payment_webhook import PaymentWebhookProcessor
from alchemist.services.plans import get_plan, list_plans

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


def _invalid_key() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid access key",
    )


def _suspended_key(exc: KeySuspendedError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": f"Access key is {exc.status}", "status": exc.status},
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error",
    )


# =============================================================================
# Access Keys
# =============================================================================


@router.post("/auth/validate", response_model=ValidateKeyResponse)
async def validate_access_key(
    request: ValidateKeyRequest,
    gateway: RequestGateway = Depends(get_gateway),
) -> ValidateKeyResponse:
    """
    Validate an access key and report its credit balance.

    401 for unknown keys, 403 (with the key status) for suspended or expired keys.
    """
    try:
        key = await gateway.validate_key(request.access_key)
    except InvalidKeyError as exc:
        raise _invalid_key() from exc
    except KeySuspendedError as exc:
        raise _suspended_key(exc) from exc
    except StorageUnavailableError as exc:
        logger.error("validate_key_storage_error", error=str(exc))
        raise _internal_error() from exc

    return ValidateKeyResponse(
        valid=True,
        plan=key.plan,
        credits_total=key.credits_total,
        credits_used=key.credits_used,
        credits_remaining=key.credits_remaining,
        status=key.status,
    )


@router.post(
    "/keywords/process",
    response_model=ProcessKeywordsResponse | PartialCreditsResponse,
)
async def process_keywords(
    request: ProcessKeywordsRequest,
    gateway: RequestGateway = Depends(get_gateway),
) -> ProcessKeywordsResponse | PartialCreditsResponse:
    """
    Generate one article per keyword, one credit each.

    When the batch exceeds the remaining credits and allowPartial is false,
    nothing is generated or charged and the split is returned instead.
    Failed keywords are reported in place and still cost a credit.
    """
    try:
        return await gateway.process_keywords(request)
    except InvalidKeyError as exc:
        raise _invalid_key() from exc
    except KeySuspendedError as exc:
        raise _suspended_key(exc) from exc
    except StorageUnavailableError as exc:
        logger.error("process_keywords_storage_error", error=str(exc))
        raise _internal_error() from exc


# =============================================================================
# Plans and Checkout
# =============================================================================


@router.get("/plans", response_model=PlanListResponse)
async def get_plans() -> PlanListResponse:
    """Public plan catalog."""
    return PlanListResponse(
        plans=[
            PlanItem(
                plan=plan.plan,
                name=plan.name,
                description=plan.description,
                credits=plan.credits,
                price_minor=plan.price_minor,
                currency=plan.currency,
            )
            for plan in list_plans()
        ]
    )


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    provider: PaymentProvider = Depends(get_payment_provider),
    settings: Settings = Depends(get_settings),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a plan purchase."""
    plan = get_plan(request.plan)

    try:
        session = await provider.create_checkout_session(
            CheckoutRequestData(
                plan=plan,
                customer_email=request.customer_email,
                success_url=settings.checkout_success_url,
                cancel_url=settings.checkout_cancel_url,
            )
        )
    except PaymentProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to create checkout session",
        ) from exc

    return CheckoutResponse(checkout_url=session.checkout_url, session_id=session.session_id)


@router.get("/checkout/session/{session_id}", response_model=CheckoutSessionStatusResponse)
async def get_checkout_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    key_generator: KeyGenerator = Depends(get_key_generator),
) -> CheckoutSessionStatusResponse:
    """
    Post-purchase lookup for the success page.

    404 until the webhook for the session has been processed.
    """
    processor = PaymentWebhookProcessor(KeyStore(db), key_generator)
    try:
        outcome = await processor.lookup(session_id)
    except StorageUnavailableError as exc:
        raise _internal_error() from exc

    if outcome is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Checkout session not found",
        )

    if isinstance(outcome, CompletedPayment):
        return CheckoutSessionStatusResponse(
            session_id=outcome.session_id,
            status=PaymentStatus.COMPLETED,
            access_key=outcome.access_key_id,
            plan=outcome.plan,
            credits=outcome.credits,
            customer_email=outcome.customer_email,
        )

    return CheckoutSessionStatusResponse(
        session_id=outcome.session_id,
        status=PaymentStatus.FAILED,
        plan=outcome.plan,
        credits=outcome.credits,
        customer_email=outcome.customer_email,
    )


@router.post("/webhooks/stripe", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    key_generator: KeyGenerator = Depends(get_key_generator),
) -> WebhookAckResponse:
    """
    Handle Stripe webhook events.

    checkout.session.completed mints a funded access key exactly once per
    checkout session. 400 for bad signatures or malformed events; 500 when
    the grant failed so Stripe retries.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        event = await provider.verify_webhook(payload, signature)
    except InvalidSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        ) from exc
    except MalformedEventError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc

    processor = PaymentWebhookProcessor(KeyStore(db), key_generator)

    try:
        outcome = await processor.process(event)
    except MalformedEventError as exc:
        logger.error("stripe_webhook_malformed", event_id=event.event_id, error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.message,
        ) from exc
    except Exception as exc:
        logger.error(
            "stripe_webhook_processing_failed",
            event_id=event.event_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from exc

    if isinstance(outcome, CompletedPayment):
        ack_status = "replayed" if outcome.replayed else "completed"
    elif outcome is not None:
        ack_status = "failed"
    elif event.event_type in (PAYMENT_INTENT_SUCCEEDED, PAYMENT_INTENT_FAILED):
        ack_status = "acknowledged"
    else:
        ack_status = "ignored"

    return WebhookAckResponse(status=ack_status, event_id=event.event_id)


# =============================================================================
# Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(database: Database = Depends(get_database)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await database.ping()

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc
