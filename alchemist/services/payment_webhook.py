"""
Payment Webhook Processor - Turns verified checkout events into funded access keys.

Each checkout session_id is granted at most once:
- a completed payment record short-circuits redelivery
- the key and the completed record are written in one transaction
- a concurrent duplicate loses on the session_id unique constraint and
  returns the winner's outcome
- a failed record is retryable; a later delivery upgrades it to completed
- unusable plan or credits metadata grants nothing and leaves a failed record
"""

from structlog import get_logger

from alchemist.db.models import utc_now
from alchemist.exceptions import DuplicatePaymentError, MalformedEventError, UnknownPlanError
from alchemist.models.api import PaymentStatus
from alchemist.models.domain import (
    CompletedPayment,
    FailedPayment,
    PaymentOutcome,
    PaymentRecordData,
)
from alchemist.observability.metrics import metrics
from alchemist.observability.tracing import (
    add_span_attributes,
    get_tracer,
    record_payment_outcome,
    set_span_error,
)
from alchemist.services.key_generator import KeyGenerator
from alchemist.services.key_store import KeyStore
from alchemist.services.payment_provider import (
    CHECKOUT_COMPLETED,
    PAYMENT_INTENT_FAILED,
    PAYMENT_INTENT_SUCCEEDED,
    WebhookEvent,
)
from alchemist.services.plans import get_plan

logger = get_logger(__name__)
tracer = get_tracer(__name__)


def outcome_from_record(record: PaymentRecordData, replayed: bool = False) -> PaymentOutcome:
    """Convert a stored payment record into a payment outcome."""
    if record.payment_status == PaymentStatus.COMPLETED:
        return CompletedPayment(
            session_id=record.session_id,
            access_key_id=record.access_key_id,
            plan=record.plan,
            credits=record.credits,
            customer_email=record.customer_email,
            replayed=replayed,
        )
    return FailedPayment(
        session_id=record.session_id,
        plan=record.plan,
        credits=record.credits,
        reason=record.error_message or record.payment_status.value,
        customer_email=record.customer_email,
    )


class PaymentWebhookProcessor:
    """Applies verified payment webhook events to the key store."""

    def __init__(self, store: KeyStore, key_generator: KeyGenerator) -> None:
        self.store = store
        self.key_generator = key_generator

    async def process(self, event: WebhookEvent) -> PaymentOutcome | None:
        """
        Apply one verified event.

        Returns the payment outcome for checkout completions and None for
        events that are only logged or ignored.

        Raises:
            MalformedEventError: If a checkout event lacks a valid plan or credits
            StorageUnavailableError, GenerationExhaustedError, ...: If the grant
                failed (a failed payment record has been written)
        """
        logger.info(
            "stripe_webhook_received",
            event_id=event.event_id,
            event_type=event.event_type,
        )

        if event.event_type == CHECKOUT_COMPLETED:
            return await self._handle_checkout_completed(event)

        if event.event_type == PAYMENT_INTENT_SUCCEEDED:
            logger.info(
                "payment_intent_succeeded",
                payment_intent_id=event.object_id,
                amount_minor=event.amount_minor,
                currency=event.currency,
            )
            metrics.record_webhook_event(event.event_type, "logged")
            return None

        if event.event_type == PAYMENT_INTENT_FAILED:
            logger.warning(
                "payment_intent_failed",
                payment_intent_id=event.object_id,
                amount_minor=event.amount_minor,
                failure_message=event.failure_message,
            )
            metrics.record_webhook_event(event.event_type, "logged")
            return None

        logger.info("stripe_webhook_ignored", event_id=event.event_id, event_type=event.event_type)
        metrics.record_webhook_event(event.event_type, "ignored")
        return None

    async def lookup(self, session_id: str) -> PaymentOutcome | None:
        """Outcome recorded for a checkout session, if any."""
        record = await self.store.get_payment(session_id)
        if record is None or record.payment_status == PaymentStatus.PENDING:
            return None
        return outcome_from_record(record)

    @staticmethod
    def _read_grant(event: WebhookEvent) -> tuple[str, int]:
        """Validate plan and credits from the checkout metadata."""
        if not event.metadata_plan or not event.metadata_credits:
            raise MalformedEventError(event.event_id, "Missing plan or credits in session metadata")

        try:
            plan = get_plan(event.metadata_plan)
        except UnknownPlanError as exc:
            raise MalformedEventError(
                event.event_id, f"Unknown plan in metadata: {event.metadata_plan}"
            ) from exc

        try:
            credits = int(event.metadata_credits)
        except ValueError as exc:
            raise MalformedEventError(
                event.event_id, f"Invalid credits in metadata: {event.metadata_credits}"
            ) from exc

        if credits <= 0:
            raise MalformedEventError(event.event_id, f"Credits must be positive: {credits}")

        return plan.plan.value, credits

    @staticmethod
    def _raw_grant(event: WebhookEvent) -> tuple[str, int]:
        """Plan and credits as sent, for recording a rejected session."""
        try:
            credits = int(event.metadata_credits or 0)
        except ValueError:
            credits = 0
        return (event.metadata_plan or "")[:20], credits

    def _record(
        self,
        event: WebhookEvent,
        plan: str,
        credits: int,
        status: PaymentStatus,
        access_key_id: str | None = None,
        error_message: str | None = None,
    ) -> PaymentRecordData:
        return PaymentRecordData(
            session_id=event.object_id,
            access_key_id=access_key_id,
            plan=plan,
            credits=credits,
            amount_paid=event.amount_minor or 0,
            customer_email=event.customer_email,
            stripe_customer_id=event.customer_id,
            payment_status=status,
            error_message=error_message,
            created_at=utc_now(),
        )

    async def _handle_checkout_completed(self, event: WebhookEvent) -> PaymentOutcome:
        session_id = event.object_id

        try:
            plan, credits = self._read_grant(event)
        except MalformedEventError as exc:
            metrics.record_webhook_event(event.event_type, "malformed")
            raw_plan, raw_credits = self._raw_grant(event)
            await self._store_failed_record(event, raw_plan, raw_credits, exc.message)
            raise

        existing = await self.store.get_payment(session_id)
        if existing is not None and existing.payment_status == PaymentStatus.COMPLETED:
            logger.info(
                "payment_already_processed",
                session_id=session_id,
                access_key_id=existing.access_key_id,
            )
            metrics.record_webhook_event(event.event_type, "replayed")
            return outcome_from_record(existing, replayed=True)

        with tracer.start_as_current_span("payment_webhook.grant") as span:
            add_span_attributes(span, session_id=session_id, plan=plan, credits=credits)
            try:
                outcome = await self._grant(event, plan, credits, retrying=existing is not None)
                record_payment_outcome(span, outcome)
                return outcome
            except DuplicatePaymentError:
                winner = await self.store.get_payment(session_id)
                if winner is not None and winner.payment_status == PaymentStatus.COMPLETED:
                    logger.info(
                        "payment_duplicate_delivery_resolved",
                        session_id=session_id,
                        access_key_id=winner.access_key_id,
                    )
                    metrics.record_webhook_event(event.event_type, "replayed")
                    outcome = outcome_from_record(winner, replayed=True)
                    record_payment_outcome(span, outcome)
                    return outcome
                set_span_error(span, DuplicatePaymentError(session_id))
                raise
            except Exception as exc:
                set_span_error(span, exc)
                await self._record_failure(event, plan, credits, exc)
                raise

    async def _grant(
        self, event: WebhookEvent, plan: str, credits: int, retrying: bool
    ) -> CompletedPayment:
        """Mint the key and the completed payment record in one transaction."""
        key_id = await self.key_generator.generate_unique(self.store)
        await self.store.create(key_id, plan, credits, event.customer_email, commit=False)

        record = self._record(
            event, plan, credits, PaymentStatus.COMPLETED, access_key_id=key_id
        )
        if retrying:
            await self.store.complete_failed_payment(record, commit=False)
        else:
            await self.store.append_payment(record, commit=False)
        await self.store.commit()

        metrics.record_key_minted(plan, "payment")
        metrics.record_webhook_event(event.event_type, "completed")
        logger.info(
            "payment_key_granted",
            session_id=event.object_id,
            access_key_id=key_id,
            plan=plan,
            credits=credits,
            retried=retrying,
        )

        return CompletedPayment(
            session_id=event.object_id,
            access_key_id=key_id,
            plan=plan,
            credits=credits,
            customer_email=event.customer_email,
        )

    async def _record_failure(
        self, event: WebhookEvent, plan: str, credits: int, error: Exception
    ) -> None:
        """Roll back the grant and persist a failed (retryable) payment record."""
        await self.store.rollback()
        metrics.record_webhook_event(event.event_type, "failed")

        failure = FailedPayment(
            session_id=event.object_id,
            plan=plan,
            credits=credits,
            reason=str(error),
            customer_email=event.customer_email,
        )
        logger.error(
            "payment_grant_failed",
            session_id=failure.session_id,
            plan=failure.plan,
            credits=failure.credits,
            error=failure.reason,
            error_type=type(error).__name__,
        )

        await self._store_failed_record(event, plan, credits, failure.reason)

    async def _store_failed_record(
        self, event: WebhookEvent, plan: str, credits: int, reason: str
    ) -> None:
        """Write or refresh the failed record; a completed record is left alone."""
        try:
            await self.store.mark_payment_failed(
                self._record(event, plan, credits, PaymentStatus.FAILED, error_message=reason)
            )
        except Exception as log_exc:
            logger.error(
                "payment_failure_record_failed",
                session_id=event.object_id,
                error=str(log_exc),
            )
