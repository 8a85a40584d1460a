"""
Credit Ledger - Authorize and settle keyword credits against an access key.

authorize() is an advisory read; settle() is the source of truth. The debit
is a single in-database increment, so concurrent settlements never lose an
update. Two requests authorized against the same remaining credits can both
settle; the resulting overspend is detected and logged, never hidden.
"""

from structlog import get_logger

from alchemist.exceptions import InvalidKeyError, SettleExceedsAuthorizationError
from alchemist.models.domain import Authorization
from alchemist.observability.metrics import metrics
from alchemist.observability.tracing import (
    add_span_attributes,
    get_tracer,
    record_authorization,
    record_debit,
)
from alchemist.services.key_store import KeyStore

logger = get_logger(__name__)
tracer = get_tracer(__name__)


class CreditLedger:
    """Credit authorization and settlement over a KeyStore."""

    def __init__(self, store: KeyStore) -> None:
        self.store = store

    async def authorize(self, key_id: str, requested_count: int) -> Authorization:
        """
        Work out how many of `requested_count` items the key can pay for.

        Nothing is reserved. `allowed` is the size of the batch prefix that
        fits the remaining credits.

        Raises:
            ValueError: If requested_count is negative
            InvalidKeyError: If the key is absent or not active
        """
        if requested_count < 0:
            raise ValueError(f"Requested count cannot be negative: {requested_count}")

        with tracer.start_as_current_span("credit_ledger.authorize") as span:
            key = await self.store.get(key_id)
            if key is None:
                metrics.record_authorization("invalid_key")
                raise InvalidKeyError(key_id)

            remaining = max(key.credits_total - key.credits_used, 0)
            allowed = min(requested_count, remaining)

            authorization = Authorization(
                key_id=key_id,
                requested=requested_count,
                allowed=allowed,
                remaining=remaining,
            )
            record_authorization(span, authorization)

        if allowed == 0 and requested_count > 0:
            outcome = "empty"
        elif authorization.is_partial:
            outcome = "partial"
        else:
            outcome = "full"
        metrics.record_authorization(outcome)

        logger.debug(
            "credits_authorized",
            key_id=key_id,
            requested=requested_count,
            allowed=allowed,
            remaining=remaining,
        )
        return authorization

    async def settle(self, authorization: Authorization, consumed_count: int) -> int:
        """
        Debit the credits actually consumed and return the new remaining balance.

        Raises:
            SettleExceedsAuthorizationError: If consumed_count > authorization.allowed
            KeyNotFoundError: If the key vanished since authorization
            StorageUnavailableError: If the debit could not be written
        """
        if consumed_count < 0:
            raise ValueError(f"Consumed count cannot be negative: {consumed_count}")
        if consumed_count > authorization.allowed:
            raise SettleExceedsAuthorizationError(
                authorization.key_id, authorization.allowed, consumed_count
            )
        if consumed_count == 0:
            return authorization.remaining

        with tracer.start_as_current_span("credit_ledger.settle") as span:
            add_span_attributes(
                span,
                key_id=authorization.key_id,
                consumed=consumed_count,
                authorized=authorization.allowed,
            )
            try:
                result = await self.store.debit(authorization.key_id, consumed_count)
                await self.store.commit()
            except Exception:
                metrics.record_settlement(success=False, credits=consumed_count)
                raise
            record_debit(span, result)

        metrics.record_settlement(success=True, credits=consumed_count)

        if result.overspent:
            metrics.record_overspend()
            logger.warning(
                "credit_overspend_detected",
                key_id=authorization.key_id,
                credits_used=result.credits_used,
                credits_total=result.credits_total,
                overspend=result.credits_used - result.credits_total,
            )

        logger.info(
            "credits_settled",
            key_id=authorization.key_id,
            consumed=consumed_count,
            credits_remaining=result.credits_remaining,
        )
        return result.credits_remaining
