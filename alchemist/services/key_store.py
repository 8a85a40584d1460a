"""
Key Store - Persistence for access keys, usage logs and payment records.

NO DICTIONARIES - All reads return immutable domain dataclasses.

A KeyStore is bound to one AsyncSession (one unit of work). Writers commit by
default; pass commit=False to bundle several writes into one transaction and
finish it with commit().
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from alchemist.db.models import AccessKey, KeywordAttempt, PaymentLog, UsageLog, utc_now
from alchemist.exceptions import (
    DuplicateKeyError,
    DuplicatePaymentError,
    KeyNotFoundError,
    StorageUnavailableError,
)
from alchemist.models.api import KeyStatus, PaymentStatus, Plan
from alchemist.models.domain import (
    AccessKeyData,
    DebitResult,
    KeywordAttemptRecord,
    PaymentRecordData,
    UsageRecord,
)

logger = get_logger(__name__)


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StorageUnavailableError (IntegrityError passes through)."""
    try:
        yield
    except IntegrityError:
        raise
    except (DBAPIError, OSError) as exc:
        logger.error("storage_operation_failed", operation=operation, error=str(exc))
        raise StorageUnavailableError(operation, str(exc)) from exc


def _to_key_data(row: AccessKey) -> AccessKeyData:
    return AccessKeyData(
        key_id=row.id,
        plan=Plan(row.plan),
        credits_total=row.credits_total,
        credits_used=row.credits_used,
        status=KeyStatus(row.status),
        email=row.email,
        created_at=row.created_at,
    )


def _to_payment_data(row: PaymentLog) -> PaymentRecordData:
    return PaymentRecordData(
        session_id=row.session_id,
        access_key_id=row.access_key_id,
        plan=row.plan,
        credits=row.credits,
        amount_paid=row.amount_paid,
        customer_email=row.customer_email,
        stripe_customer_id=row.stripe_customer_id,
        payment_status=PaymentStatus(row.payment_status),
        error_message=row.error_message,
        created_at=row.created_at,
    )


class KeyStore:
    """Repository over access_keys, usage_logs, keyword_attempts and payment_logs."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize key store with database session."""
        self.session = session

    async def commit(self) -> None:
        """Commit the current unit of work."""
        with _storage_errors("commit"):
            await self.session.commit()

    async def rollback(self) -> None:
        """Discard the current unit of work."""
        await self.session.rollback()

    # ========================================================================
    # Access keys
    # ========================================================================

    async def create(
        self,
        key_id: str,
        plan: Plan | str,
        credits: int,
        email: str | None = None,
        commit: bool = True,
    ) -> AccessKeyData:
        """
        Insert a new active access key.

        Raises:
            DuplicateKeyError: If the id is already taken
        """
        if credits < 0:
            raise ValueError(f"Credits cannot be negative: {credits}")
        plan = Plan(plan)

        if await self.exists(key_id):
            raise DuplicateKeyError(key_id)

        row = AccessKey(
            id=key_id,
            plan=plan.value,
            credits_total=credits,
            credits_used=0,
            status=KeyStatus.ACTIVE.value,
            email=email,
            created_at=utc_now(),
        )
        self.session.add(row)

        try:
            with _storage_errors("create_key"):
                await self.session.flush()
                if commit:
                    await self.session.commit()
        except IntegrityError as exc:
            # Lost a race for the same id
            await self.session.rollback()
            raise DuplicateKeyError(key_id) from exc

        logger.info("access_key_created", key_id=key_id, plan=plan.value, credits=credits)
        return _to_key_data(row)

    async def get(self, key_id: str) -> AccessKeyData | None:
        """Fetch an active access key; inactive keys read as absent."""
        key = await self.get_any(key_id)
        if key is None or not key.is_active:
            return None
        return key

    async def get_any(self, key_id: str) -> AccessKeyData | None:
        """Fetch an access key whatever its status."""
        with _storage_errors("get_key"):
            result = await self.session.execute(
                select(AccessKey)
                .where(AccessKey.id == key_id)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
        return _to_key_data(row) if row is not None else None

    async def exists(self, key_id: str) -> bool:
        """True if any key (any status) has this id."""
        with _storage_errors("key_exists"):
            result = await self.session.execute(
                select(AccessKey.id).where(AccessKey.id == key_id)
            )
            return result.scalar_one_or_none() is not None

    async def debit(self, key_id: str, amount: int) -> DebitResult:
        """
        Atomically add `amount` to credits_used in a single statement.

        No sufficiency check happens here; the caller commits.

        Raises:
            KeyNotFoundError: If no row matched
        """
        if amount < 0:
            raise ValueError(f"Debit amount cannot be negative: {amount}")

        stmt = (
            update(AccessKey)
            .where(AccessKey.id == key_id)
            .values(credits_used=AccessKey.credits_used + amount)
            .returning(AccessKey.credits_used, AccessKey.credits_total)
            .execution_options(synchronize_session=False)
        )
        with _storage_errors("debit"):
            result = await self.session.execute(stmt)
            row = result.one_or_none()

        if row is None:
            raise KeyNotFoundError(key_id)

        return DebitResult(key_id=key_id, credits_used=row[0], credits_total=row[1])

    async def list_all(self) -> list[AccessKeyData]:
        """All keys, newest first."""
        with _storage_errors("list_keys"):
            result = await self.session.execute(
                select(AccessKey)
                .order_by(AccessKey.created_at.desc(), AccessKey.id)
                .execution_options(populate_existing=True)
            )
            rows = result.scalars().all()
        return [_to_key_data(row) for row in rows]

    # ========================================================================
    # Append-only logs
    # ========================================================================

    async def append_usage(self, record: UsageRecord, commit: bool = True) -> None:
        """Insert one usage log row."""
        self.session.add(
            UsageLog(
                access_key_id=record.access_key_id,
                keywords_requested=record.keywords_requested,
                keywords_processed=record.keywords_processed,
                credits_deducted=record.credits_deducted,
                output_format=record.output_format,
                estimated_cost_usd=record.estimated_cost_usd,
                created_at=utc_now(),
            )
        )
        with _storage_errors("append_usage"):
            await self.session.flush()
            if commit:
                await self.session.commit()

    async def append_keyword_attempt(
        self, record: KeywordAttemptRecord, commit: bool = True
    ) -> None:
        """Insert one keyword attempt row."""
        self.session.add(
            KeywordAttempt(
                access_key_id=record.access_key_id,
                keyword=record.keyword,
                approach=record.approach,
                status=record.status.value,
                error_message=record.error_message,
                word_count=record.word_count,
                processing_time_ms=record.processing_time_ms,
                output_format=record.output_format,
                estimated_cost_usd=record.estimated_cost_usd,
                created_at=utc_now(),
            )
        )
        with _storage_errors("append_keyword_attempt"):
            await self.session.flush()
            if commit:
                await self.session.commit()

    # ========================================================================
    # Payment records
    # ========================================================================

    async def get_payment(self, session_id: str) -> PaymentRecordData | None:
        """Fetch the payment record for a checkout session."""
        with _storage_errors("get_payment"):
            result = await self.session.execute(
                select(PaymentLog)
                .where(PaymentLog.session_id == session_id)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
        return _to_payment_data(row) if row is not None else None

    async def append_payment(self, record: PaymentRecordData, commit: bool = True) -> None:
        """
        Insert a payment record.

        On a session_id collision the whole unit of work is rolled back.

        Raises:
            DuplicatePaymentError: If a record for the session already exists
        """
        self.session.add(
            PaymentLog(
                session_id=record.session_id,
                access_key_id=record.access_key_id,
                plan=record.plan,
                credits=record.credits,
                amount_paid=record.amount_paid,
                customer_email=record.customer_email,
                stripe_customer_id=record.stripe_customer_id,
                payment_status=record.payment_status.value,
                error_message=record.error_message,
                created_at=record.created_at,
                updated_at=utc_now(),
            )
        )
        try:
            with _storage_errors("append_payment"):
                await self.session.flush()
                if commit:
                    await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicatePaymentError(record.session_id) from exc

    async def complete_failed_payment(
        self, record: PaymentRecordData, commit: bool = True
    ) -> None:
        """
        Upgrade a failed payment record to completed.

        The update only matches a row that is still failed, so two concurrent
        retries cannot both complete it.

        Raises:
            DuplicatePaymentError: If the record is no longer failed
        """
        stmt = (
            update(PaymentLog)
            .where(
                PaymentLog.session_id == record.session_id,
                PaymentLog.payment_status == PaymentStatus.FAILED.value,
            )
            .values(
                access_key_id=record.access_key_id,
                plan=record.plan,
                credits=record.credits,
                amount_paid=record.amount_paid,
                customer_email=record.customer_email,
                stripe_customer_id=record.stripe_customer_id,
                payment_status=PaymentStatus.COMPLETED.value,
                error_message=None,
                updated_at=utc_now(),
            )
            .returning(PaymentLog.id)
            .execution_options(synchronize_session=False)
        )
        with _storage_errors("complete_failed_payment"):
            result = await self.session.execute(stmt)
            upgraded = result.scalar_one_or_none()

        if upgraded is None:
            await self.session.rollback()
            raise DuplicatePaymentError(record.session_id)

        if commit:
            await self.commit()

    async def mark_payment_failed(self, record: PaymentRecordData) -> PaymentRecordData:
        """
        Persist a failed payment record, or refresh the error on an existing one.

        A completed record is never overwritten; it is returned unchanged.
        """
        existing = await self.get_payment(record.session_id)

        if existing is None:
            try:
                await self.append_payment(record)
                return record
            except DuplicatePaymentError:
                existing = await self.get_payment(record.session_id)
                if existing is None:
                    raise

        if existing.payment_status == PaymentStatus.COMPLETED:
            return existing

        with _storage_errors("mark_payment_failed"):
            await self.session.execute(
                update(PaymentLog)
                .where(
                    PaymentLog.session_id == record.session_id,
                    PaymentLog.payment_status != PaymentStatus.COMPLETED.value,
                )
                .values(
                    payment_status=PaymentStatus.FAILED.value,
                    error_message=record.error_message,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()

        refreshed = await self.get_payment(record.session_id)
        return refreshed if refreshed is not None else record

    # ========================================================================
    # Administrative resets
    # ========================================================================

    async def clear_analytics(self) -> int:
        """Delete all usage and keyword attempt rows. Returns rows deleted."""
        with _storage_errors("clear_analytics"):
            usage = await self.session.execute(delete(UsageLog))
            attempts = await self.session.execute(delete(KeywordAttempt))
            await self.session.commit()
        deleted = (usage.rowcount or 0) + (attempts.rowcount or 0)
        logger.warning("analytics_cleared", rows_deleted=deleted)
        return deleted

    async def delete_all_keys(self) -> int:
        """
        Delete every access key. Returns keys deleted.

        Payment records are kept with their key reference cleared; logs that
        belong to the keys go with them.
        """
        with _storage_errors("delete_all_keys"):
            await self.session.execute(
                update(PaymentLog)
                .where(PaymentLog.access_key_id.is_not(None))
                .values(access_key_id=None, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.session.execute(delete(UsageLog))
            await self.session.execute(delete(KeywordAttempt))
            result = await self.session.execute(delete(AccessKey))
            await self.session.commit()
        deleted = result.rowcount or 0
        logger.warning("access_keys_deleted", keys_deleted=deleted)
        return deleted

    async def count_keys(self) -> int:
        """Number of access keys in any status."""
        with _storage_errors("count_keys"):
            result = await self.session.execute(select(func.count()).select_from(AccessKey))
            return int(result.scalar_one())
