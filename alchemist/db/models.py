"""
Database Models - SQLAlchemy ORM models with strict typing.

All columns use Mapped[] type annotations. Column types are portable so the
same schema runs on PostgreSQL (production) and SQLite (local/tests).
"""

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class AccessKey(Base):
    """
    ORM model for access_keys table.

    One row per prepaid access key. credits_used is only ever changed by an
    atomic in-database increment.
    """

    __tablename__ = "access_keys"

    # Primary Key - the key itself (KWA-XXX-XXX-XX)
    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    plan: Mapped[str] = mapped_column(String(20), nullable=False)

    # Credits
    credits_total: Mapped[int] = mapped_column(BigInteger, nullable=False)
    credits_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    # Contact information
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Audit timestamp
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_total >= 0", name="ck_access_keys_credits_total_non_negative"),
        CheckConstraint("credits_used >= 0", name="ck_access_keys_credits_used_non_negative"),
        CheckConstraint("plan IN ('basic', 'blogger', 'pro')", name="ck_access_keys_plan"),
        CheckConstraint(
            "status IN ('active', 'suspended', 'expired')", name="ck_access_keys_status"
        ),
        Index("idx_access_keys_created_at", "created_at"),
        Index("idx_access_keys_email", "email"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<AccessKey(id={self.id}, plan={self.plan}, "
            f"used={self.credits_used}/{self.credits_total}, status={self.status})>"
        )


class UsageLog(Base):
    """
    ORM model for usage_logs table.

    Append-only: one row per processed keyword batch.
    """

    __tablename__ = "usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    access_key_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("access_keys.id", ondelete="CASCADE"), nullable=False
    )

    keywords_requested: Mapped[int] = mapped_column(Integer, nullable=False)
    keywords_processed: Mapped[int] = mapped_column(Integer, nullable=False)
    credits_deducted: Mapped[int] = mapped_column(Integer, nullable=False)

    output_format: Mapped[str] = mapped_column(String(32), nullable=False, default="wordpress")
    estimated_cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("credits_deducted >= 0", name="ck_usage_logs_credits_non_negative"),
        Index("idx_usage_logs_access_key_id", "access_key_id"),
        Index("idx_usage_logs_created_at", "created_at"),
    )


class KeywordAttempt(Base):
    """
    ORM model for keyword_attempts table.

    Append-only: one row per keyword generation attempt (success or failure).
    """

    __tablename__ = "keyword_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    access_key_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("access_keys.id", ondelete="CASCADE"), nullable=False
    )

    keyword: Mapped[str] = mapped_column(String(255), nullable=False)
    approach: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    output_format: Mapped[str] = mapped_column(String(32), nullable=False, default="wordpress")
    estimated_cost_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("status IN ('success', 'failed')", name="ck_keyword_attempts_status"),
        Index("idx_keyword_attempts_access_key_id", "access_key_id"),
        Index("idx_keyword_attempts_created_at", "created_at"),
        Index("idx_keyword_attempts_keyword", "keyword"),
    )


class PaymentLog(Base):
    """
    ORM model for payment_logs table.

    One row per checkout session. The UNIQUE session_id is the idempotency
    control for webhook redelivery.
    """

    __tablename__ = "payment_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Idempotency - Stripe checkout session id
    session_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    access_key_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("access_keys.id", ondelete="SET NULL"), nullable=True
    )

    plan: Mapped[str] = mapped_column(String(20), nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_paid: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('completed', 'failed', 'pending')",
            name="ck_payment_logs_status",
        ),
        Index("idx_payment_logs_created_at", "created_at"),
        Index("idx_payment_logs_status", "payment_status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PaymentLog(session_id={self.session_id}, status={self.payment_status}, "
            f"access_key_id={self.access_key_id})>"
        )
