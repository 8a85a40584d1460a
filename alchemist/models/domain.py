"""
Domain Models - Internal business logic models using dataclasses.

All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass, field
from datetime import datetime

from alchemist.models.api import AttemptStatus, KeyStatus, PaymentStatus, Plan


@dataclass(frozen=True)
class AccessKeyData:
    """Immutable access key snapshot."""

    key_id: str
    plan: Plan
    credits_total: int
    credits_used: int
    status: KeyStatus
    email: str | None
    created_at: datetime

    @property
    def credits_remaining(self) -> int:
        """Credits still available (never negative, even after a racing overspend)."""
        return max(self.credits_total - self.credits_used, 0)

    @property
    def is_active(self) -> bool:
        """Only active keys validate."""
        return self.status == KeyStatus.ACTIVE


@dataclass(frozen=True)
class Authorization:
    """
    Result of CreditLedger.authorize for one logical request.

    `allowed` is the size of the prefix of the submitted batch that may be
    processed; settlement may never exceed it.
    """

    key_id: str
    requested: int
    allowed: int
    remaining: int

    def __post_init__(self) -> None:
        """Validate authorization bounds."""
        if self.requested < 0:
            raise ValueError(f"Requested count cannot be negative: {self.requested}")
        if not 0 <= self.allowed <= self.requested:
            raise ValueError(f"Allowed must be within [0, {self.requested}]: {self.allowed}")
        if self.allowed > self.remaining:
            raise ValueError(f"Allowed {self.allowed} exceeds remaining {self.remaining}")

    @property
    def is_partial(self) -> bool:
        """True when the batch doesn't fit the remaining credits."""
        return self.allowed < self.requested


@dataclass(frozen=True)
class DebitResult:
    """Counters of an access key as written by one atomic debit."""

    key_id: str
    credits_used: int
    credits_total: int

    @property
    def credits_remaining(self) -> int:
        """Remaining credits, clamped at zero."""
        return max(self.credits_total - self.credits_used, 0)

    @property
    def overspent(self) -> bool:
        """True when racing settlements pushed usage past the total."""
        return self.credits_used > self.credits_total


@dataclass(frozen=True)
class UsageRecord:
    """One processed batch - appended to the usage log."""

    access_key_id: str
    keywords_requested: int
    keywords_processed: int
    credits_deducted: int
    output_format: str = "wordpress"
    estimated_cost_usd: float = 0.0

    def __post_init__(self) -> None:
        """Validate usage constraints."""
        if self.keywords_processed > self.keywords_requested:
            raise ValueError(
                f"Processed ({self.keywords_processed}) exceeds requested ({self.keywords_requested})"
            )
        if self.credits_deducted < 0:
            raise ValueError(f"Credits deducted cannot be negative: {self.credits_deducted}")


@dataclass(frozen=True)
class KeywordAttemptRecord:
    """One keyword generation attempt - appended to the attempt log."""

    access_key_id: str
    keyword: str
    approach: str
    status: AttemptStatus
    error_message: str | None = None
    word_count: int | None = None
    processing_time_ms: int | None = None
    output_format: str = "wordpress"
    estimated_cost_usd: float = 0.0


@dataclass(frozen=True)
class PaymentRecordData:
    """Immutable payment record snapshot."""

    session_id: str
    access_key_id: str | None
    plan: str
    credits: int
    amount_paid: int
    customer_email: str | None
    stripe_customer_id: str | None
    payment_status: PaymentStatus
    error_message: str | None
    created_at: datetime


# ============================================================================
# Payment outcome (tagged variant)
# ============================================================================


@dataclass(frozen=True)
class CompletedPayment:
    """A checkout session that produced a funded access key."""

    session_id: str
    access_key_id: str | None  # None once an admin reset deleted the key
    plan: str
    credits: int
    customer_email: str | None
    replayed: bool = False  # True when returned from an earlier delivery


@dataclass(frozen=True)
class FailedPayment:
    """A checkout session whose grant failed (retryable on redelivery)."""

    session_id: str
    plan: str
    credits: int
    reason: str
    customer_email: str | None


PaymentOutcome = CompletedPayment | FailedPayment


# ============================================================================
# Content generation
# ============================================================================


@dataclass(frozen=True)
class GeneratedArticle:
    """Blog post returned by the content provider for one keyword."""

    keyword: str
    title: str
    tldr: str
    body: str
    approach: str
    linking_suggestions: tuple[str, ...] = field(default_factory=tuple)

    @property
    def word_count(self) -> int:
        """Number of whitespace-separated words in the body."""
        return len(self.body.split())


@dataclass(frozen=True)
class CheckoutSession:
    """Redirectable checkout session created with the payment provider."""

    session_id: str
    checkout_url: str
