"""
API Models - Pydantic models for request/response validation.

Wire format is camelCase (as the web client sends it); Python code uses
snake_case field names.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Plan(str, Enum):
    """Purchasable plan enumeration."""

    BASIC = "basic"
    BLOGGER = "blogger"
    PRO = "pro"


class KeyStatus(str, Enum):
    """Access key status enumeration."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"


class AttemptStatus(str, Enum):
    """Outcome of a single keyword generation attempt."""

    SUCCESS = "success"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    """Payment record status enumeration."""

    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"


MAX_KEYWORDS_PER_REQUEST = 100
MAX_KEYWORD_LENGTH = 100


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Access Key Validation
# ============================================================================


class ValidateKeyRequest(CamelModel):
    """POST /api/auth/validate request body."""

    access_key: str = Field(..., min_length=1, max_length=64)

    @field_validator("access_key")
    @classmethod
    def normalize_access_key(cls, v: str) -> str:
        """Keys are typed by humans - tolerate surrounding whitespace and lowercase."""
        return v.strip().upper()


class ValidateKeyResponse(CamelModel):
    """POST /api/auth/validate response."""

    valid: bool
    plan: Plan
    credits_total: int
    credits_used: int
    credits_remaining: int
    status: KeyStatus


# ============================================================================
# Keyword Processing
# ============================================================================


class ProcessKeywordsRequest(CamelModel):
    """POST /api/keywords/process request body."""

    access_key: str = Field(..., min_length=1, max_length=64)
    keywords: list[str] = Field(..., min_length=1, max_length=MAX_KEYWORDS_PER_REQUEST)
    output_format: str = Field(default="wordpress", min_length=1, max_length=32)
    allow_partial: bool = Field(
        default=False,
        description="Process the prefix that fits the remaining credits instead of refusing",
    )

    @field_validator("access_key")
    @classmethod
    def normalize_access_key(cls, v: str) -> str:
        """Keys are typed by humans - tolerate surrounding whitespace and lowercase."""
        return v.strip().upper()

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: list[str]) -> list[str]:
        """Strip keywords and reject blank or oversized entries (order is preserved)."""
        cleaned = []
        for keyword in v:
            keyword = keyword.strip()
            if not keyword:
                raise ValueError("keywords must not contain blank entries")
            if len(keyword) > MAX_KEYWORD_LENGTH:
                raise ValueError(f"keyword exceeds {MAX_KEYWORD_LENGTH} characters: {keyword[:20]}...")
            cleaned.append(keyword)
        return cleaned


class ProcessedKeyword(CamelModel):
    """Per-keyword result. Failures are reported here, never dropped."""

    keyword: str
    status: AttemptStatus
    title: str | None = None
    tldr: str | None = None
    body: str | None = None
    approach: str | None = None
    word_count: int | None = None
    error_message: str | None = None
    linking_suggestions: list[str] | None = None


class ProcessKeywordsResponse(CamelModel):
    """Keywords were generated (all of them, or the allowed prefix)."""

    success: bool = True
    processed: list[ProcessedKeyword]
    rejected_keywords: list[str] = Field(default_factory=list)
    credits_charged: int
    credits_remaining: int
    settlement_pending: bool = False


class PartialCreditsResponse(CamelModel):
    """Not enough credits for the whole batch - nothing was generated or charged."""

    success: bool = False
    message: str
    allowed_keywords: list[str]
    rejected_keywords: list[str]
    credits_remaining: int


# ============================================================================
# Checkout / Payments
# ============================================================================


class CheckoutRequest(CamelModel):
    """POST /api/checkout request body."""

    plan: Plan
    customer_email: str = Field(..., min_length=3, max_length=255)

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Minimal sanity check - Stripe performs full validation."""
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("customer_email must be an email address")
        return v


class CheckoutResponse(CamelModel):
    """POST /api/checkout response."""

    checkout_url: str
    session_id: str


class CheckoutSessionStatusResponse(CamelModel):
    """GET /api/checkout/session/{session_id} response."""

    session_id: str
    status: PaymentStatus
    access_key: str | None = None
    plan: str
    credits: int
    customer_email: str | None = None


class WebhookAckResponse(CamelModel):
    """POST /api/webhooks/stripe response."""

    received: bool = True
    status: str
    event_id: str


class PlanItem(CamelModel):
    """Public plan catalog entry."""

    plan: Plan
    name: str
    description: str
    credits: int
    price_minor: int
    currency: str


class PlanListResponse(CamelModel):
    """GET /api/plans response."""

    plans: list[PlanItem]


# ============================================================================
# Admin
# ============================================================================


class CreateKeyRequest(CamelModel):
    """POST /api/admin/keys request body."""

    plan: Plan = Plan.BASIC
    email: str | None = Field(None, max_length=255)


class CreateKeyResponse(CamelModel):
    """POST /api/admin/keys response."""

    success: bool = True
    access_key: str
    plan: Plan
    credits: int
    message: str = "Access key created successfully"


class AccessKeyItem(CamelModel):
    """Admin view of an access key."""

    access_key: str
    plan: Plan
    credits_total: int
    credits_used: int
    credits_remaining: int
    email: str | None
    status: KeyStatus
    created_at: datetime


class AccessKeyListResponse(CamelModel):
    """GET /api/admin/keys response."""

    keys: list[AccessKeyItem]
    total: int


class AdminResetResponse(CamelModel):
    """Administrative bulk reset response."""

    success: bool = True
    message: str
    rows_deleted: int


# ============================================================================
# Health
# ============================================================================


class HealthResponse(CamelModel):
    """GET /api/health response."""

    status: str
    database: str
    timestamp: str
