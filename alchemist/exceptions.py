"""
Exception Classes - Strongly typed exception hierarchy.

Every error carries typed attributes so routes can map it to a response
without parsing messages.
"""


class AlchemistError(Exception):
    """Base exception for all Keyword Alchemist errors."""

    pass


# ============================================================================
# Access Key Errors
# ============================================================================


class InvalidKeyError(AlchemistError):
    """Raised when an access key is absent, inactive, or malformed."""

    def __init__(self, key_id: str) -> None:
        self.key_id = key_id
        super().__init__(f"Invalid access key: {key_id}")


class KeySuspendedError(AlchemistError):
    """Raised when an access key exists but is not active."""

    def __init__(self, key_id: str, status: str) -> None:
        self.key_id = key_id
        self.status = status
        super().__init__(f"Access key {key_id} is {status}")


class KeyNotFoundError(AlchemistError):
    """Raised when a write targets an access key row that doesn't exist."""

    def __init__(self, key_id: str) -> None:
        self.key_id = key_id
        super().__init__(f"Access key not found: {key_id}")


class DuplicateKeyError(AlchemistError):
    """Raised when creating an access key whose id already exists."""

    def __init__(self, key_id: str) -> None:
        self.key_id = key_id
        super().__init__(f"Access key already exists: {key_id}")


class GenerationExhaustedError(AlchemistError):
    """Raised when no unused access key id was found within the retry ceiling."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Could not generate a unique access key after {attempts} attempts")


class UnknownPlanError(AlchemistError):
    """Raised when a plan name is not in the plan catalog."""

    def __init__(self, plan: str) -> None:
        self.plan = plan
        super().__init__(f"Unknown plan: {plan}")


# ============================================================================
# Ledger Errors
# ============================================================================


class SettleExceedsAuthorizationError(AlchemistError):
    """Raised when settling more credits than were authorized for the request."""

    def __init__(self, key_id: str, authorized: int, consumed: int) -> None:
        self.key_id = key_id
        self.authorized = authorized
        self.consumed = consumed
        super().__init__(
            f"Cannot settle {consumed} credits for {key_id}: only {authorized} authorized"
        )


class ContentGenerationError(AlchemistError):
    """Raised when the content provider fails for a single keyword."""

    def __init__(self, keyword: str, message: str) -> None:
        self.keyword = keyword
        self.message = message
        super().__init__(f"Generation failed for '{keyword}': {message}")


# ============================================================================
# Payment Errors
# ============================================================================


class InvalidSignatureError(AlchemistError):
    """Raised when webhook signature verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook signature verification failed: {message}")


class MalformedEventError(AlchemistError):
    """Raised when a verified webhook event lacks required data."""

    def __init__(self, event_id: str | None, message: str) -> None:
        self.event_id = event_id
        self.message = message
        super().__init__(f"Malformed event {event_id}: {message}")


class DuplicatePaymentError(AlchemistError):
    """Raised when a payment record already exists for a checkout session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Payment already recorded for session {session_id}")


class PaymentProviderError(AlchemistError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


# ============================================================================
# Infrastructure Errors
# ============================================================================


class StorageUnavailableError(AlchemistError):
    """Raised when the database cannot be reached or the operation fails unexpectedly."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        self.message = message
        super().__init__(f"Storage unavailable during {operation}: {message}")


class AuthenticationError(AlchemistError):
    """Raised when admin authentication fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")
