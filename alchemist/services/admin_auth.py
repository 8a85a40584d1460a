"""
Admin authentication - argon2-verified admin token.

The plaintext token is never stored; settings carry only its argon2 hash
(see scripts/hash_admin_token.py).
"""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from structlog import get_logger

from alchemist.exceptions import AuthenticationError

logger = get_logger(__name__)


class AdminTokenVerifier:
    """Checks a presented admin token against the configured argon2 hash."""

    def __init__(self, token_hash: str):
        self.token_hash = token_hash
        self.password_hasher = PasswordHasher()

    @staticmethod
    def hash_token(token: str) -> str:
        """Hash a plaintext admin token for ADMIN_TOKEN_HASH."""
        return PasswordHasher().hash(token)

    def verify(self, token: str | None) -> None:
        """
        Verify an admin token.

        Raises:
            AuthenticationError: If admin access is not configured or the token
                does not match
        """
        if not self.token_hash:
            logger.warning("admin_auth_not_configured")
            raise AuthenticationError("Admin access is not configured")

        if not token:
            logger.warning("admin_auth_no_token")
            raise AuthenticationError("Admin token required")

        try:
            self.password_hasher.verify(self.token_hash, token)
        except (VerifyMismatchError, VerificationError, InvalidHashError) as exc:
            logger.warning("admin_auth_token_mismatch")
            raise AuthenticationError("Invalid admin token") from exc
