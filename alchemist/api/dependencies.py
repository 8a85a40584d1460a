"""
FastAPI Dependencies - Service wiring and admin authentication.

Long-lived collaborators (database, content generator, payment provider)
live on app.state and are created in the lifespan; dependencies only hand
them out, so tests can override any of them with app.dependency_overrides.
"""

from fastapi import Depends, Header, HTTPException, Request, status
from structlog import get_logger

from alchemist.config import Settings, get_settings
from alchemist.db.session import Database, get_database
from alchemist.exceptions import AuthenticationError
from alchemist.services.admin_auth import AdminTokenVerifier
from alchemist.services.content_generator import ContentGenerator
from alchemist.services.gateway import RequestGateway
from alchemist.services.key_generator import KeyGenerator
from alchemist.services.payment_provider import PaymentProvider

logger = get_logger(__name__)


def get_content_generator(request: Request) -> ContentGenerator:
    """Content generator created at startup."""
    generator: ContentGenerator = request.app.state.content_generator
    return generator


def get_payment_provider(request: Request) -> PaymentProvider:
    """Payment provider created at startup."""
    provider: PaymentProvider = request.app.state.payment_provider
    return provider


def get_key_generator(settings: Settings = Depends(get_settings)) -> KeyGenerator:
    """Key generator honoring the configured retry ceiling."""
    return KeyGenerator(max_attempts=settings.key_generation_max_attempts)


def get_gateway(
    database: Database = Depends(get_database),
    generator: ContentGenerator = Depends(get_content_generator),
    key_generator: KeyGenerator = Depends(get_key_generator),
    settings: Settings = Depends(get_settings),
) -> RequestGateway:
    """Request gateway bound to the process-wide collaborators."""
    return RequestGateway(database, generator, key_generator, settings)


async def require_admin(
    x_admin_token: str | None = Header(None, description="Administrative token"),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    FastAPI dependency guarding administrative routes.

    Raises:
        HTTPException 401 if the token is missing or wrong
    """
    try:
        AdminTokenVerifier(settings.admin_token_hash).verify(x_admin_token)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "AdminToken"},
        ) from exc
