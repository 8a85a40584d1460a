"""
Admin API Routes - Access key minting, listing and bulk resets.

Every route requires a valid X-Admin-Token header.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from alchemist.api.dependencies import get_gateway, require_admin
from alchemist.db.session import get_db
from alchemist.exceptions import (
    AlchemistError,
    DuplicateKeyError,
    GenerationExhaustedError,
    StorageUnavailableError,
    UnknownPlanError,
)
from alchemist.models.api import (
    AccessKeyItem,
    AccessKeyListResponse,
    AdminResetResponse,
    CreateKeyRequest,
    CreateKeyResponse,
)
from alchemist.services.gateway import RequestGateway
from alchemist.services.key_store import KeyStore

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/keys", response_model=CreateKeyResponse, status_code=status.HTTP_201_CREATED)
async def create_access_key(
    request: CreateKeyRequest,
    gateway: RequestGateway = Depends(get_gateway),
) -> CreateKeyResponse:
    """Mint a funded access key for a plan without a payment."""
    try:
        key = await gateway.create_access_key(request.plan, request.email)
    except UnknownPlanError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (DuplicateKeyError, GenerationExhaustedError, StorageUnavailableError) as exc:
        logger.error("admin_create_key_failed", error=str(exc), error_type=type(exc).__name__)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    logger.info("admin_access_key_created", key_id=key.key_id, plan=key.plan.value)

    return CreateKeyResponse(
        access_key=key.key_id,
        plan=key.plan,
        credits=key.credits_total,
    )


@router.get("/keys", response_model=AccessKeyListResponse)
async def list_access_keys(db: AsyncSession = Depends(get_db)) -> AccessKeyListResponse:
    """All access keys, newest first."""
    try:
        keys = await KeyStore(db).list_all()
    except StorageUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    return AccessKeyListResponse(
        keys=[
            AccessKeyItem(
                access_key=key.key_id,
                plan=key.plan,
                credits_total=key.credits_total,
                credits_used=key.credits_used,
                credits_remaining=key.credits_remaining,
                email=key.email,
                status=key.status,
                created_at=key.created_at,
            )
            for key in keys
        ],
        total=len(keys),
    )


@router.post("/reset/analytics", response_model=AdminResetResponse)
async def reset_analytics(db: AsyncSession = Depends(get_db)) -> AdminResetResponse:
    """Delete all usage and keyword attempt logs. Access keys are kept."""
    try:
        deleted = await KeyStore(db).clear_analytics()
    except AlchemistError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    return AdminResetResponse(message="Analytics data cleared", rows_deleted=deleted)


@router.post("/reset/keys", response_model=AdminResetResponse)
async def reset_keys(db: AsyncSession = Depends(get_db)) -> AdminResetResponse:
    """Delete every access key. Payment records are kept without their key."""
    try:
        deleted = await KeyStore(db).delete_all_keys()
    except AlchemistError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc

    return AdminResetResponse(message="All access keys deleted", rows_deleted=deleted)
