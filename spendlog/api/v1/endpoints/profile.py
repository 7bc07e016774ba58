"""
Profile API Endpoints
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.api.deps import get_app_context, get_current_user_id, get_db, get_storage
from spendlog.config import settings
from spendlog.core.datetime_utils import utcnow
from spendlog.core.exceptions import StorageError, ValidationFailedError
from spendlog.models import Subscription, User
from spendlog.schemas.profile import AppContextResponse, ModeUpdate, ProfileResponse, ProfileUpdate
from spendlog.services.app_context import AppContext, AppContextService, trial_days_left
from spendlog.services.storage import LocalBlobStorage

logger = logging.getLogger(__name__)

router = APIRouter()

AVATAR_TYPES = {"image/jpeg": ".jpg", "image/png": ".png", "image/webp": ".webp", "image/gif": ".gif"}

async def _get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one()

def profile_response(user: User, blob_storage: LocalBlobStorage) -> ProfileResponse:
    avatar_url = None
    if user.avatar_path:
        avatar_url = blob_storage.create_signed_url(settings.AVATAR_BUCKET, user.avatar_path)
    return ProfileResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        avatar_url=avatar_url,
        created_at=user.created_at
    )

@router.get("/", response_model=ProfileResponse)
async def get_profile(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    blob_storage: LocalBlobStorage = Depends(get_storage)
):
    return profile_response(await _get_user(db, user_id), blob_storage)

@router.patch("/", response_model=ProfileResponse)
async def update_profile(
    profile_update: ProfileUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    blob_storage: LocalBlobStorage = Depends(get_storage)
):
    user = await _get_user(db, user_id)
    changes = profile_update.model_dump(exclude_unset=True)
    if "full_name" in changes:
        user.full_name = (changes["full_name"] or "").strip() or None

    await db.commit()
    await db.refresh(user)

    return profile_response(user, blob_storage)

@router.post("/avatar", response_model=ProfileResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    blob_storage: LocalBlobStorage = Depends(get_storage)
):
    """
    Replace the profile picture
    """
    extension = AVATAR_TYPES.get(file.content_type or "")
    if extension is None:
        raise ValidationFailedError("Avatar must be a JPEG, PNG, WebP or GIF image")

    limit_mb = settings.MAX_AVATAR_BYTES // (1024 * 1024)
    if file.size is not None and file.size > settings.MAX_AVATAR_BYTES:
        raise ValidationFailedError(f"Avatar must be less than {limit_mb}MB")

    data = await file.read()
    if not data:
        raise ValidationFailedError("File is empty")
    if len(data) > settings.MAX_AVATAR_BYTES:
        raise ValidationFailedError(f"Avatar must be less than {limit_mb}MB")

    user = await _get_user(db, user_id)
    previous = user.avatar_path
    path = f"{user_id}/avatar-{int(utcnow().timestamp() * 1000)}{extension}"

    await blob_storage.upload(settings.AVATAR_BUCKET, path, data)
    user.avatar_path = path
    await db.commit()
    await db.refresh(user)

    if previous and previous != path:
        try:
            await blob_storage.remove(settings.AVATAR_BUCKET, [previous])
        except StorageError as e:
            logger.warning("Old avatar %s not removed: %s", previous, e.message)

    return profile_response(user, blob_storage)

@router.get("/mode", response_model=AppContextResponse)
async def get_app_mode(
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Premium status and the effective simple/advanced mode
    """
    subscription = (await db.execute(
        select(Subscription).where(Subscription.user_id == context.user_id)
    )).scalar_one_or_none()

    return AppContextResponse(
        is_premium=context.is_premium,
        is_trialing=context.is_trialing,
        mode=context.mode,
        trial_days_left=trial_days_left(subscription)
    )

@router.put("/mode", response_model=AppContextResponse)
async def set_app_mode(
    mode_update: ModeUpdate,
    context: AppContext = Depends(get_app_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Switch modes; advanced needs an active or trialing premium plan
    """
    updated = await AppContextService(db, context.user_id).set_mode(context, mode_update.mode)

    subscription = (await db.execute(
        select(Subscription).where(Subscription.user_id == context.user_id)
    )).scalar_one_or_none()

    return AppContextResponse(
        is_premium=updated.is_premium,
        is_trialing=updated.is_trialing,
        mode=updated.mode,
        trial_days_left=trial_days_left(subscription)
    )
