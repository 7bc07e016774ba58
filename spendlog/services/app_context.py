"""
Per-request application context: who the user is, whether they are premium,
and which interface mode they are in
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.core.database import build_upsert
from spendlog.core.datetime_utils import utcnow
from spendlog.core.exceptions import CapabilityError, ValidationFailedError
from spendlog.models import AppMode, Subscription, UserFinancialSettings

logger = logging.getLogger(__name__)

PREMIUM_PLAN = "premium"
PREMIUM_STATUSES = {"active", "trialing"}

def is_premium_subscription(subscription: Optional[Subscription]) -> bool:
    if subscription is None:
        return False
    return subscription.plan == PREMIUM_PLAN and subscription.status in PREMIUM_STATUSES

def trial_days_left(subscription: Optional[Subscription], today: Optional[date] = None) -> int:
    if subscription is None or subscription.trial_end is None:
        return 0
    today = today or utcnow().date()
    return max(0, (subscription.trial_end.date() - today).days)

def resolve_mode(stored_mode: Optional[str], is_premium: bool) -> AppMode:
    """Advanced mode silently falls back to simple once premium lapses"""
    mode = AppMode(stored_mode) if stored_mode else AppMode.SIMPLE
    if mode == AppMode.ADVANCED and not is_premium:
        return AppMode.SIMPLE
    return mode

@dataclass(frozen=True)
class AppContext:
    user_id: int
    is_premium: bool = False
    is_trialing: bool = False
    mode: AppMode = AppMode.SIMPLE

    @property
    def is_advanced(self) -> bool:
        return self.mode == AppMode.ADVANCED

    def with_mode(self, mode) -> "AppContext":
        """Validated mode change; advanced needs premium"""
        try:
            mode = AppMode(mode)
        except ValueError:
            raise ValidationFailedError(f"Unknown mode: {mode}")
        if mode == AppMode.ADVANCED and not self.is_premium:
            raise CapabilityError("Advanced mode requires a premium subscription")
        return replace(self, mode=mode)

class AppContextService:
    def __init__(self, db: AsyncSession, user_id: int):
        self.db = db
        self.user_id = user_id

    async def load(self) -> AppContext:
        subscription = (await self.db.execute(
            select(Subscription).where(Subscription.user_id == self.user_id)
        )).scalar_one_or_none()
        stored_mode = (await self.db.execute(
            select(UserFinancialSettings.app_mode).where(UserFinancialSettings.user_id == self.user_id)
        )).scalar_one_or_none()

        is_premium = is_premium_subscription(subscription)
        return AppContext(
            user_id=self.user_id,
            is_premium=is_premium,
            is_trialing=subscription is not None and subscription.status == "trialing",
            mode=resolve_mode(stored_mode, is_premium)
        )

    async def set_mode(self, context: AppContext, mode) -> AppContext:
        updated = context.with_mode(mode)
        await self.db.execute(build_upsert(
            self.db,
            UserFinancialSettings,
            {"user_id": self.user_id, "app_mode": updated.mode.value},
            ["user_id"],
            {"app_mode": updated.mode.value, "updated_at": utcnow()}
        ))
        await self.db.commit()
        logger.info("user=%s mode %s -> %s", self.user_id, context.mode.value, updated.mode.value)
        return updated
