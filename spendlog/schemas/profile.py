from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from spendlog.models.budget import AppMode

class ProfileResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=100)

class AppContextResponse(BaseModel):
    is_premium: bool
    is_trialing: bool
    mode: AppMode
    trial_days_left: int = 0

class ModeUpdate(BaseModel):
    mode: AppMode
