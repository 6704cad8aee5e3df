from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal

class UserCreate(BaseModel):
    username: str = Field(min_length=2, max_length=40)
    email: str
    subscription_tier: Literal["FREE", "WAX_PLUS", "WAX_PRO"] = "FREE"

class UserResponse(BaseModel):
    id: UUID
    username: str
    email: str
    subscription_tier: str
    tastemaker_score: int
    gold_spin_count: int
    silver_spin_count: int
    bronze_spin_count: int
    created_at: datetime

    model_config = {"from_attributes": True}

class FirstSpinBadgeResponse(BaseModel):
    album_id: UUID
    badge_type: str
    position: int
    wax_awarded: int
    created_at: datetime

    model_config = {"from_attributes": True}

class FirstSpinResponse(BaseModel):
    tastemaker_score: int
    gold_spin_count: int
    silver_spin_count: int
    bronze_spin_count: int
    total_badges: int
    badges: list[FirstSpinBadgeResponse]
