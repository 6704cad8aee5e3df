from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional, Any

class WalletResponse(BaseModel):
    balance: int
    lifetime_earned: int
    lifetime_spent: int
    weekly_earned: int
    weekly_cap: Optional[int] = None
    weekly_remaining: Optional[int] = None
    days_until_reset: int
    current_streak: int
    can_claim_daily: bool
    tier: str
    earn_multiplier: float
    is_frozen: bool
    tastemaker_score: int
    gold_spin_count: int
    silver_spin_count: int
    bronze_spin_count: int
    has_taste_id: bool
    review_count: int

class TransactionResponse(BaseModel):
    id: UUID
    amount: int
    type: str
    description: str
    metadata: Optional[dict[str, Any]] = Field(None, validation_alias="metadata_")
    created_at: datetime

    model_config = {"from_attributes": True, "populate_by_name": True}

class DailyClaimResponse(BaseModel):
    earned: int
    capped: bool
    new_balance: int
    message: Optional[str] = None
    already_claimed: bool
    streak: int

class SpendRequest(BaseModel):
    action: str
    target_id: Optional[str] = None

class SpendResponse(BaseModel):
    success: bool
    spent: int
    new_balance: int
    error: Optional[str] = None

class VerifyResponse(BaseModel):
    user_id: UUID
    balance: int
    ledger_sum: int
    consistent: bool
    is_frozen: bool
