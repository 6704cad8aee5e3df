from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Optional, Any

class AlbumCreate(BaseModel):
    title: str
    artist_name: str
    genres: list[str] = []
    release_year: Optional[int] = Field(None, ge=1900, le=2100)
    trend_threshold: Optional[int] = Field(None, ge=1)

class AlbumResponse(BaseModel):
    id: UUID
    title: str
    artist_name: str
    genres: list[str]
    release_year: Optional[int] = None
    average_rating: Optional[float] = None
    total_reviews: int
    is_trending: bool
    trended_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}

class RatingUpsert(BaseModel):
    score: float = Field(ge=0, le=10)
    text: Optional[str] = None

class RatingResponse(BaseModel):
    id: UUID
    user_id: UUID
    album_id: Optional[UUID] = None
    score: float
    text: Optional[str] = None
    review_position: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class RatingUpsertResponse(BaseModel):
    rating: RatingResponse
    created: bool
    review_reward: Optional[dict[str, Any]] = None
    album_trending: bool = False
    taste_status: Optional[str] = None  # "computed" / "insufficient_data"
