from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional, Literal

class InsufficientDataResponse(BaseModel):
    status: Literal["insufficient_data"] = "insufficient_data"
    rating_count: int
    required: int

class TasteProfileResponse(BaseModel):
    status: Literal["ok"] = "ok"
    user_id: UUID
    version: int
    genre_vector: dict[str, float]
    artist_affinity: list[dict]
    decade_histogram: dict[str, float]
    adventurousness: float
    polarity: float
    rating_mean: float
    rating_median: float
    rating_stddev: float
    rating_skew: float
    rating_tendency: str
    review_depth: str
    primary_archetype: str
    secondary_archetype: Optional[str] = None
    archetype_confidence: float
    confidence_level: str
    review_count: int
    top_genres: list[str]
    top_artists: list[str]
    listening_signature: dict[str, float]
    accuracy: int
    computed_at: datetime

    model_config = {"from_attributes": True}

class SnapshotResponse(BaseModel):
    year: int
    month: int
    version: int
    genre_vector: dict[str, float]
    primary_archetype: str
    adventurousness: float
    polarity: float
    review_count: int

    model_config = {"from_attributes": True}

class TierInfo(BaseModel):
    id: str
    name: str
    min_ratings: int
    max_confidence: int
    description: str

    model_config = {"from_attributes": True}

class Milestone(BaseModel):
    milestone: int
    reached: bool
    label: str

class TierResponse(BaseModel):
    rating_count: int
    current_tier: TierInfo
    next_tier: Optional[TierInfo] = None
    progress: float
    ratings_to_next: int
    milestones: list[Milestone]
    message: str

class MatchItem(BaseModel):
    other_user_id: UUID
    score: float
    match_type: str
    genre_similarity: float
    scalar_distance: float
    shared_genres: list[str]
    shared_artists: list[str]

class MatchListResponse(BaseModel):
    status: Literal["ok"] = "ok"
    mode: str
    matches: list[MatchItem]

class SharedAlbum(BaseModel):
    album_id: UUID
    title: str
    artist_name: str

class CompareResponse(BaseModel):
    status: Literal["ok"] = "ok"
    user_id: UUID
    other_user_id: UUID
    compatibility: int
    match_type: str
    genre_similarity: float
    scalar_distance: float
    artist_overlap: float
    rating_alignment: float
    guide_pair: bool
    shared_genres: list[str]
    shared_artists: list[str]
    shared_albums: list[SharedAlbum]
