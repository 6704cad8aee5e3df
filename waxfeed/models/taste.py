"""
WAXFEED — TasteProfile (derived TasteID) and monthly history snapshots.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waxfeed.database import Base, JSONType
from waxfeed.services.taste_tiers import confidence_cap


class TasteProfile(Base):
    __tablename__ = "taste_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    genre_vector: Mapped[dict] = mapped_column(
        JSONType, nullable=False, comment="genre -> weight, sums to 1"
    )
    artist_affinity: Mapped[list] = mapped_column(JSONType, nullable=False)
    decade_histogram: Mapped[dict] = mapped_column(JSONType, nullable=False)
    adventurousness: Mapped[float] = mapped_column(Float, nullable=False)
    polarity: Mapped[float] = mapped_column(Float, nullable=False)
    rating_mean: Mapped[float] = mapped_column(Float, nullable=False)
    rating_median: Mapped[float] = mapped_column(Float, nullable=False)
    rating_stddev: Mapped[float] = mapped_column(Float, nullable=False)
    rating_skew: Mapped[float] = mapped_column(Float, nullable=False)
    rating_tendency: Mapped[str] = mapped_column(
        String, nullable=False, comment="harsh / balanced / lenient"
    )
    review_depth: Mapped[str] = mapped_column(
        String, nullable=False, comment="rater / writer / essayist"
    )
    primary_archetype: Mapped[str] = mapped_column(String, nullable=False)
    secondary_archetype: Mapped[str | None] = mapped_column(String, nullable=True)
    archetype_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_level: Mapped[str] = mapped_column(
        String, nullable=False, comment="provisional / complete"
    )
    review_count: Mapped[int] = mapped_column(Integer, nullable=False)
    top_genres: Mapped[list] = mapped_column(JSONType, nullable=False)
    top_artists: Mapped[list] = mapped_column(JSONType, nullable=False)
    listening_signature: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=dict, comment="mode -> activation, sums to 1"
    )
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────
    user: Mapped["User"] = relationship("User", back_populates="taste_profile")

    @property
    def accuracy(self) -> int:
        """Accuracy percentage the profile's TasteID tier allows it to show."""
        return confidence_cap(self.review_count or 0)

    def __repr__(self) -> str:
        return (
            f"<TasteProfile user={self.user_id} "
            f"archetype={self.primary_archetype!r} v={self.version}>"
        )


class TasteProfileSnapshot(Base):
    __tablename__ = "taste_profile_snapshots"
    __table_args__ = (
        UniqueConstraint("user_id", "year", "month", name="uq_snapshot_user_month"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    genre_vector: Mapped[dict] = mapped_column(JSONType, nullable=False)
    primary_archetype: Mapped[str] = mapped_column(String, nullable=False)
    adventurousness: Mapped[float] = mapped_column(Float, nullable=False)
    polarity: Mapped[float] = mapped_column(Float, nullable=False)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<TasteProfileSnapshot user={self.user_id} {self.year}-{self.month:02d}>"
