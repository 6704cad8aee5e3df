"""
WAXFEED — Rating model (one per user/album pair).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waxfeed.database import Base


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("user_id", "album_id", name="uq_rating_user_album"),
        Index("ix_ratings_album_position", "album_id", "review_position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    # Survives album deletion; the taste engine skips orphaned ratings.
    album_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("albums.id", ondelete="SET NULL"), nullable=True
    )
    score: Mapped[float] = mapped_column(Float, nullable=False, comment="0-10")
    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_position: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Nth review of this album (First Spin)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    user: Mapped["User"] = relationship("User", back_populates="ratings")
    album: Mapped["Album | None"] = relationship("Album", back_populates="ratings")

    def __repr__(self) -> str:
        return f"<Rating user={self.user_id} album={self.album_id} score={self.score}>"
