"""
WAXFEED — Album model (catalog entry with First Spin trending state).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waxfeed.database import Base, JSONType


class Album(Base):
    __tablename__ = "albums"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String, nullable=False)
    artist_name: Mapped[str] = mapped_column(String, index=True, nullable=False)
    genres: Mapped[list] = mapped_column(
        JSONType, default=list, nullable=False, comment="Array of genre tags"
    )
    release_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    average_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_reviews: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    is_trending: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    trended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    trend_threshold: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="Override for the trending review count"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────
    ratings: Mapped[list["Rating"]] = relationship("Rating", back_populates="album")

    def __repr__(self) -> str:
        return f"<Album {self.artist_name!r} - {self.title!r}>"
