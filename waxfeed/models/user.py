"""
WAXFEED — User model.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waxfeed.database import Base


class SubscriptionTier(str, enum.Enum):
    FREE = "FREE"
    WAX_PLUS = "WAX_PLUS"
    WAX_PRO = "WAX_PRO"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    subscription_tier: Mapped[str] = mapped_column(
        String,
        default=SubscriptionTier.FREE.value,
        server_default=SubscriptionTier.FREE.value,
        nullable=False,
        comment="FREE / WAX_PLUS / WAX_PRO (owned by the billing integration)",
    )
    # First Spin tastemaker stats
    tastemaker_score: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    gold_spin_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    silver_spin_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    bronze_spin_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────
    ratings: Mapped[list["Rating"]] = relationship(
        "Rating", back_populates="user", cascade="all, delete-orphan"
    )
    taste_profile: Mapped["TasteProfile"] = relationship(
        "TasteProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    wallet: Mapped["WaxWallet"] = relationship(
        "WaxWallet", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def tier(self) -> SubscriptionTier:
        return SubscriptionTier(self.subscription_tier)

    def __repr__(self) -> str:
        return f"<User {self.username!r} id={self.id}>"
