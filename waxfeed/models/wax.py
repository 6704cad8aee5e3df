"""
WAXFEED — Wax wallet (cached balance) and append-only transaction log.

``WaxWallet.balance`` is a projection of ``sum(WaxTransaction.amount)`` for
the same user and is only ever changed by ``WaxLedger``.
"""

import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from waxfeed.database import Base, JSONType


class TxType(str, enum.Enum):
    # Credits
    DAILY_CLAIM = "DAILY_CLAIM"
    REVIEW_REWARD = "REVIEW_REWARD"
    WAX_RECEIVED = "WAX_RECEIVED"
    TRENDING_BONUS = "TRENDING_BONUS"
    REFERRAL_BONUS = "REFERRAL_BONUS"
    FIRST_SPIN_BADGE = "FIRST_SPIN_BADGE"
    # Debits
    BOOST_REVIEW = "BOOST_REVIEW"
    PIN_REVIEW = "PIN_REVIEW"
    USERNAME_CHANGE = "USERNAME_CHANGE"
    TASTEID_ANALYSIS = "TASTEID_ANALYSIS"
    UNLOCK_STATS = "UNLOCK_STATS"
    AWARD_WAX = "AWARD_WAX"


class WaxWallet(Base):
    __tablename__ = "wax_wallets"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    balance: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    lifetime_earned: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    lifetime_spent: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    weekly_earned: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    weekly_reset_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    current_streak: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    last_daily_claim_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_review_reward_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_frozen: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    frozen_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    # ── Relationships ──────────────────────────────────────────────
    user: Mapped["User"] = relationship("User", back_populates="wallet")

    def __repr__(self) -> str:
        return f"<WaxWallet user={self.user_id} balance={self.balance}>"


class WaxTransaction(Base):
    __tablename__ = "wax_transactions"
    __table_args__ = (
        Index("ix_wax_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Signed delta; negative for spends"
    )
    type: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True, comment="Extra metadata (column name: metadata)"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<WaxTransaction user={self.user_id} {self.type} {self.amount:+d}>"
