"""
WAXFEED — Rating writes and their side effects.

A new rating:
  1. takes the next First Spin review position on its album
  2. refreshes the album's average rating
  3. may earn the first-review-of-the-day Wax bonus
  4. may tip the album into trending (First Spin badges)
  5. rebuilds the TasteID profile when the user's rating count hits a
     milestone (3, 20, 50, 100, 200, 500 by default)

Editing an existing rating only changes its score/text and the album
average.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.errors import AlbumNotFoundError, UserNotFoundError, WalletFrozenError
from waxfeed.models.album import Album
from waxfeed.models.rating import Rating
from waxfeed.models.taste import TasteProfile
from waxfeed.models.user import User
from waxfeed.services.first_spin_service import FirstSpinService
from waxfeed.services.taste_engine import InsufficientData
from waxfeed.services.taste_service import TasteService
from waxfeed.services.wax_ledger import EarnResult, WaxLedger

logger = structlog.get_logger("waxfeed.rating_service")

MIN_SCORE = 0.0
MAX_SCORE = 10.0


@dataclass
class RatingOutcome:
    rating: Rating
    created: bool
    review_reward: EarnResult | None = None
    album_trending: bool = False
    taste_profile: TasteProfile | InsufficientData | None = None


class RatingService:
    """Create, update and delete ratings, triggering downstream effects."""

    def __init__(
        self,
        ledger: WaxLedger | None = None,
        first_spin: FirstSpinService | None = None,
        taste: TasteService | None = None,
    ) -> None:
        self.ledger = ledger or WaxLedger()
        self.first_spin = first_spin or FirstSpinService(self.ledger)
        self.taste = taste or TasteService()

    # ── Public API ──────────────────────────────────────────────────

    async def upsert_rating(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        album_id: uuid.UUID,
        score: float,
        text: str | None = None,
    ) -> RatingOutcome:
        """Create or update the user's rating of an album.

        Raises
        ------
        ValueError
            If ``score`` is outside 0-10.
        UserNotFoundError, AlbumNotFoundError
            If either side does not exist.
        """
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise ValueError(f"Score must be between {MIN_SCORE:g} and {MAX_SCORE:g}")

        log = logger.bind(user_id=str(user_id), album_id=str(album_id))

        if await db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)
        if await db.get(Album, album_id) is None:
            raise AlbumNotFoundError(album_id)

        try:
            rating, created = await self._write_rating(db, user_id, album_id, score, text)
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent create of the same pair.
            await db.rollback()
            log.info("rating_create_conflict_retry")
            rating, created = await self._write_rating(db, user_id, album_id, score, text)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        log.info(
            "rating_saved",
            created=created,
            score=score,
            review_position=rating.review_position,
        )
        outcome = RatingOutcome(rating=rating, created=created)
        if not created:
            return outcome

        try:
            outcome.review_reward = await self.ledger.claim_first_review_of_day(db, user_id)
        except WalletFrozenError:
            log.warning("review_reward_skipped_frozen_wallet")

        outcome.album_trending = await self.first_spin.check_album_trending(db, album_id)

        count = await self.taste.rating_count(db, user_id)
        outcome.taste_profile = await self.taste.maybe_recompute(db, user_id, count)

        # A skipped reward or badge rolls back and expires loaded rows.
        await db.refresh(rating)
        return outcome

    async def delete_rating(
        self, db: AsyncSession, user_id: uuid.UUID, album_id: uuid.UUID
    ) -> bool:
        """Remove a rating.  Review positions already handed out are kept."""
        rating = await self._find(db, user_id, album_id)
        if rating is None:
            return False

        await db.delete(rating)
        await db.flush()
        await self._refresh_album_average(db, album_id)
        await db.commit()

        logger.info("rating_deleted", user_id=str(user_id), album_id=str(album_id))
        return True

    async def get_rating(
        self, db: AsyncSession, user_id: uuid.UUID, album_id: uuid.UUID
    ) -> Rating | None:
        return await self._find(db, user_id, album_id)

    # ── Internal helpers ────────────────────────────────────────────

    async def _find(
        self, db: AsyncSession, user_id: uuid.UUID, album_id: uuid.UUID
    ) -> Rating | None:
        stmt = select(Rating).where(Rating.user_id == user_id, Rating.album_id == album_id)
        return (await db.execute(stmt)).scalar_one_or_none()

    async def _write_rating(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        album_id: uuid.UUID,
        score: float,
        text: str | None,
    ) -> tuple[Rating, bool]:
        rating = await self._find(db, user_id, album_id)
        created = rating is None

        if created:
            position = await self.first_spin.assign_review_position(db, album_id)
            rating = Rating(
                user_id=user_id,
                album_id=album_id,
                score=score,
                text=text,
                review_position=position,
            )
            db.add(rating)
        else:
            rating.score = score
            rating.text = text
            rating.updated_at = datetime.now(timezone.utc)

        await db.flush()
        await self._refresh_album_average(db, album_id)
        return rating, created

    @staticmethod
    async def _refresh_album_average(db: AsyncSession, album_id: uuid.UUID) -> None:
        average = (
            await db.execute(select(func.avg(Rating.score)).where(Rating.album_id == album_id))
        ).scalar_one()
        album = await db.get(Album, album_id, populate_existing=True)
        if album is not None:
            album.average_rating = float(average) if average is not None else None
