"""
WAXFEED — TasteID profile persistence.

Loads a user's full rating set, runs the TasteEngine and stores the result
as the user's single TasteProfile row.  Before an existing profile is
overwritten its previous state is written to the monthly snapshot for the
month it was computed in, so history survives recomputation.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.config import get_settings
from waxfeed.errors import UserNotFoundError
from waxfeed.models.album import Album
from waxfeed.models.rating import Rating
from waxfeed.models.taste import TasteProfile, TasteProfileSnapshot
from waxfeed.models.user import User
from waxfeed.services.taste_engine import (
    InsufficientData,
    RatingEntry,
    TasteComputation,
    TasteEngine,
)

logger = structlog.get_logger("waxfeed.taste_service")


class TasteService:
    """Compute, store and read TasteID profiles."""

    def __init__(self, engine: TasteEngine | None = None) -> None:
        self.engine = engine or TasteEngine()
        self.recompute_thresholds: set[int] = set(
            get_settings().TASTE_RECOMPUTE_THRESHOLDS
        )

    # ── Public API ──────────────────────────────────────────────────

    async def compute_taste_profile(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> TasteProfile | InsufficientData:
        """Rebuild the user's profile from every rating they have made.

        Parameters
        ----------
        db : AsyncSession
            Active session; the new profile is committed before returning.
        user_id : uuid.UUID
            The user whose profile is rebuilt.

        Returns
        -------
        The stored TasteProfile, or InsufficientData when the user has
        fewer usable ratings than the engine requires.  Nothing is written
        in the insufficient case.

        Raises
        ------
        UserNotFoundError
            If the user does not exist.
        """
        log = logger.bind(user_id=str(user_id))
        log.info("taste_compute_start")

        if await db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)

        entries = await self.load_rating_entries(db, user_id)
        result = self.engine.compute(entries)

        if isinstance(result, InsufficientData):
            log.info(
                "taste_compute_insufficient",
                rating_count=result.rating_count,
                required=result.required,
            )
            return result

        try:
            profile = await self._store(db, user_id, result)
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent first compute for this user.
            await db.rollback()
            log.info("taste_store_conflict_retry")
            profile = await self._store(db, user_id, result)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        log.info(
            "taste_compute_complete",
            version=profile.version,
            archetype=profile.primary_archetype,
            review_count=profile.review_count,
        )
        return profile

    async def get_taste_profile(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> TasteProfile | None:
        stmt = select(TasteProfile).where(TasteProfile.user_id == user_id)
        return (await db.execute(stmt)).scalar_one_or_none()

    async def list_snapshots(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> list[TasteProfileSnapshot]:
        """Monthly history, newest first."""
        stmt = (
            select(TasteProfileSnapshot)
            .where(TasteProfileSnapshot.user_id == user_id)
            .order_by(
                TasteProfileSnapshot.year.desc(), TasteProfileSnapshot.month.desc()
            )
        )
        return list((await db.execute(stmt)).scalars().all())

    async def rating_count(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(Rating).where(Rating.user_id == user_id)
        return int((await db.execute(stmt)).scalar_one())

    async def maybe_recompute(
        self, db: AsyncSession, user_id: uuid.UUID, rating_count: int
    ) -> TasteProfile | InsufficientData | None:
        """Rebuild the profile when the rating count lands on a milestone."""
        if rating_count not in self.recompute_thresholds:
            return None
        logger.info(
            "taste_recompute_triggered", user_id=str(user_id), rating_count=rating_count
        )
        return await self.compute_taste_profile(db, user_id)

    async def load_rating_entries(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> list[RatingEntry]:
        """Every rating of the user joined with its album, oldest first.

        Ratings whose album has been deleted come back with ``album_id=None``
        and are skipped by the engine.
        """
        stmt = (
            select(Rating, Album)
            .outerjoin(Album, Rating.album_id == Album.id)
            .where(Rating.user_id == user_id)
            .order_by(Rating.created_at)
        )
        rows = (await db.execute(stmt)).all()

        entries: list[RatingEntry] = []
        for rating, album in rows:
            if album is None:
                entries.append(
                    RatingEntry(
                        genres=[],
                        artist="",
                        release_year=None,
                        score=rating.score,
                        created_at=rating.created_at,
                        text=rating.text,
                        album_id=None,
                    )
                )
                continue
            entries.append(
                RatingEntry(
                    genres=list(album.genres or []),
                    artist=album.artist_name,
                    release_year=album.release_year,
                    score=rating.score,
                    created_at=rating.created_at,
                    text=rating.text,
                    album_id=album.id,
                    album_total_reviews=album.total_reviews,
                )
            )
        return entries

    # ── Internal helpers ────────────────────────────────────────────

    async def _store(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        result: TasteComputation,
    ) -> TasteProfile:
        profile = await self._lock_profile(db, user_id)
        now = datetime.now(timezone.utc)

        if profile is None:
            profile = TasteProfile(user_id=user_id, version=1)
            db.add(profile)
        else:
            await self._snapshot(db, profile)
            profile.version = profile.version + 1

        profile.genre_vector = result.genre_vector
        profile.artist_affinity = result.artist_affinity
        profile.decade_histogram = result.decade_histogram
        profile.adventurousness = result.adventurousness
        profile.polarity = result.polarity
        profile.rating_mean = result.rating_mean
        profile.rating_median = result.rating_median
        profile.rating_stddev = result.rating_stddev
        profile.rating_skew = result.rating_skew
        profile.rating_tendency = result.rating_tendency
        profile.review_depth = result.review_depth
        profile.primary_archetype = result.primary_archetype.value
        profile.secondary_archetype = (
            result.secondary_archetype.value if result.secondary_archetype else None
        )
        profile.archetype_confidence = result.archetype_confidence
        profile.confidence_level = result.confidence_level
        profile.review_count = result.review_count
        profile.top_genres = result.top_genres
        profile.top_artists = result.top_artists
        profile.listening_signature = result.listening_signature
        profile.computed_at = now

        await db.flush()
        return profile

    async def _lock_profile(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> TasteProfile | None:
        """The stored profile, row-locked until commit so concurrent
        recomputes bump the version one at a time."""
        stmt = (
            select(TasteProfile)
            .where(TasteProfile.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await db.execute(stmt)).scalar_one_or_none()

    async def _snapshot(self, db: AsyncSession, profile: TasteProfile) -> None:
        """Record the profile's current state as the snapshot for the month
        it was computed in.  A later recompute in the same month replaces
        that month's snapshot."""
        computed_at = profile.computed_at or datetime.now(timezone.utc)
        stmt = select(TasteProfileSnapshot).where(
            TasteProfileSnapshot.user_id == profile.user_id,
            TasteProfileSnapshot.year == computed_at.year,
            TasteProfileSnapshot.month == computed_at.month,
        )
        snapshot = (await db.execute(stmt)).scalar_one_or_none()
        if snapshot is None:
            snapshot = TasteProfileSnapshot(
                user_id=profile.user_id,
                year=computed_at.year,
                month=computed_at.month,
            )
            db.add(snapshot)

        snapshot.version = profile.version
        snapshot.genre_vector = dict(profile.genre_vector)
        snapshot.primary_archetype = profile.primary_archetype
        snapshot.adventurousness = profile.adventurousness
        snapshot.polarity = profile.polarity
        snapshot.review_count = profile.review_count
