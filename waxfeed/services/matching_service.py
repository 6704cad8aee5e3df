"""
WAXFEED — TasteID matchmaking.

Ranks other users' taste profiles against one user's profile.

Modes:
  twins      highest  w_g * cos + w_s * (1 - d)
  opposites  highest  w_g * cos + w_s * d
  guides     pairs where one side is adventurous (>= 0.7) and the other
             conservative (<= 0.4), ranked by the twins score
  all        every candidate, ranked by the twins score

Candidates are the most recently computed profiles (500 by default).
compare_users scores one named pair and adds the albums both loved.
Pair scores are cached in Redis under a key built from both profile
versions; the cache is optional and never required for correctness.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from waxfeed.config import get_settings
from waxfeed.errors import UserNotFoundError
from waxfeed.models.album import Album
from waxfeed.models.rating import Rating
from waxfeed.models.taste import TasteProfile
from waxfeed.models.user import User
from waxfeed.services.similarity_service import ProfileFeatures, SimilarityService
from waxfeed.services.taste_engine import InsufficientData
from waxfeed.utils.cache import MatchCache, pair_key

logger = structlog.get_logger("waxfeed.matching_service")

MATCH_MODES: tuple[str, ...] = ("twins", "opposites", "guides", "all")


class MatchingService:
    """Rank candidate profiles for a user.

    Dependencies are injected at construction so tests can supply their
    own similarity weights or cache client.
    """

    SHARED_FAVOURITE_MIN_SCORE: float = 8.0
    SHARED_FAVOURITES_SHOWN: int = 10

    def __init__(
        self,
        similarity_service: SimilarityService | None = None,
        cache: MatchCache | None = None,
    ) -> None:
        settings = get_settings()
        self.similarity = similarity_service or SimilarityService()
        self.cache = cache or MatchCache(None)
        self.candidate_pool: int = settings.MATCH_CANDIDATE_POOL
        self.max_limit: int = settings.MATCH_MAX_LIMIT
        self.min_ratings: int = settings.TASTE_MIN_RATINGS

    # ── Public API ──────────────────────────────────────────────────

    async def match_users(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        mode: str = "twins",
        limit: int = 10,
    ) -> list[dict] | InsufficientData:
        """Return the best ``limit`` matches for ``user_id``.

        Parameters
        ----------
        mode : str
            One of ``twins``, ``opposites``, ``guides``, ``all``.
        limit : int
            1 to ``MATCH_MAX_LIMIT`` (50).

        Returns
        -------
        list of dicts with keys:
            other_user_id, score, match_type, genre_similarity,
            scalar_distance, shared_genres, shared_artists
        or InsufficientData when the user has no profile yet.
        """
        if mode not in MATCH_MODES:
            raise ValueError(f"Unknown match mode {mode!r}")
        if not 1 <= limit <= self.max_limit:
            raise ValueError(f"limit must be between 1 and {self.max_limit}")

        log = logger.bind(user_id=str(user_id), mode=mode, limit=limit)

        profile = await self._profile_or_insufficient(db, user_id)
        if isinstance(profile, InsufficientData):
            log.info("match_no_profile", rating_count=profile.rating_count)
            return profile

        candidates = await self._load_candidates(db, user_id)
        me = ProfileFeatures.from_profile(profile)

        keys = {
            c.user_id: pair_key(user_id, profile.version, c.user_id, c.version)
            for c in candidates
        }
        cached = await self.cache.get_many(list(keys.values()))
        fresh: dict[str, dict] = {}

        results: list[dict] = []
        for candidate in candidates:
            key = keys[candidate.user_id]
            pair = cached.get(key)
            if pair is None:
                pair = self.similarity.compare(me, ProfileFeatures.from_profile(candidate))
                fresh[key] = pair

            if mode == "guides" and not pair["guide_pair"]:
                continue

            results.append(
                {
                    "other_user_id": candidate.user_id,
                    "score": pair["opposites"] if mode == "opposites" else pair["twins"],
                    "match_type": pair["match_type"],
                    "genre_similarity": pair["genre_similarity"],
                    "scalar_distance": pair["scalar_distance"],
                    "shared_genres": pair["shared_genres"],
                    "shared_artists": pair["shared_artists"],
                }
            )

        await self.cache.set_many(fresh)

        results.sort(key=lambda r: (-r["score"], str(r["other_user_id"])))
        log.info(
            "match_complete",
            candidates=len(candidates),
            cache_hits=len(cached),
            returned=min(limit, len(results)),
        )
        return results[:limit]

    async def compare_users(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        other_id: uuid.UUID,
    ) -> dict | InsufficientData:
        """Score one named pair of users directly.

        Returns
        -------
        dict with keys:
            other_user_id, compatibility (0-100), match_type,
            genre_similarity, scalar_distance, artist_overlap,
            rating_alignment, guide_pair, shared_genres, shared_artists,
            shared_albums
        or InsufficientData for whichever side has no profile yet.

        Raises
        ------
        ValueError
            When both ids are the same user.
        UserNotFoundError
            When either user does not exist.
        """
        if user_id == other_id:
            raise ValueError("Cannot compare a user with themselves")

        log = logger.bind(user_id=str(user_id), other_id=str(other_id))

        profiles = []
        for uid in (user_id, other_id):
            profile = await self._profile_or_insufficient(db, uid)
            if isinstance(profile, InsufficientData):
                log.info("compare_no_profile", missing=str(uid))
                return profile
            profiles.append(profile)
        mine, theirs = profiles

        pair = self.similarity.compare(
            ProfileFeatures.from_profile(mine), ProfileFeatures.from_profile(theirs)
        )
        shared_albums = await self._shared_favourites(db, user_id, other_id)
        compatibility = round(pair["twins"] * 100)

        log.info("compare_complete", compatibility=compatibility, match_type=pair["match_type"])
        return {
            "other_user_id": other_id,
            "compatibility": compatibility,
            "match_type": pair["match_type"],
            "genre_similarity": pair["genre_similarity"],
            "scalar_distance": pair["scalar_distance"],
            "artist_overlap": pair["artist_overlap"],
            "rating_alignment": pair["rating_alignment"],
            "guide_pair": pair["guide_pair"],
            "shared_genres": pair["shared_genres"],
            "shared_artists": pair["shared_artists"],
            "shared_albums": shared_albums,
        }

    # ── Internal helpers ────────────────────────────────────────────

    async def _profile_or_insufficient(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> TasteProfile | InsufficientData:
        profile = (
            await db.execute(select(TasteProfile).where(TasteProfile.user_id == user_id))
        ).scalar_one_or_none()
        if profile is not None:
            return profile
        if await db.get(User, user_id) is None:
            raise UserNotFoundError(user_id)
        count = (
            await db.execute(
                select(func.count()).select_from(Rating).where(Rating.user_id == user_id)
            )
        ).scalar_one()
        return InsufficientData(rating_count=int(count), required=self.min_ratings)

    async def _shared_favourites(
        self, db: AsyncSession, user_id: uuid.UUID, other_id: uuid.UUID
    ) -> list[dict]:
        """Albums both users scored at least 8, best combined score first."""
        mine = aliased(Rating)
        theirs = aliased(Rating)
        stmt = (
            select(Album.id, Album.title, Album.artist_name)
            .join(mine, mine.album_id == Album.id)
            .join(theirs, theirs.album_id == Album.id)
            .where(
                mine.user_id == user_id,
                theirs.user_id == other_id,
                mine.score >= self.SHARED_FAVOURITE_MIN_SCORE,
                theirs.score >= self.SHARED_FAVOURITE_MIN_SCORE,
            )
            .order_by((mine.score + theirs.score).desc(), Album.title)
            .limit(self.SHARED_FAVOURITES_SHOWN)
        )
        return [
            {"album_id": album_id, "title": title, "artist_name": artist}
            for album_id, title, artist in (await db.execute(stmt)).all()
        ]

    async def _load_candidates(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> list[TasteProfile]:
        stmt = (
            select(TasteProfile)
            .where(TasteProfile.user_id != user_id)
            .order_by(TasteProfile.computed_at.desc())
            .limit(self.candidate_pool)
        )
        return list((await db.execute(stmt)).scalars().all())
