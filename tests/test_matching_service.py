"""Unit tests for MatchingService — candidate ranking and the pair cache."""
import json
import uuid

import pytest

from waxfeed.errors import UserNotFoundError
from waxfeed.models.taste import TasteProfile
from waxfeed.services.matching_service import MatchingService
from waxfeed.services.similarity_service import SimilarityService
from waxfeed.services.taste_engine import InsufficientData
from waxfeed.utils.cache import MatchCache, pair_key


class FakeRedis:
    """In-memory stand-in for the handful of redis.asyncio calls we use."""

    def __init__(self, fail: bool = False):
        self.store: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.fail = fail

    async def mget(self, keys):
        if self.fail:
            raise ConnectionError("redis down")
        return [self.store.get(k) for k in keys]

    def pipeline(self, transaction=True):
        return _FakePipeline(self)


class _FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.pending = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def set(self, key, value, ex=None):
        self.pending.append((key, value, ex))

    async def execute(self):
        if self.redis.fail:
            raise ConnectionError("redis down")
        for key, value, ex in self.pending:
            self.redis.store[key] = value
            self.redis.expiry[key] = ex


class CountingSimilarity(SimilarityService):
    def __init__(self):
        super().__init__(genre_weight=0.7, scalar_weight=0.3)
        self.calls = 0

    def compare(self, a, b):
        self.calls += 1
        return super().compare(a, b)


@pytest.fixture
def make_profile(session):
    """Insert a TasteProfile directly with the fields matching reads."""

    async def _make(user, genres, adventurousness=0.5, polarity=0.3, mean=6.5,
                    stddev=1.5, artists=(), version=1):
        profile = TasteProfile(
            user_id=user.id,
            version=version,
            genre_vector=dict(genres),
            artist_affinity=[
                {"artist": a, "affinity": 1.0, "avg_rating": mean, "review_count": 1,
                 "recency": 1.0}
                for a in artists
            ],
            decade_histogram={},
            adventurousness=adventurousness,
            polarity=polarity,
            rating_mean=mean,
            rating_median=mean,
            rating_stddev=stddev,
            rating_skew=0.0,
            rating_tendency="balanced",
            review_depth="rater",
            primary_archetype="rock-purist",
            secondary_archetype=None,
            archetype_confidence=0.5,
            confidence_level="provisional",
            review_count=3,
            top_genres=list(dict(genres))[:5],
            top_artists=list(artists)[:10],
        )
        session.add(profile)
        await session.commit()
        return profile

    return _make


@pytest.fixture
def matching_service():
    return MatchingService(similarity_service=SimilarityService(genre_weight=0.7, scalar_weight=0.3))


class TestValidation:
    """Tests for argument and data checks."""

    @pytest.mark.asyncio
    async def test_unknown_mode_rejected(self, matching_service, session, make_user):
        user = await make_user()
        with pytest.raises(ValueError):
            await matching_service.match_users(session, user.id, mode="soulmates")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 51])
    async def test_limit_out_of_range(self, matching_service, session, make_user, limit):
        user = await make_user()
        with pytest.raises(ValueError):
            await matching_service.match_users(session, user.id, limit=limit)

    @pytest.mark.asyncio
    async def test_unknown_user(self, matching_service, session):
        with pytest.raises(UserNotFoundError):
            await matching_service.match_users(session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_no_profile_is_insufficient_data(
        self, matching_service, session, make_user, make_album, add_rating
    ):
        """A user with 2 ratings and no profile gets a status, not an error."""
        user = await make_user()
        for _ in range(2):
            await add_rating(user, await make_album(), 7.0)
        result = await matching_service.match_users(session, user.id)
        assert isinstance(result, InsufficientData)
        assert result.rating_count == 2
        assert result.required == 3


class TestRanking:
    """Tests for mode-specific ranking."""

    @pytest.mark.asyncio
    async def test_twins_ranks_closest_first(
        self, matching_service, session, make_user, make_profile
    ):
        me, twin, stranger = await make_user(), await make_user(), await make_user()
        await make_profile(me, {"rock": 0.8, "metal": 0.2}, artists=["Tool"])
        await make_profile(twin, {"rock": 0.8, "metal": 0.2}, artists=["Tool"])
        await make_profile(stranger, {"jazz": 1.0}, adventurousness=0.9, mean=8.5)

        result = await matching_service.match_users(session, me.id, mode="twins")

        assert [m["other_user_id"] for m in result] == [twin.id, stranger.id]
        assert result[0]["score"] == pytest.approx(1.0)
        assert result[0]["match_type"] == "taste_twin"
        assert result[0]["shared_artists"] == ["Tool"]
        assert all(m["other_user_id"] != me.id for m in result)

    @pytest.mark.asyncio
    async def test_opposites_prefers_behavioural_distance(
        self, matching_service, session, make_user, make_profile
    ):
        """Same genres for everyone: the behaviourally distant user wins."""
        me, same, different = await make_user(), await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0}, adventurousness=0.1, polarity=0.0, mean=5.0)
        await make_profile(same, {"rock": 1.0}, adventurousness=0.1, polarity=0.0, mean=5.0)
        await make_profile(
            different, {"rock": 1.0}, adventurousness=0.9, polarity=0.9, mean=9.0
        )

        result = await matching_service.match_users(session, me.id, mode="opposites")
        assert result[0]["other_user_id"] == different.id
        assert result[0]["score"] > result[1]["score"]

    @pytest.mark.asyncio
    async def test_guides_filters_to_guide_pairs(
        self, matching_service, session, make_user, make_profile
    ):
        me, guide, peer = await make_user(), await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0}, adventurousness=0.2)
        await make_profile(guide, {"rock": 0.5, "jazz": 0.5}, adventurousness=0.85)
        await make_profile(peer, {"rock": 1.0}, adventurousness=0.3)

        result = await matching_service.match_users(session, me.id, mode="guides")
        assert [m["other_user_id"] for m in result] == [guide.id]

    @pytest.mark.asyncio
    async def test_limit_truncates(self, matching_service, session, make_user, make_profile):
        me = await make_user()
        await make_profile(me, {"rock": 1.0})
        for _ in range(4):
            await make_profile(await make_user(), {"rock": 1.0})

        result = await matching_service.match_users(session, me.id, mode="all", limit=2)
        assert len(result) == 2

    @pytest.mark.asyncio
    async def test_no_candidates_is_empty_list(
        self, matching_service, session, make_user, make_profile
    ):
        me = await make_user()
        await make_profile(me, {"rock": 1.0})
        assert await matching_service.match_users(session, me.id) == []



class TestCompare:
    """Tests for compare_users."""

    @pytest.mark.asyncio
    async def test_identical_profiles_full_compatibility(
        self, matching_service, session, make_user, make_profile
    ):
        me, twin = await make_user(), await make_user()
        await make_profile(me, {"rock": 0.8, "metal": 0.2}, artists=["Tool"])
        await make_profile(twin, {"rock": 0.8, "metal": 0.2}, artists=["Tool"])

        result = await matching_service.compare_users(session, me.id, twin.id)

        assert result["other_user_id"] == twin.id
        assert result["compatibility"] == 100
        assert result["match_type"] == "taste_twin"
        assert result["rating_alignment"] == pytest.approx(1.0)
        assert result["shared_artists"] == ["Tool"]
        assert result["shared_albums"] == []

    @pytest.mark.asyncio
    async def test_shared_favourites_need_eight_from_both(
        self, matching_service, session, make_user, make_profile, make_album, add_rating
    ):
        me, other = await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0}, mean=8.0)
        await make_profile(other, {"rock": 1.0}, mean=6.0)
        loved = await make_album(title="Loved")
        split = await make_album(title="Split")
        await add_rating(me, loved, 9.0)
        await add_rating(other, loved, 8.0)
        await add_rating(me, split, 10.0)
        await add_rating(other, split, 7.5)

        result = await matching_service.compare_users(session, me.id, other.id)

        assert [a["title"] for a in result["shared_albums"]] == ["Loved"]
        assert result["shared_albums"][0]["album_id"] == loved.id
        assert result["rating_alignment"] == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_shared_favourites_capped_at_ten(
        self, matching_service, session, make_user, make_profile, make_album, add_rating
    ):
        me, other = await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0})
        await make_profile(other, {"rock": 1.0})
        for i in range(12):
            album = await make_album(title=f"Album {i:02d}")
            await add_rating(me, album, 9.0)
            await add_rating(other, album, 8.0 + (i % 2))

        result = await matching_service.compare_users(session, me.id, other.id)

        titles = [a["title"] for a in result["shared_albums"]]
        assert len(titles) == 10
        assert titles[:6] == [f"Album {i:02d}" for i in (1, 3, 5, 7, 9, 11)]

    @pytest.mark.asyncio
    async def test_same_user_rejected(self, matching_service, session, make_user):
        me = await make_user()
        with pytest.raises(ValueError):
            await matching_service.compare_users(session, me.id, me.id)

    @pytest.mark.asyncio
    async def test_unknown_other_user(self, matching_service, session, make_user, make_profile):
        me = await make_user()
        await make_profile(me, {"rock": 1.0})
        with pytest.raises(UserNotFoundError):
            await matching_service.compare_users(session, me.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_other_without_profile_is_insufficient(
        self, matching_service, session, make_user, make_profile
    ):
        me, newcomer = await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0})
        result = await matching_service.compare_users(session, me.id, newcomer.id)
        assert isinstance(result, InsufficientData)
        assert result.rating_count == 0

class TestMatchCache:
    """Tests for the optional Redis pair cache."""

    def test_pair_key_is_order_independent(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        assert pair_key(a, 1, b, 4) == pair_key(b, 4, a, 1)
        assert pair_key(a, 1, b, 4) != pair_key(a, 2, b, 4)

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, session, make_user, make_profile):
        redis = FakeRedis()
        similarity = CountingSimilarity()
        service = MatchingService(
            similarity_service=similarity, cache=MatchCache(redis, ttl_seconds=60)
        )
        me, other = await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0})
        await make_profile(other, {"rock": 0.5, "soul": 0.5})

        first = await service.match_users(session, me.id)
        second = await service.match_users(session, me.id)

        assert similarity.calls == 1
        assert first[0]["score"] == pytest.approx(second[0]["score"])
        key = pair_key(me.id, 1, other.id, 1)
        assert redis.expiry[key] == 60
        assert json.loads(redis.store[key])["match_type"] == first[0]["match_type"]

    @pytest.mark.asyncio
    async def test_new_profile_version_misses_cache(self, session, make_user, make_profile):
        redis = FakeRedis()
        similarity = CountingSimilarity()
        service = MatchingService(similarity_service=similarity, cache=MatchCache(redis))
        me, other = await make_user(), await make_user()
        mine = await make_profile(me, {"rock": 1.0})
        await make_profile(other, {"rock": 1.0})

        await service.match_users(session, me.id)
        mine.version = 2
        await session.commit()
        await service.match_users(session, me.id)

        assert similarity.calls == 2

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back_to_computing(
        self, session, make_user, make_profile
    ):
        similarity = CountingSimilarity()
        service = MatchingService(
            similarity_service=similarity, cache=MatchCache(FakeRedis(fail=True))
        )
        me, other = await make_user(), await make_user()
        await make_profile(me, {"rock": 1.0})
        await make_profile(other, {"rock": 1.0})

        result = await service.match_users(session, me.id)
        assert len(result) == 1
        assert similarity.calls == 1
