"""Shared pytest fixtures for WAXFEED tests."""
import os
import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from waxfeed.database import Base, Database
from waxfeed.models.album import Album
from waxfeed.models.rating import Rating
from waxfeed.models.user import User
from waxfeed.models.wax import TxType, WaxWallet
from waxfeed.services.taste_engine import RatingEntry
from waxfeed.services.wax_ledger import WaxLedger


# ── Database ────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def database():
    """Fresh in-memory SQLite database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = Database(engine)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def file_database(tmp_path):
    """SQLite file database: every session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'waxfeed.db'}",
        connect_args={"timeout": 30},
    )
    db = Database(engine)
    await db.create_all()
    yield db
    await db.dispose()


def _begin_immediate(engine):
    """Take SQLite's write lock at BEGIN so transactions run one at a time,
    standing in for the row locks PostgreSQL takes on SELECT ... FOR UPDATE."""

    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture(params=["sqlite", "postgresql"])
async def locking_database(request, tmp_path):
    """A database where concurrent sessions really contend.

    The PostgreSQL variant runs only when WAXFEED_TEST_DATABASE_URL points
    at a disposable database; its tables are dropped and recreated.
    """
    if request.param == "postgresql":
        url = os.environ.get("WAXFEED_TEST_DATABASE_URL")
        if not url:
            pytest.skip("WAXFEED_TEST_DATABASE_URL not set")
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    else:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'waxfeed.db'}",
            connect_args={"timeout": 30},
        )
        _begin_immediate(engine)

    db = Database(engine)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def session(database):
    async with database.session_factory() as s:
        yield s


@pytest.fixture
def make_user(session):
    """Create a user with an open wallet."""

    async def _make(tier="FREE", balance=0, username=None):
        name = username or f"user_{uuid.uuid4().hex[:8]}"
        user = User(username=name, email=f"{name}@example.com", subscription_tier=tier)
        session.add(user)
        await session.flush()
        session.add(WaxWallet(user_id=user.id))
        await session.commit()
        if balance:
            await WaxLedger().grant(
                session, user.id, balance, TxType.REFERRAL_BONUS, "Test funding"
            )
        return user

    return _make


@pytest.fixture
def make_album(session):
    async def _make(
        genres=("rock",),
        artist="Test Artist",
        title=None,
        release_year=1995,
        total_reviews=0,
        trend_threshold=None,
    ):
        album = Album(
            title=title or f"Album {uuid.uuid4().hex[:6]}",
            artist_name=artist,
            genres=list(genres),
            release_year=release_year,
            total_reviews=total_reviews,
            trend_threshold=trend_threshold,
        )
        session.add(album)
        await session.commit()
        return album

    return _make


@pytest.fixture
def add_rating(session):
    """Insert a rating row directly, bypassing RatingService side effects."""

    async def _add(user, album, score, text=None, created_at=None):
        rating = Rating(
            user_id=user.id,
            album_id=album.id,
            score=score,
            text=text,
            created_at=created_at or datetime.now(timezone.utc),
        )
        session.add(rating)
        await session.commit()
        return rating

    return _add


# ── Pure engine inputs ──────────────────────────────────────────────


@pytest.fixture
def now():
    return datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def entry_factory(now):
    def _entry(genres, score, artist="Artist", year=2000, days_ago=0, text=None,
               total_reviews=0, album_id="auto"):
        return RatingEntry(
            genres=list(genres),
            artist=artist,
            release_year=year,
            score=score,
            created_at=now - timedelta(days=days_ago),
            text=text,
            album_id=uuid.uuid4() if album_id == "auto" else album_id,
            album_total_reviews=total_reviews,
        )

    return _entry
