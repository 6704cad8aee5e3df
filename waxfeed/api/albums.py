"""
WAXFEED — Albums API

Minimal catalog endpoints.  Deleting an album keeps its ratings (their
``album_id`` becomes NULL) so users' rating history is not lost.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.database import get_db
from waxfeed.models.album import Album
from waxfeed.models.first_spin import FirstSpinBadge
from waxfeed.models.rating import Rating
from waxfeed.schemas.catalog import AlbumCreate, AlbumResponse

logger = structlog.get_logger("waxfeed.api.albums")

router = APIRouter()


@router.post(
    "",
    response_model=AlbumResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an album to the catalog",
)
async def create_album(
    payload: AlbumCreate,
    db: AsyncSession = Depends(get_db),
) -> Album:
    album = Album(
        title=payload.title,
        artist_name=payload.artist_name,
        genres=[g.strip().lower() for g in payload.genres if g.strip()],
        release_year=payload.release_year,
        trend_threshold=payload.trend_threshold,
    )
    db.add(album)
    await db.flush()

    logger.info("create_album_complete", album_id=str(album.id), artist=album.artist_name)
    return album


@router.get(
    "/{album_id}",
    response_model=AlbumResponse,
    summary="Get album by ID",
)
async def get_album(
    album_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> Album:
    album = await db.get(Album, album_id)
    if album is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Album {album_id} not found.",
        )
    return album


@router.delete(
    "/{album_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove an album, keeping its ratings",
)
async def delete_album(
    album_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    log = logger.bind(album_id=str(album_id))

    album = await db.get(Album, album_id)
    if album is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Album {album_id} not found.",
        )

    # Mirror the FK actions explicitly so SQLite without foreign-key
    # enforcement behaves like PostgreSQL.
    orphaned = await db.execute(
        update(Rating)
        .where(Rating.album_id == album_id)
        .values(album_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(delete(FirstSpinBadge).where(FirstSpinBadge.album_id == album_id))
    await db.delete(album)
    await db.flush()

    log.info("delete_album_complete", orphaned_ratings=orphaned.rowcount)
