"""
WAXFEED — Shared API dependencies.

Services are built per request from what the lifespan placed on
``app.state``; nothing here holds a module-level client.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from waxfeed.config import get_settings
from waxfeed.errors import (
    AlbumNotFoundError,
    LedgerIntegrityError,
    UserNotFoundError,
    WalletFrozenError,
    WaxfeedError,
)
from waxfeed.services.first_spin_service import FirstSpinService
from waxfeed.services.matching_service import MatchingService
from waxfeed.services.rating_service import RatingService
from waxfeed.services.taste_service import TasteService
from waxfeed.services.wax_ledger import WaxLedger
from waxfeed.utils.cache import MatchCache

_STATUS_BY_ERROR: dict[type[WaxfeedError], int] = {
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    AlbumNotFoundError: status.HTTP_404_NOT_FOUND,
    LedgerIntegrityError: status.HTTP_409_CONFLICT,
    WalletFrozenError: status.HTTP_423_LOCKED,
}


def http_error(exc: WaxfeedError) -> HTTPException:
    """Translate a domain error into the matching HTTP error."""
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def get_wax_ledger() -> WaxLedger:
    return WaxLedger()


def get_first_spin_service() -> FirstSpinService:
    return FirstSpinService()


def get_taste_service() -> TasteService:
    return TasteService()


def get_rating_service() -> RatingService:
    return RatingService()


def get_matching_service(request: Request) -> MatchingService:
    redis = getattr(request.app.state, "redis", None)
    cache = MatchCache(redis, ttl_seconds=get_settings().MATCH_CACHE_TTL_SECONDS)
    return MatchingService(cache=cache)
