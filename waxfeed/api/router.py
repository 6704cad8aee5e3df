"""
WAXFEED — Main API Router

Aggregates all sub-routers under a single prefix so that ``waxfeed.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from waxfeed.api import albums, ratings, taste, users, wax

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(albums.router, prefix="/albums", tags=["Albums"])
router.include_router(ratings.router, prefix="/ratings", tags=["Ratings"])
router.include_router(taste.router, prefix="/taste", tags=["TasteID"])
router.include_router(wax.router, prefix="/wax", tags=["Wax"])
