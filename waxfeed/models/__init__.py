"""
WAXFEED — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from waxfeed.models.user import SubscriptionTier, User
from waxfeed.models.album import Album
from waxfeed.models.rating import Rating
from waxfeed.models.taste import TasteProfile, TasteProfileSnapshot
from waxfeed.models.wax import TxType, WaxTransaction, WaxWallet
from waxfeed.models.first_spin import BadgeType, FirstSpinBadge

__all__ = [
    "SubscriptionTier",
    "User",
    "Album",
    "Rating",
    "TasteProfile",
    "TasteProfileSnapshot",
    "TxType",
    "WaxTransaction",
    "WaxWallet",
    "BadgeType",
    "FirstSpinBadge",
]
