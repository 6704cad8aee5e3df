"""
WAXFEED — Domain exceptions.

Expected business outcomes (insufficient data, insufficient balance, cap
reached, already claimed) are returned as typed results, not raised.  Only
conditions the caller cannot proceed past are exceptions.
"""

from __future__ import annotations


class WaxfeedError(Exception):
    """Base class for all WAXFEED domain errors."""


class UserNotFoundError(WaxfeedError):
    def __init__(self, user_id: object) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class AlbumNotFoundError(WaxfeedError):
    def __init__(self, album_id: object) -> None:
        super().__init__(f"Album {album_id} not found")
        self.album_id = album_id


class LedgerIntegrityError(WaxfeedError):
    """Wallet balance disagrees with the sum of its transactions.

    Raised once the wallet has been frozen; it must be reconciled by hand.
    """

    def __init__(self, user_id: object, balance: int, ledger_sum: int) -> None:
        super().__init__(
            f"Wallet {user_id} balance {balance} != transaction sum {ledger_sum}"
        )
        self.user_id = user_id
        self.balance = balance
        self.ledger_sum = ledger_sum


class WalletFrozenError(WaxfeedError):
    """A write was attempted on a wallet frozen for reconciliation."""

    def __init__(self, user_id: object, reason: str | None = None) -> None:
        super().__init__(f"Wallet {user_id} is frozen: {reason or 'unknown reason'}")
        self.user_id = user_id
        self.reason = reason
