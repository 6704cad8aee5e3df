"""Tests for WaxLedger — balances, caps, streaks and reconciliation."""
import asyncio
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from waxfeed.errors import LedgerIntegrityError, UserNotFoundError, WalletFrozenError
from waxfeed.models.user import User
from waxfeed.models.wax import TxType, WaxTransaction, WaxWallet
from waxfeed.services.wax_ledger import (
    SPEND_ACTIONS,
    WaxLedger,
    award_cost,
    can_award,
)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(clock):
    return WaxLedger(clock=clock)


async def _wallet(session, user_id):
    return await session.get(WaxWallet, user_id, populate_existing=True)


async def _transactions(session, user_id):
    stmt = select(WaxTransaction).where(WaxTransaction.user_id == user_id)
    return list((await session.execute(stmt)).scalars().all())


@pytest.fixture
def preset_wallet(session, clock):
    """Overwrite wallet bookkeeping fields, anchoring the weekly window at the clock."""

    async def _preset(user_id, **fields):
        wallet = await _wallet(session, user_id)
        wallet.weekly_reset_at = clock.now
        for name, value in fields.items():
            setattr(wallet, name, value)
        await session.commit()
        return wallet

    return _preset


class TestSpend:
    """Tests for debits."""

    @pytest.mark.asyncio
    async def test_spend_debits_and_logs(self, ledger, session, make_user):
        """Balance 100, spend 30 -> 70 and one -30 transaction."""
        user = await make_user(balance=100)
        uid = user.id

        result = await ledger.spend(session, uid, 30, TxType.PIN_REVIEW, "Pin")

        assert result.success
        assert result.spent == 30
        assert result.new_balance == 70
        debits = [t for t in await _transactions(session, uid) if t.amount < 0]
        assert [(t.amount, t.type) for t in debits] == [(-30, "PIN_REVIEW")]
        wallet = await _wallet(session, uid)
        assert wallet.lifetime_spent == 30

    @pytest.mark.asyncio
    async def test_insufficient_balance_changes_nothing(self, ledger, session, make_user):
        user = await make_user(balance=70)
        uid = user.id

        result = await ledger.spend(session, uid, 150, TxType.BOOST_REVIEW, "Boost")

        assert not result.success
        assert result.new_balance == 70
        assert result.error == "Insufficient Wax. Need 150, have 70"
        assert len(await _transactions(session, uid)) == 1
        assert (await _wallet(session, uid)).balance == 70

    @pytest.mark.asyncio
    async def test_spend_unknown_user(self, ledger, session):
        result = await ledger.spend(session, uuid.uuid4(), 5, TxType.PIN_REVIEW, "Pin")
        assert not result.success
        assert result.error == "User not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount_rejected(self, ledger, session, make_user, amount):
        user = await make_user(balance=10)
        with pytest.raises(ValueError):
            await ledger.spend(session, user.id, amount, TxType.PIN_REVIEW, "Pin")

    @pytest.mark.asyncio
    async def test_spend_action_uses_price_table(self, ledger, session, make_user):
        user = await make_user(balance=120)
        uid = user.id

        result = await ledger.spend_action(session, uid, "unlock_stats")

        assert result.spent == SPEND_ACTIONS["unlock_stats"].cost == 100
        assert result.new_balance == 20
        debit = [t for t in await _transactions(session, uid) if t.amount < 0][0]
        assert debit.metadata_ == {"action": "unlock_stats"}

    @pytest.mark.asyncio
    async def test_username_change_free_for_subscribers(self, ledger, session, make_user):
        user = await make_user(tier="WAX_PLUS", balance=10)
        uid = user.id

        result = await ledger.spend_action(session, uid, "username_change")

        assert result.success
        assert result.spent == 0
        assert result.new_balance == 10
        assert len(await _transactions(session, uid)) == 1

    @pytest.mark.asyncio
    async def test_unknown_action(self, ledger, session, make_user):
        user = await make_user()
        with pytest.raises(ValueError):
            await ledger.spend_action(session, user.id, "buy_yacht")


class TestEarn:
    """Tests for credits, multipliers and the weekly cap."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "tier, base, expected",
        [("FREE", 10, 10), ("WAX_PLUS", 10, 15), ("WAX_PLUS", 5, 7), ("WAX_PRO", 7, 14)],
    )
    async def test_tier_multiplier_floors(
        self, ledger, session, make_user, preset_wallet, tier, base, expected
    ):
        user = await make_user(tier=tier)
        await preset_wallet(user.id)
        result = await ledger.earn(session, user.id, base, TxType.WAX_RECEIVED, "Test")
        assert result.earned == expected
        assert result.new_balance == expected

    @pytest.mark.asyncio
    async def test_free_tier_weekly_cap(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        uid = user.id
        await preset_wallet(uid)

        first = await ledger.earn(session, uid, 90, TxType.WAX_RECEIVED, "Test")
        second = await ledger.earn(session, uid, 30, TxType.WAX_RECEIVED, "Test")
        third = await ledger.earn(session, uid, 30, TxType.WAX_RECEIVED, "Test")

        assert (first.earned, first.capped) == (90, False)
        assert (second.earned, second.capped) == (10, True)
        assert (third.earned, third.capped) == (0, True)
        assert third.message == "Weekly Wax cap reached. Upgrade to remove limits!"
        assert (await _wallet(session, uid)).balance == 100
        assert len(await _transactions(session, uid)) == 2

    @pytest.mark.asyncio
    async def test_weekly_window_resets(self, ledger, session, make_user, preset_wallet, clock):
        user = await make_user()
        uid = user.id
        await preset_wallet(uid, weekly_earned=100)

        clock.advance(days=7)
        result = await ledger.earn(session, uid, 20, TxType.WAX_RECEIVED, "Test")

        assert result.earned == 20
        wallet = await _wallet(session, uid)
        assert wallet.weekly_earned == 20

    @pytest.mark.asyncio
    async def test_subscribers_uncapped(self, ledger, session, make_user, preset_wallet):
        user = await make_user(tier="WAX_PRO")
        await preset_wallet(user.id, weekly_earned=5000)
        result = await ledger.earn(session, user.id, 100, TxType.WAX_RECEIVED, "Test")
        assert result.earned == 200
        assert not result.capped

    @pytest.mark.asyncio
    async def test_grant_ignores_cap_and_weekly_total(
        self, ledger, session, make_user, preset_wallet
    ):
        user = await make_user()
        uid = user.id
        await preset_wallet(uid, weekly_earned=100)

        result = await ledger.grant(session, uid, 100, TxType.FIRST_SPIN_BADGE, "Badge")

        assert result.earned == 100
        wallet = await _wallet(session, uid)
        assert wallet.weekly_earned == 100
        assert wallet.lifetime_earned == 100

    @pytest.mark.asyncio
    async def test_earn_unknown_user(self, ledger, session):
        with pytest.raises(UserNotFoundError):
            await ledger.earn(session, uuid.uuid4(), 5, TxType.WAX_RECEIVED, "Test")

    @pytest.mark.asyncio
    async def test_grant_wax_received_rates(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        await preset_wallet(user.id)
        result = await ledger.grant_wax_received(session, user.id, "gold")
        assert result.earned == 10
        with pytest.raises(ValueError):
            await ledger.grant_wax_received(session, user.id, "platinum")

    @pytest.mark.asyncio
    async def test_trending_then_referral_hits_free_cap(
        self, ledger, session, make_user, preset_wallet
    ):
        """50 for a trending review, then the 100 referral is cut to the remaining 50."""
        user = await make_user()
        uid = user.id
        await preset_wallet(uid)
        review_id, referred_id = uuid.uuid4(), uuid.uuid4()

        trending = await ledger.grant_trending_bonus(session, uid, review_id)
        referral = await ledger.grant_referral_bonus(session, uid, referred_id)

        assert (trending.earned, trending.capped) == (50, False)
        assert (referral.earned, referral.capped) == (50, True)
        by_type = {tx.type: tx for tx in await _transactions(session, uid)}
        assert by_type[TxType.TRENDING_BONUS].metadata_ == {"review_id": str(review_id)}
        assert by_type[TxType.REFERRAL_BONUS].metadata_ == {
            "referred_user_id": str(referred_id)
        }


class TestDailyClaim:
    """Tests for the daily login bonus and streaks."""

    @pytest.mark.asyncio
    async def test_first_claim(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        await preset_wallet(user.id)
        result = await ledger.claim_daily(session, user.id)
        assert result.earned == 5
        assert result.streak == 1
        assert not result.already_claimed

    @pytest.mark.asyncio
    async def test_second_claim_same_day_credits_nothing(
        self, ledger, session, make_user, preset_wallet
    ):
        user = await make_user()
        uid = user.id
        await preset_wallet(uid)

        await ledger.claim_daily(session, uid)
        again = await ledger.claim_daily(session, uid)

        assert again.already_claimed
        assert again.earned == 0
        assert again.message == "Already claimed today!"
        assert (await _wallet(session, uid)).balance == 5
        assert len(await _transactions(session, uid)) == 1

    @pytest.mark.asyncio
    async def test_consecutive_day_extends_streak(
        self, ledger, session, make_user, preset_wallet
    ):
        """Yesterday's claim at streak 3 -> streak 4, bonus 6, credit 11."""
        user = await make_user()
        await preset_wallet(
            user.id, last_daily_claim_on=date(2026, 5, 31), current_streak=3
        )
        result = await ledger.claim_daily(session, user.id)
        assert result.streak == 4
        assert result.earned == 11

    @pytest.mark.asyncio
    async def test_missed_day_resets_streak(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        await preset_wallet(
            user.id, last_daily_claim_on=date(2026, 5, 30), current_streak=9
        )
        result = await ledger.claim_daily(session, user.id)
        assert result.streak == 1
        assert result.earned == 5

    @pytest.mark.asyncio
    async def test_streak_bonus_capped(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        await preset_wallet(
            user.id, last_daily_claim_on=date(2026, 5, 31), current_streak=20
        )
        result = await ledger.claim_daily(session, user.id)
        assert result.earned == 25

    @pytest.mark.asyncio
    async def test_next_day_claim_via_clock(self, ledger, session, make_user, preset_wallet, clock):
        user = await make_user()
        uid = user.id
        await preset_wallet(uid)

        await ledger.claim_daily(session, uid)
        clock.advance(days=1)
        result = await ledger.claim_daily(session, uid)

        assert result.streak == 2
        assert result.earned == 7

    @pytest.mark.asyncio
    async def test_first_review_of_day_once(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        await preset_wallet(user.id)
        first = await ledger.claim_first_review_of_day(session, user.id)
        second = await ledger.claim_first_review_of_day(session, user.id)
        assert first.earned == 10
        assert second is None


class TestReconciliation:
    """Tests for verify_wallet and frozen wallets."""

    @pytest.mark.asyncio
    async def test_consistent_wallet(self, ledger, session, make_user):
        user = await make_user(balance=40)
        uid = user.id
        await ledger.spend(session, uid, 15, TxType.PIN_REVIEW, "Pin")

        result = await ledger.verify_wallet(session, uid)

        assert result["consistent"]
        assert result["balance"] == result["ledger_sum"] == 25

    @pytest.mark.asyncio
    async def test_mismatch_freezes_wallet(self, ledger, session, make_user):
        user = await make_user(balance=40)
        uid = user.id
        wallet = await _wallet(session, uid)
        wallet.balance = 45
        await session.commit()

        with pytest.raises(LedgerIntegrityError) as excinfo:
            await ledger.verify_wallet(session, uid)

        assert excinfo.value.balance == 45
        assert excinfo.value.ledger_sum == 40
        wallet = await _wallet(session, uid)
        assert wallet.is_frozen
        assert wallet.frozen_reason == "Balance 45 does not match transaction sum 40"

    @pytest.mark.asyncio
    async def test_frozen_wallet_rejects_writes(self, ledger, session, make_user):
        user = await make_user(balance=40)
        uid = user.id
        wallet = await _wallet(session, uid)
        wallet.is_frozen = True
        wallet.frozen_reason = "manual review"
        await session.commit()

        with pytest.raises(WalletFrozenError) as excinfo:
            await ledger.spend(session, uid, 5, TxType.PIN_REVIEW, "Pin")
        assert excinfo.value.reason == "manual review"
        with pytest.raises(WalletFrozenError):
            await ledger.earn(session, uid, 5, TxType.WAX_RECEIVED, "Test")
        with pytest.raises(WalletFrozenError):
            await ledger.claim_daily(session, uid)
        assert (await _wallet(session, uid)).balance == 40

    @pytest.mark.asyncio
    async def test_balance_matches_log_after_mixed_activity(
        self, ledger, session, make_user, preset_wallet, clock
    ):
        user = await make_user(balance=60)
        uid = user.id
        await preset_wallet(uid)

        await ledger.claim_daily(session, uid)
        await ledger.spend_action(session, uid, "pin_review")
        await ledger.earn(session, uid, 30, TxType.WAX_RECEIVED, "Test")
        await ledger.spend(session, uid, 1000, TxType.BOOST_REVIEW, "Too much")
        clock.advance(days=1)
        await ledger.claim_daily(session, uid)

        wallet = await _wallet(session, uid)
        assert wallet.balance == await ledger.ledger_sum(session, uid)
        assert wallet.balance == 60 + 5 - 25 + 30 + 7


class TestAwardWax:
    """Tests for user-to-user Wax awards."""

    def test_award_cost_table(self):
        assert award_cost("FREE", "standard") == 5
        assert award_cost("WAX_PLUS", "premium") == 20
        assert award_cost("WAX_PRO", "gold") == 50
        assert not can_award("FREE", "premium")
        assert not can_award("WAX_PLUS", "gold")

    @pytest.mark.asyncio
    async def test_award_moves_wax(self, ledger, session, make_user, preset_wallet):
        giver = await make_user(balance=10)
        recipient = await make_user(tier="WAX_PRO")
        giver_id, recipient_id = giver.id, recipient.id
        await preset_wallet(recipient_id)

        result = await ledger.award_wax(session, giver_id, recipient_id, "standard")

        assert result.success
        assert result.spent == 5
        assert (await _wallet(session, giver_id)).balance == 5
        assert (await _wallet(session, recipient_id)).balance == 2
        for uid in (giver_id, recipient_id):
            assert (await ledger.verify_wallet(session, uid))["consistent"]

    @pytest.mark.asyncio
    async def test_award_type_not_on_tier(self, ledger, session, make_user):
        giver = await make_user(balance=100)
        recipient = await make_user()
        result = await ledger.award_wax(session, giver.id, recipient.id, "premium")
        assert not result.success
        assert result.error == "Premium Wax is not available on your tier"

    @pytest.mark.asyncio
    async def test_award_to_self_rejected(self, ledger, session, make_user):
        user = await make_user(balance=100)
        with pytest.raises(ValueError):
            await ledger.award_wax(session, user.id, user.id, "standard")


class TestWalletStats:

    @pytest.mark.asyncio
    async def test_free_wallet_stats(self, ledger, session, make_user, preset_wallet):
        user = await make_user()
        uid = user.id
        await preset_wallet(uid, weekly_earned=30)

        stats = await ledger.wallet_stats(session, uid)

        assert stats["weekly_cap"] == 100
        assert stats["weekly_remaining"] == 70
        assert stats["days_until_reset"] == 7
        assert stats["can_claim_daily"] is True
        assert stats["tier"] == "FREE"
        assert stats["has_taste_id"] is False

    @pytest.mark.asyncio
    async def test_subscriber_has_no_cap(self, ledger, session, make_user):
        user = await make_user(tier="WAX_PLUS")
        stats = await ledger.wallet_stats(session, user.id)
        assert stats["weekly_cap"] is None
        assert stats["weekly_remaining"] is None
        assert stats["earn_multiplier"] == 1.5


async def _seed_wallet(database, clock, balance=0):
    """Commit a FREE user and wallet through its own session."""
    async with database.session_factory() as s:
        name = f"user_{uuid.uuid4().hex[:8]}"
        user = User(username=name, email=f"{name}@example.com")
        s.add(user)
        await s.flush()
        s.add(WaxWallet(user_id=user.id, weekly_reset_at=clock.now))
        await s.commit()
        if balance:
            await WaxLedger(clock=clock).grant(
                s, user.id, balance, TxType.REFERRAL_BONUS, "Test funding"
            )
        return user.id


class TestConcurrency:
    """Writers on separate sessions racing for the same wallet."""

    @pytest.mark.asyncio
    async def test_simultaneous_daily_claims_credit_once(
        self, ledger, locking_database, clock
    ):
        uid = await _seed_wallet(locking_database, clock)

        async def claim():
            async with locking_database.session_factory() as s:
                return await ledger.claim_daily(s, uid)

        results = await asyncio.gather(claim(), claim())

        assert sorted(r.already_claimed for r in results) == [False, True]
        async with locking_database.session_factory() as s:
            txs = await _transactions(s, uid)
            assert [(t.type, t.amount) for t in txs] == [("DAILY_CLAIM", 5)]
            assert (await _wallet(s, uid)).balance == 5
            assert await ledger.ledger_sum(s, uid) == 5

    @pytest.mark.asyncio
    async def test_simultaneous_spends_never_overdraw(
        self, ledger, locking_database, clock
    ):
        """Balance 30, two debits of 25: one succeeds, one is refused."""
        uid = await _seed_wallet(locking_database, clock, balance=30)

        async def spend():
            async with locking_database.session_factory() as s:
                return await ledger.spend(s, uid, 25, TxType.PIN_REVIEW, "Pin")

        results = await asyncio.gather(spend(), spend())

        assert sorted(r.success for r in results) == [False, True]
        refused = next(r for r in results if not r.success)
        assert refused.error == "Insufficient Wax. Need 25, have 5"
        async with locking_database.session_factory() as s:
            wallet = await _wallet(s, uid)
            assert wallet.balance == 5
            assert wallet.lifetime_spent == 25
            assert await ledger.ledger_sum(s, uid) == wallet.balance
            report = await ledger.verify_wallet(s, uid)
            assert report["consistent"]
