"""Tests for the skill-credit ledger store."""

from uuid import uuid4

import pytest
from sqlalchemy import update

from app.core.exceptions import (
    EntityNotFoundError,
    InsufficientCreditsError,
    InvalidLedgerEntryError,
    ReferenceConflictError,
)
from app.models import LedgerEntry, User
from app.services.ledger_service import check_manual_entry
from app.utils.constants import CreditType


async def test_append_moves_cached_balance(seed, session_factory, ledger):
    user = await seed.user()

    async with session_factory() as session:
        await ledger.append(session, user.id, 50, CreditType.BONUS, "Accepted")
        await ledger.append(session, user.id, 20, CreditType.TASK_REWARD, "Task completed: A")
        await session.commit()

    async with session_factory() as session:
        assert await ledger.balance_of(session, user.id) == 70
        assert await ledger.ledger_sum(session, user.id) == 70


async def test_append_with_used_reference_changes_nothing(seed, session_factory, ledger):
    user = await seed.user()

    async with session_factory() as session:
        first = await ledger.append(session, user.id, 20, CreditType.TASK_REWARD, reference="submission:1:approved")
        second = await ledger.append(session, user.id, 20, CreditType.TASK_REWARD, reference="submission:1:approved")
        await session.commit()

    assert first == second
    assert len(await seed.ledger_entries(user.id)) == 1
    async with session_factory() as session:
        assert await ledger.balance_of(session, user.id) == 20


async def test_append_rolls_back_with_transaction(seed, session_factory, ledger):
    user = await seed.user()

    async with session_factory() as session:
        await ledger.append(session, user.id, 50, CreditType.BONUS)
        await session.rollback()

    assert await seed.ledger_entries(user.id) == []
    async with session_factory() as session:
        assert await ledger.balance_of(session, user.id) == 0


async def test_append_rejects_zero_and_unknown_account(seed, session_factory, ledger):
    user = await seed.user()
    async with session_factory() as session:
        with pytest.raises(ValueError):
            await ledger.append(session, user.id, 0, CreditType.ADJUSTMENT)

    async with session_factory() as session:
        with pytest.raises(EntityNotFoundError):
            await ledger.append(session, uuid4(), 10, CreditType.DEPOSIT)


async def test_reconcile_reports_drift_without_fixing(seed, session_factory, ledger, notifier):
    user = await seed.user()
    async with session_factory() as session:
        await ledger.append(session, user.id, 30, CreditType.DEPOSIT, "Top up")
        # Simulate a cache corrupted outside the ledger
        await session.execute(update(User).where(User.id == user.id).values(skill_credits=45))
        await session.commit()

    async with session_factory() as session:
        report = await ledger.reconcile(session, user.id)

    assert report.ledger_balance == 30
    assert report.cached_balance == 45
    assert report.drift == 15
    assert not report.in_sync
    assert not report.repaired
    assert notifier.drift_alerts and notifier.drift_alerts[0]["drift"] == 15

    async with session_factory() as session:
        assert await ledger.balance_of(session, user.id) == 45


async def test_repair_overwrites_cache_from_ledger(seed, session_factory, ledger):
    user = await seed.user()
    async with session_factory() as session:
        await ledger.append(session, user.id, 30, CreditType.DEPOSIT)
        await session.execute(update(User).where(User.id == user.id).values(skill_credits=0))
        await session.commit()

    async with session_factory() as session:
        report = await ledger.repair(session, user.id, actor_id="admin-1")
        await session.commit()

    assert report.repaired
    async with session_factory() as session:
        assert (await ledger.reconcile(session, user.id)).in_sync
        assert await ledger.balance_of(session, user.id) == 30


async def test_repair_in_sync_account_is_noop(seed, session_factory, ledger):
    user = await seed.user()
    async with session_factory() as session:
        report = await ledger.repair(session, user.id, actor_id="admin-1")
    assert report.in_sync
    assert not report.repaired


async def test_spend_cannot_overdraw(seed, session_factory, ledger):
    user = await seed.user()
    async with session_factory() as session:
        await ledger.post_entry(session, user.id, 40, CreditType.DEPOSIT, "Top up")
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.post_entry(session, user.id, -41, CreditType.SPEND, "Course")
        assert exc_info.value.details == {"balance": 40, "requested": 41}

    async with session_factory() as session:
        entry = await ledger.post_entry(session, user.id, -40, CreditType.SPEND, "Course")
        await session.commit()

    assert isinstance(entry, LedgerEntry)
    assert entry.amount == -40
    async with session_factory() as session:
        assert await ledger.balance_of(session, user.id) == 0


@pytest.mark.parametrize(
    "credit_type,amount",
    [
        (CreditType.BONUS, 10),
        (CreditType.TASK_REWARD, 10),
        (CreditType.DEPOSIT, -5),
        (CreditType.SPEND, 5),
        (CreditType.ADJUSTMENT, 0),
    ],
)
def test_manual_entry_sign_rules(credit_type, amount):
    with pytest.raises(InvalidLedgerEntryError):
        check_manual_entry(credit_type, amount)


def test_manual_adjustment_may_be_negative():
    check_manual_entry(CreditType.ADJUSTMENT, -3)


@pytest.mark.parametrize(
    "other",
    [
        {"amount": 20, "credit_type": CreditType.DEPOSIT, "same_account": False},
        {"amount": 25, "credit_type": CreditType.DEPOSIT, "same_account": True},
        {"amount": 20, "credit_type": CreditType.ADJUSTMENT, "same_account": True},
    ],
)
async def test_reused_reference_for_different_entry_is_refused(seed, session_factory, ledger, other):
    owner = await seed.user()
    second = await seed.user()
    target = owner if other["same_account"] else second

    async with session_factory() as session:
        await ledger.post_entry(session, owner.id, 20, CreditType.DEPOSIT, "Top up", reference="ext-1")
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(ReferenceConflictError) as exc_info:
            await ledger.post_entry(session, target.id, other["amount"], other["credit_type"], "Top up", reference="ext-1")
        await session.rollback()

    assert exc_info.value.to_dict()["errorCode"] == "REFERENCE_CONFLICT"
    assert exc_info.value.details["accountId"] == str(owner.id)
    async with session_factory() as session:
        assert await ledger.balance_of(session, owner.id) == 20
        assert await ledger.balance_of(session, second.id) == 0
    assert len(await seed.ledger_entries(owner.id)) == 1


async def test_exact_replay_returns_existing_entry(seed, session_factory, ledger):
    user = await seed.user()

    async with session_factory() as session:
        first = await ledger.post_entry(session, user.id, 20, CreditType.DEPOSIT, "Top up", reference="ext-2")
        await session.commit()

    async with session_factory() as session:
        replay = await ledger.post_entry(session, user.id, 20, CreditType.DEPOSIT, "Top up", reference="ext-2")
        await session.commit()

    assert replay.id == first.id
    async with session_factory() as session:
        assert await ledger.balance_of(session, user.id) == 20


async def test_history_and_wallet(seed, session_factory, ledger):
    user = await seed.user()
    async with session_factory() as session:
        await ledger.post_entry(session, user.id, 100, CreditType.DEPOSIT, "Top up")
        await ledger.post_entry(session, user.id, -30, CreditType.SPEND, "Mentor session")
        await ledger.post_entry(session, user.id, -5, CreditType.ADJUSTMENT, "Correction")
        await session.commit()

    async with session_factory() as session:
        entries, total = await ledger.history(session, user.id, limit=2)
        wallet = await ledger.wallet(session, user.id)

    assert total == 3
    assert len(entries) == 2
    assert wallet.balance == 65
    assert wallet.total_earned == 100
    assert wallet.total_spent == 35
    assert len(wallet.recent_entries) == 3


async def test_reconcile_all_covers_every_account(seed, session_factory, ledger):
    first = await seed.user()
    second = await seed.user()
    async with session_factory() as session:
        await ledger.append(session, first.id, 10, CreditType.DEPOSIT)
        await session.commit()

    async with session_factory() as session:
        reports = await ledger.reconcile_all(session)

    assert {r.account_id for r in reports} == {first.id, second.id}
    assert all(r.in_sync for r in reports)
