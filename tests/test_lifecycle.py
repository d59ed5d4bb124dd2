"""Tests for the deposit lifecycle state machine."""

from decimal import Decimal

import pytest

from conftest import create_deposit
from depositflow.deposits.errors import (
    ConcurrentDepositUpdate,
    DepositNotFound,
    IllegalTransition,
    MissingVerificationEvidence,
)
from depositflow.deposits.events import EventType
from depositflow.deposits.lifecycle import ConfirmationOutcome, LifecycleManager
from depositflow.ledger.models import DepositStatus, InstructionKind
from depositflow.ledger.repository import DepositRepository


async def confirm(repo: DepositRepository, deposit_id: int, count: int, auto_complete: bool = False):
    manager = LifecycleManager(repo, auto_complete=auto_complete)
    result = await manager.record_confirmation(deposit_id, count)
    await repo.session.commit()
    return result, manager.events


async def to_confirmed(repo: DepositRepository, deposit_id: int) -> None:
    await confirm(repo, deposit_id, 3)


class TestCreate:
    """Tests for deposit creation."""

    @pytest.mark.asyncio
    async def test_create_pending(self, repo: DepositRepository, seeded):
        """Test a new deposit starts pending with zero confirmations."""
        deposit_id = await create_deposit(repo, seeded)
        deposit = await repo.get_deposit(deposit_id)

        assert deposit.state == DepositStatus.PENDING
        assert deposit.confirmations == 0
        assert deposit.required_confirmations == 3
        assert deposit.gross_amount == Decimal("102.06")
        assert deposit.fee_amount == Decimal("2.04")
        assert deposit.net_amount == Decimal("100.02")
        assert deposit.fee_percent == Decimal("2")
        assert deposit.destination_address == "TPersonalAddr0001"
        assert deposit.version == 1

        transitions = await repo.get_transitions(deposit_id)
        assert [(t.from_status, t.to_status) for t in transitions] == [(None, "pending")]

    @pytest.mark.asyncio
    async def test_create_requires_evidence(self, repo: DepositRepository, seeded):
        with pytest.raises(MissingVerificationEvidence):
            await create_deposit(repo, seeded, tx_reference=None, proof_pointer=None)

    @pytest.mark.asyncio
    async def test_create_with_proof_only(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(
            repo, seeded, tx_reference=None, proof_pointer="proofs/user-1/receipt.png"
        )
        deposit = await repo.get_deposit(deposit_id)

        assert deposit.tx_reference is None
        assert deposit.proof_pointer == "proofs/user-1/receipt.png"


class TestConfirmations:
    """Tests for confirmation tracking."""

    @pytest.mark.asyncio
    async def test_confirmation_sequence(self, repo: DepositRepository, seeded):
        """Test [0, 1, 3, 2, 5] with threshold 3."""
        deposit_id = await create_deposit(repo, seeded)
        outcomes = []
        events = []

        for count in [0, 1, 3, 2, 5]:
            result, emitted = await confirm(repo, deposit_id, count)
            outcomes.append((result.outcome, result.status))
            events.extend(e.type for e in emitted)

        assert outcomes == [
            (ConfirmationOutcome.DUPLICATE, "pending"),
            (ConfirmationOutcome.APPLIED, "awaiting_confirmations"),
            (ConfirmationOutcome.APPLIED, "confirmed"),
            (ConfirmationOutcome.STALE, "confirmed"),
            (ConfirmationOutcome.APPLIED, "confirmed"),
        ]
        assert events == [EventType.AWAITING_CONFIRMATIONS, EventType.CONFIRMED]

        deposit = await repo.get_deposit(deposit_id)
        assert deposit.confirmations == 5
        assert deposit.confirmed_at is not None

        transitions = await repo.get_transitions(deposit_id)
        assert [t.to_status for t in transitions] == [
            "pending",
            "awaiting_confirmations",
            "confirmed",
        ]

    @pytest.mark.asyncio
    async def test_jump_straight_to_confirmed(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        result, events = await confirm(repo, deposit_id, 10)

        assert result.status == "confirmed"
        assert [e.type for e in events] == [EventType.CONFIRMED]

    @pytest.mark.asyncio
    async def test_auto_complete(self, repo: DepositRepository, seeded):
        """Test the watcher path completes immediately when enabled."""
        deposit_id = await create_deposit(repo, seeded)
        result, events = await confirm(repo, deposit_id, 3, auto_complete=True)

        assert result.status == "completed"
        assert [e.type for e in events] == [EventType.CONFIRMED, EventType.COMPLETED]
        assert await repo.get_instruction(deposit_id, InstructionKind.CREDIT) is not None

    @pytest.mark.asyncio
    async def test_terminal_deposit_rejects_confirmations(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await LifecycleManager(repo).fail(deposit_id, "bad proof")
        await repo.session.commit()

        with pytest.raises(IllegalTransition):
            await LifecycleManager(repo).record_confirmation(deposit_id, 5)

    @pytest.mark.asyncio
    async def test_on_hold_records_count_only(self, repo: DepositRepository, seeded):
        """Test a held deposit tracks confirmations without moving."""
        deposit_id = await create_deposit(repo, seeded)
        await LifecycleManager(repo).hold(deposit_id, "proof unreadable")
        await repo.session.commit()

        result, events = await confirm(repo, deposit_id, 4)

        assert result.outcome == ConfirmationOutcome.APPLIED
        assert result.status == "on_hold"
        assert result.confirmations == 4
        assert events == []

    @pytest.mark.asyncio
    async def test_unknown_deposit(self, repo: DepositRepository, seeded):
        with pytest.raises(DepositNotFound):
            await LifecycleManager(repo).record_confirmation(999, 1)


class TestResolution:
    """Tests for complete, fail, reverse and review."""

    @pytest.mark.asyncio
    async def test_complete_twice_credits_once(self, repo: DepositRepository, seeded):
        """Test completion is idempotent."""
        deposit_id = await create_deposit(repo, seeded)
        await to_confirmed(repo, deposit_id)

        first = await LifecycleManager(repo).complete(deposit_id)
        await repo.session.commit()
        second_manager = LifecycleManager(repo)
        second = await second_manager.complete(deposit_id)
        await repo.session.commit()

        assert first.changed is True
        assert second.changed is False
        assert second_manager.events == []

        credits = await repo.get_instructions(deposit_id=deposit_id)
        assert len(credits) == 1
        assert credits[0].kind == InstructionKind.CREDIT.value
        assert credits[0].amount == Decimal("100.02")
        assert credits[0].currency == "USDT"

    @pytest.mark.asyncio
    async def test_complete_requires_confirmed(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)

        with pytest.raises(IllegalTransition) as exc_info:
            await LifecycleManager(repo).complete(deposit_id)

        assert exc_info.value.status == "pending"
        assert exc_info.value.action == "complete"

    @pytest.mark.asyncio
    async def test_reverse_never_completed(self, repo: DepositRepository, seeded):
        """Test reversal is only possible after completion."""
        deposit_id = await create_deposit(repo, seeded)
        await to_confirmed(repo, deposit_id)

        with pytest.raises(IllegalTransition):
            await LifecycleManager(repo).reverse(deposit_id, "chargeback")

        assert await repo.get_instructions(deposit_id=deposit_id) == []

    @pytest.mark.asyncio
    async def test_reverse_completed_issues_debit(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await to_confirmed(repo, deposit_id)
        await LifecycleManager(repo).complete(deposit_id)
        await repo.session.commit()

        manager = LifecycleManager(repo)
        result = await manager.reverse(deposit_id, "chain reorg")
        await repo.session.commit()

        assert result.deposit.state == DepositStatus.REVERSED
        assert result.deposit.resolved_at is not None
        assert [e.type for e in manager.events] == [EventType.REVERSED]

        debit = await repo.get_instruction(deposit_id, InstructionKind.DEBIT)
        assert debit.amount == Decimal("100.02")

        with pytest.raises(IllegalTransition):
            await LifecycleManager(repo).reverse(deposit_id, "again")

    @pytest.mark.asyncio
    async def test_fail_from_on_hold(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await LifecycleManager(repo).hold(deposit_id, "needs review")
        await repo.session.commit()

        result = await LifecycleManager(repo).fail(deposit_id, "forged proof", actor="reviewer")
        await repo.session.commit()

        assert result.deposit.state == DepositStatus.FAILED
        assert result.deposit.status_reason == "forged proof"

        with pytest.raises(IllegalTransition):
            await LifecycleManager(repo).fail(deposit_id, "again")

    @pytest.mark.asyncio
    async def test_hold_then_release_restores_status(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await confirm(repo, deposit_id, 1)
        await LifecycleManager(repo).hold(deposit_id, "check sender")
        await repo.session.commit()
        await confirm(repo, deposit_id, 3)

        manager = LifecycleManager(repo)
        result = await manager.release(deposit_id, "sender verified")
        await repo.session.commit()

        assert result.deposit.state == DepositStatus.CONFIRMED
        assert [e.type for e in manager.events] == [EventType.CONFIRMED]

    @pytest.mark.asyncio
    async def test_hold_not_allowed_once_confirmed(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await to_confirmed(repo, deposit_id)

        with pytest.raises(IllegalTransition):
            await LifecycleManager(repo).hold(deposit_id, "too late")

    @pytest.mark.asyncio
    async def test_approve_pending_completes(self, repo: DepositRepository, seeded):
        """Test reviewer approval forces confirmation and completes."""
        deposit_id = await create_deposit(repo, seeded, tx_reference=None, proof_pointer="proofs/1.png")

        manager = LifecycleManager(repo)
        result = await manager.approve(deposit_id, "proof checked")
        await repo.session.commit()

        assert result.deposit.state == DepositStatus.COMPLETED
        assert [e.type for e in manager.events] == [EventType.CONFIRMED, EventType.COMPLETED]
        assert await repo.get_instruction(deposit_id, InstructionKind.CREDIT) is not None

        again = await LifecycleManager(repo).approve(deposit_id, "double click")
        assert again.changed is False

    @pytest.mark.asyncio
    async def test_approve_failed_is_illegal(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await LifecycleManager(repo).fail(deposit_id, "rejected")
        await repo.session.commit()

        with pytest.raises(IllegalTransition):
            await LifecycleManager(repo).approve(deposit_id, "changed my mind")


class TestOptimisticLocking:
    """Tests for the version compare-and-swap."""

    @pytest.mark.asyncio
    async def test_version_increments(self, repo: DepositRepository, seeded):
        deposit_id = await create_deposit(repo, seeded)
        await confirm(repo, deposit_id, 1)

        deposit = await repo.get_deposit(deposit_id)
        assert deposit.version == 2

    @pytest.mark.asyncio
    async def test_lost_race_raises_concurrent_update(self, session_factory, seeded_file):
        """Test a writer holding an old version cannot overwrite a newer one."""
        async with session_factory() as session:
            deposit_id = await create_deposit(DepositRepository(session), seeded_file)

        async with session_factory() as slow_session:
            slow_repo = DepositRepository(slow_session)
            await slow_repo.get_deposit(deposit_id)  # Loads version 1

            async with session_factory() as fast_session:
                fast_repo = DepositRepository(fast_session)
                await LifecycleManager(fast_repo).record_confirmation(deposit_id, 1)
                await fast_session.commit()

            with pytest.raises(ConcurrentDepositUpdate):
                await LifecycleManager(slow_repo).record_confirmation(deposit_id, 2)
            await slow_session.rollback()

        async with session_factory() as session:
            deposit = await DepositRepository(session).get_deposit(deposit_id)
            assert deposit.confirmations == 1
            assert deposit.version == 2
