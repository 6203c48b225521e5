"""Tests for MultiSigAdmin governance: quorum, time lock and self-calls."""

import pytest

from verichain.services.errors import (
    AdminAlreadyExists,
    AlreadyApproved,
    ContractIsPaused,
    ExecutionFailed,
    InsufficientApprovals,
    InvalidAdminAddress,
    InvalidAdminCount,
    InvalidRequiredApprovals,
    InvalidTarget,
    InvalidTimeLockDelay,
    NotAdmin,
    NotApproved,
    OnlySelf,
    ProposalAlreadyCancelled,
    ProposalAlreadyExecuted,
    ProposalNotFound,
    TimeLockNotPassed,
    Unauthorized,
)
from verichain.services.ledger import ZERO_ADDRESS, encode_call
from verichain.services.multisig import MultiSigAdmin
from verichain.services.rate_limiter import OperationType

from tests.conftest import ETHER, assert_reverted

DELAY = 3600


def propose(ledger, admin, multisig, target, data=b"", value=0, description="test"):
    receipt = ledger.transact(admin.address, multisig, "create_proposal", target, data, value, description)
    return receipt.unwrap()


class TestConstruction:
    def test_initial_state(self, multisig, admins) -> None:
        assert multisig.admin_count() == 3
        assert multisig.get_admins() == [a.address for a in admins]
        assert multisig.required_approvals == 2
        assert multisig.time_lock.delay == DELAY

    def test_requires_admins(self, ledger, owner) -> None:
        with pytest.raises(InvalidAdminCount):
            ledger.deploy(MultiSigAdmin, [], 1, DELAY, sender=owner.address)

    def test_rejects_duplicate_admin(self, ledger, owner, user1) -> None:
        with pytest.raises(InvalidAdminAddress):
            ledger.deploy(MultiSigAdmin, [user1.address, user1.address], 1, DELAY, sender=owner.address)

    def test_rejects_zero_admin(self, ledger, owner) -> None:
        with pytest.raises(InvalidAdminAddress):
            ledger.deploy(MultiSigAdmin, [ZERO_ADDRESS], 1, DELAY, sender=owner.address)

    @pytest.mark.parametrize("required", [0, 4])
    def test_rejects_bad_requirement(self, ledger, owner, admins, required) -> None:
        with pytest.raises(InvalidRequiredApprovals):
            ledger.deploy(MultiSigAdmin, [a.address for a in admins], required, DELAY, sender=owner.address)

    @pytest.mark.parametrize("delay", [59 * 60, 31 * 24 * 3600])
    def test_rejects_delay_out_of_bounds(self, ledger, owner, admins, delay) -> None:
        with pytest.raises(InvalidTimeLockDelay):
            ledger.deploy(MultiSigAdmin, [a.address for a in admins], 2, delay, sender=owner.address)


class TestProposalLifecycle:
    def test_create_counts_proposer_approval(self, ledger, multisig, admins, rate_limiter) -> None:
        proposal_id = propose(ledger, admins[0], multisig, rate_limiter.address)
        proposal = multisig.get_proposal(proposal_id)
        assert proposal_id == 1
        assert proposal.approvalCount == 1
        assert proposal.proposer == admins[0].address
        assert multisig.has_approved(proposal_id, admins[0].address)

    def test_create_requires_admin(self, ledger, multisig, user1, rate_limiter) -> None:
        receipt = ledger.transact(user1.address, multisig, "create_proposal", rate_limiter.address, b"", 0, "x")
        assert_reverted(receipt, NotAdmin)

    def test_create_rejects_zero_target(self, ledger, multisig, admins) -> None:
        receipt = ledger.transact(admins[0].address, multisig, "create_proposal", ZERO_ADDRESS, b"", 0, "x")
        assert_reverted(receipt, InvalidTarget)

    def test_execution_waits_for_quorum_and_time_lock(self, ledger, owner, multisig, admins, rate_limiter) -> None:
        ledger.transact(owner.address, rate_limiter, "transfer_ownership", multisig.address).unwrap()
        data = encode_call("setRateLimit(uint8,uint256,uint256,uint256)", 0, 5, 3600, 600)
        proposal_id = propose(ledger, admins[0], multisig, rate_limiter.address, data)

        receipt = ledger.transact(admins[2].address, multisig, "execute_proposal", proposal_id)
        assert_reverted(receipt, InsufficientApprovals)

        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        assert multisig.get_proposal(proposal_id).approvalCount == 2
        assert not multisig.can_execute(proposal_id)

        receipt = ledger.transact(admins[2].address, multisig, "execute_proposal", proposal_id)
        assert_reverted(receipt, TimeLockNotPassed)

        ledger.advance_time(DELAY)
        assert multisig.can_execute(proposal_id)
        receipt = ledger.transact(admins[2].address, multisig, "execute_proposal", proposal_id)
        assert receipt.ok
        assert receipt.event("ProposalExecuted").args == {"proposalId": proposal_id, "executor": admins[2].address}
        assert rate_limiter.get_rate_limit(OperationType.IDENTITY_CREATE).maxRequests == 5
        assert multisig.get_proposal(proposal_id).executed

    def test_cannot_execute_twice(self, ledger, multisig, admins, user1) -> None:
        proposal_id = propose(ledger, admins[0], multisig, user1.address)
        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        ledger.advance_time(DELAY)
        ledger.transact(admins[0].address, multisig, "execute_proposal", proposal_id).unwrap()

        receipt = ledger.transact(admins[0].address, multisig, "execute_proposal", proposal_id)
        assert_reverted(receipt, ProposalAlreadyExecuted)
        assert multisig.get_pending_proposals() == []

    def test_failed_call_reverts_everything(self, ledger, multisig, admins, rate_limiter) -> None:
        # Multisig does not own the limiter, so the inner call is rejected
        data = encode_call("pause()")
        proposal_id = propose(ledger, admins[0], multisig, rate_limiter.address, data)
        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        ledger.advance_time(DELAY)

        receipt = ledger.transact(admins[0].address, multisig, "execute_proposal", proposal_id)
        assert_reverted(receipt, ExecutionFailed)
        assert receipt.error.params == (proposal_id, "Unauthorized")
        assert not multisig.get_proposal(proposal_id).executed
        assert rate_limiter.paused is False

    def test_unknown_proposal(self, ledger, multisig, admins) -> None:
        receipt = ledger.transact(admins[0].address, multisig, "approve_proposal", 42)
        assert_reverted(receipt, ProposalNotFound)


class TestApprovals:
    def test_double_approval(self, ledger, multisig, admins, user1) -> None:
        proposal_id = propose(ledger, admins[0], multisig, user1.address)
        receipt = ledger.transact(admins[0].address, multisig, "approve_proposal", proposal_id)
        assert_reverted(receipt, AlreadyApproved)

    def test_revoke_approval(self, ledger, multisig, admins, user1) -> None:
        proposal_id = propose(ledger, admins[0], multisig, user1.address)
        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        ledger.transact(admins[1].address, multisig, "revoke_approval", proposal_id).unwrap()

        assert multisig.get_proposal(proposal_id).approvalCount == 1
        assert not multisig.has_approved(proposal_id, admins[1].address)

    def test_revoke_without_approval(self, ledger, multisig, admins, user1) -> None:
        proposal_id = propose(ledger, admins[0], multisig, user1.address)
        receipt = ledger.transact(admins[2].address, multisig, "revoke_approval", proposal_id)
        assert_reverted(receipt, NotApproved)


class TestCancellation:
    def test_proposer_may_cancel(self, ledger, multisig, admins, user1) -> None:
        proposal_id = propose(ledger, admins[0], multisig, user1.address)
        receipt = ledger.transact(admins[0].address, multisig, "cancel_proposal", proposal_id)
        assert receipt.ok
        assert multisig.get_proposal(proposal_id).cancelled

        receipt = ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id)
        assert_reverted(receipt, ProposalAlreadyCancelled)

    def test_other_admin_needs_quorum(self, ledger, multisig, admins, user1) -> None:
        proposal_id = propose(ledger, admins[0], multisig, user1.address)
        receipt = ledger.transact(admins[2].address, multisig, "cancel_proposal", proposal_id)
        assert_reverted(receipt, Unauthorized)

        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        assert ledger.transact(admins[2].address, multisig, "cancel_proposal", proposal_id).ok


class TestSelfGovernance:
    def _execute(self, ledger, multisig, admins, data):
        proposal_id = propose(ledger, admins[0], multisig, multisig.address, data)
        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        ledger.advance_time(DELAY)
        return ledger.transact(admins[0].address, multisig, "execute_proposal", proposal_id)

    def test_direct_call_is_rejected(self, ledger, multisig, admins, user1) -> None:
        receipt = ledger.transact(admins[0].address, multisig, "add_admin", user1.address)
        assert_reverted(receipt, OnlySelf)

    def test_add_admin_through_proposal(self, ledger, multisig, admins, user1) -> None:
        receipt = self._execute(ledger, multisig, admins, encode_call("addAdmin(address)", user1.address))
        assert receipt.ok
        assert multisig.is_admin(user1.address)
        assert receipt.event("AdminAdded").args == {"admin": user1.address}

    def test_add_existing_admin_fails(self, ledger, multisig, admins) -> None:
        receipt = self._execute(ledger, multisig, admins, encode_call("addAdmin(address)", admins[2].address))
        assert_reverted(receipt, ExecutionFailed)
        assert receipt.error.params[1] == AdminAlreadyExists.__name__

    def test_remove_admin_withdraws_approvals(self, ledger, multisig, admins, user1) -> None:
        pending = propose(ledger, admins[2], multisig, user1.address)
        assert multisig.get_proposal(pending).approvalCount == 1

        receipt = self._execute(ledger, multisig, admins, encode_call("removeAdmin(address)", admins[2].address))
        assert receipt.ok
        assert not multisig.is_admin(admins[2].address)
        assert multisig.get_proposal(pending).approvalCount == 0

    def test_change_requirement(self, ledger, multisig, admins) -> None:
        receipt = self._execute(ledger, multisig, admins, encode_call("changeRequirement(uint256)", 3))
        assert receipt.ok
        assert multisig.required_approvals == 3

    def test_set_time_lock_delay(self, ledger, multisig, admins) -> None:
        receipt = self._execute(ledger, multisig, admins, encode_call("setTimeLockDelay(uint256)", 7200))
        assert receipt.ok
        assert multisig.time_lock.delay == 7200


class TestFundsAndPause:
    def test_proposal_transfers_value(self, ledger, owner, multisig, admins, user1) -> None:
        ledger.transact(owner.address, multisig, "receive", value=2 * ETHER).unwrap()
        assert ledger.balance_of(multisig.address) == 2 * ETHER

        before = ledger.balance_of(user1.address)
        proposal_id = propose(ledger, admins[0], multisig, user1.address, value=ETHER)
        ledger.transact(admins[1].address, multisig, "approve_proposal", proposal_id).unwrap()
        ledger.advance_time(DELAY)
        ledger.transact(admins[0].address, multisig, "execute_proposal", proposal_id).unwrap()

        assert ledger.balance_of(user1.address) == before + ETHER
        assert ledger.balance_of(multisig.address) == ETHER

    def test_paused_blocks_new_proposals(self, ledger, multisig, admins, user1) -> None:
        ledger.transact(admins[1].address, multisig, "pause").unwrap()
        receipt = ledger.transact(admins[0].address, multisig, "create_proposal", user1.address, b"", 0, "x")
        assert_reverted(receipt, ContractIsPaused)

        ledger.transact(admins[1].address, multisig, "unpause").unwrap()
        assert propose(ledger, admins[0], multisig, user1.address) == 1
