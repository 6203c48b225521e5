"""
VeriChain MultiSig Admin
M-of-N governance: admins propose arbitrary calls, approve them, and
execute them once quorum is reached and the time lock has elapsed.

Proposal lifecycle:
    Created -> (approvals >= required AND now >= executionTime) -> Executed
    Created -> Cancelled
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Set

from verichain.services.access import RoleTable, authorize
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
    Revert,
    TimeLockNotPassed,
    Unauthorized,
)
from verichain.services.ledger import ZERO_ADDRESS, Contract, checksum, external

logger = logging.getLogger(__name__)


MIN_TIMELOCK_DELAY = 60 * 60            # 1 hour
MAX_TIMELOCK_DELAY = 30 * 24 * 60 * 60  # 30 days


@dataclass
class TimeLock:
    delay: int
    minDelay: int = MIN_TIMELOCK_DELAY
    maxDelay: int = MAX_TIMELOCK_DELAY


@dataclass
class Proposal:
    id: int
    proposer: str
    target: str
    data: bytes
    value: int
    createdAt: int
    executionTime: int
    approvalCount: int
    executed: bool
    cancelled: bool
    description: str


class MultiSigAdmin(Contract):
    """Admin multisig with a per-proposal time lock."""

    payable = True

    def __init__(self, ledger, address, admins: List[str], required_approvals: int, time_lock_delay: int):
        super().__init__(ledger, address)
        if not admins:
            raise InvalidAdminCount(0)

        self.admins = RoleTable("admins")
        for admin in admins:
            admin = checksum(admin)
            if admin == ZERO_ADDRESS or not self.admins.grant(admin):
                raise InvalidAdminAddress(admin)

        if required_approvals <= 0 or required_approvals > len(self.admins):
            raise InvalidRequiredApprovals(required_approvals, len(self.admins))
        self._check_delay(time_lock_delay)

        self.required_approvals = required_approvals
        self.time_lock = TimeLock(delay=time_lock_delay)
        self.paused = False
        self.proposal_count = 0
        self.proposals: Dict[int, Proposal] = {}
        self.approvals: Dict[int, Set[str]] = {}

    # ============ Guards ============

    def _only_admin(self) -> None:
        authorize(self.msg.sender, self.admins, error=NotAdmin)

    def _only_self(self) -> None:
        if self.msg.sender != self.address:
            raise OnlySelf(self.msg.sender)

    def _when_not_paused(self) -> None:
        if self.paused:
            raise ContractIsPaused()

    @staticmethod
    def _check_delay(delay: int) -> None:
        if delay < MIN_TIMELOCK_DELAY or delay > MAX_TIMELOCK_DELAY:
            raise InvalidTimeLockDelay(delay)

    def _open_proposal(self, proposal_id: int) -> Proposal:
        proposal = self.proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFound(proposal_id)
        if proposal.executed:
            raise ProposalAlreadyExecuted(proposal_id)
        if proposal.cancelled:
            raise ProposalAlreadyCancelled(proposal_id)
        return proposal

    # ============ Views ============

    def is_admin(self, account: str) -> bool:
        return checksum(account) in self.admins

    def admin_count(self) -> int:
        return len(self.admins)

    def get_admins(self) -> List[str]:
        return self.admins.members()

    def get_proposal(self, proposal_id: int) -> Proposal:
        proposal = self.proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFound(proposal_id)
        return proposal

    def has_approved(self, proposal_id: int, admin: str) -> bool:
        return checksum(admin) in self.approvals.get(proposal_id, set())

    def can_execute(self, proposal_id: int) -> bool:
        proposal = self.proposals.get(proposal_id)
        return (
            proposal is not None
            and not proposal.executed
            and not proposal.cancelled
            and proposal.approvalCount >= self.required_approvals
            and self.now >= proposal.executionTime
        )

    def get_pending_proposals(self) -> List[Proposal]:
        return [p for p in self.proposals.values() if not p.executed and not p.cancelled]

    # ============ Proposal workflow ============

    @external("createProposal(address,bytes,uint256,string)")
    def create_proposal(self, target: str, data: bytes, value: int, description: str) -> int:
        """Create a proposal; the proposer's approval is recorded automatically."""
        self._only_admin()
        self._when_not_paused()
        target = checksum(target)
        if target == ZERO_ADDRESS:
            raise InvalidTarget(target)
        if value < 0:
            raise InvalidTarget(target, value)

        self.proposal_count += 1
        proposal_id = self.proposal_count
        proposer = self.msg.sender
        self.proposals[proposal_id] = Proposal(
            id=proposal_id,
            proposer=proposer,
            target=target,
            data=bytes(data),
            value=value,
            createdAt=self.now,
            executionTime=self.now + self.time_lock.delay,
            approvalCount=1,
            executed=False,
            cancelled=False,
            description=description,
        )
        self.approvals[proposal_id] = {proposer}

        self.emit("ProposalCreated", proposalId=proposal_id, proposer=proposer,
                  target=target, description=description)
        self.emit("ProposalApproved", proposalId=proposal_id, approver=proposer)
        logger.info("Proposal %s created by %s: %s", proposal_id, proposer, description)
        return proposal_id

    @external("approveProposal(uint256)")
    def approve_proposal(self, proposal_id: int) -> None:
        self._only_admin()
        self._when_not_paused()
        proposal = self._open_proposal(proposal_id)
        approver = self.msg.sender
        if approver in self.approvals[proposal_id]:
            raise AlreadyApproved(proposal_id, approver)

        self.approvals[proposal_id].add(approver)
        proposal.approvalCount += 1
        self.emit("ProposalApproved", proposalId=proposal_id, approver=approver)

    @external("revokeApproval(uint256)")
    def revoke_approval(self, proposal_id: int) -> None:
        self._only_admin()
        proposal = self._open_proposal(proposal_id)
        approver = self.msg.sender
        if approver not in self.approvals[proposal_id]:
            raise NotApproved(proposal_id, approver)

        self.approvals[proposal_id].discard(approver)
        proposal.approvalCount -= 1
        self.emit("ApprovalRevoked", proposalId=proposal_id, approver=approver)

    @external("executeProposal(uint256)")
    def execute_proposal(self, proposal_id: int):
        """
        Execute an approved proposal after its time lock.

        The proposal is marked executed before the call is made, so a
        re-entrant execute of the same id fails. If the call fails the
        whole transaction reverts with ExecutionFailed.
        """
        self._only_admin()
        self._when_not_paused()
        proposal = self._open_proposal(proposal_id)
        if proposal.approvalCount < self.required_approvals:
            raise InsufficientApprovals(proposal_id, proposal.approvalCount, self.required_approvals)
        if self.now < proposal.executionTime:
            raise TimeLockNotPassed(proposal_id, proposal.executionTime)

        proposal.executed = True
        try:
            result = self.ledger.send(self.address, proposal.target, proposal.data, proposal.value)
        except Revert as e:
            logger.warning("Proposal %s call failed: %s", proposal_id, e)
            raise ExecutionFailed(proposal_id, e.name) from e

        self.emit("ProposalExecuted", proposalId=proposal_id, executor=self.msg.sender)
        logger.info("Proposal %s executed by %s", proposal_id, self.msg.sender)
        return result

    @external("cancelProposal(uint256)")
    def cancel_proposal(self, proposal_id: int) -> None:
        """Proposer may cancel any time; other admins only once quorum is reached."""
        self._only_admin()
        proposal = self._open_proposal(proposal_id)
        sender = self.msg.sender
        if sender != proposal.proposer and proposal.approvalCount < self.required_approvals:
            raise Unauthorized(sender)

        proposal.cancelled = True
        self.emit("ProposalCancelled", proposalId=proposal_id, canceller=sender)

    # ============ Self-governed configuration ============

    @external("addAdmin(address)")
    def add_admin(self, admin: str) -> None:
        self._only_self()
        admin = checksum(admin)
        if admin == ZERO_ADDRESS:
            raise InvalidAdminAddress(admin)
        if not self.admins.grant(admin):
            raise AdminAlreadyExists(admin)
        self.emit("AdminAdded", admin=admin)

    @external("removeAdmin(address)")
    def remove_admin(self, admin: str) -> None:
        self._only_self()
        admin = checksum(admin)
        if admin not in self.admins:
            raise NotAdmin(admin)
        if len(self.admins) - 1 < self.required_approvals:
            raise InvalidRequiredApprovals(self.required_approvals, len(self.admins) - 1)

        self.admins.revoke(admin)
        # Withdraw the removed admin's approvals so counts stay bounded by the admin set
        for proposal in self.get_pending_proposals():
            approvers = self.approvals[proposal.id]
            if admin in approvers:
                approvers.discard(admin)
                proposal.approvalCount -= 1
        self.emit("AdminRemoved", admin=admin)

    @external("changeRequirement(uint256)")
    def change_requirement(self, required_approvals: int) -> None:
        self._only_self()
        if required_approvals <= 0 or required_approvals > len(self.admins):
            raise InvalidRequiredApprovals(required_approvals, len(self.admins))
        self.required_approvals = required_approvals
        self.emit("RequirementChanged", requiredApprovals=required_approvals)

    @external("setTimeLockDelay(uint256)")
    def set_time_lock_delay(self, delay: int) -> None:
        self._only_self()
        self._check_delay(delay)
        self.time_lock.delay = delay
        self.emit("TimeLockUpdated", delay=delay)

    # ============ Emergency ============

    @external("pause()")
    def pause(self) -> None:
        self._only_admin()
        self.paused = True
        self.emit("ContractPaused", account=self.msg.sender)

    @external("unpause()")
    def unpause(self) -> None:
        self._only_admin()
        self.paused = False
        self.emit("ContractUnpaused", account=self.msg.sender)

    def receive(self) -> None:
        self.emit("Deposit", sender=self.msg.sender, value=self.msg.value)
