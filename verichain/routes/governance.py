"""
VeriChain Governance API
Multisig proposals: creation, approval, time-locked execution and cancellation.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from verichain.routes.dependencies import (
    TransactionResponse,
    get_protocol,
    get_sender,
    parse_address,
    parse_bytes,
    submit,
    view,
)
from verichain.services.ledger import abi_input_types, encode_call, to_jsonable
from verichain.services.protocol import VeriChainProtocol


router = APIRouter()


class ProposalRequest(BaseModel):
    """
    Proposal creation request.

    The call is given either as raw ``data`` (hex calldata) or as a
    ``function_signature`` such as ``setVerifier(address,bool)`` plus ``args``.
    An empty call with a ``value`` is a plain transfer.
    """
    target: str
    data: Optional[str] = None
    function_signature: Optional[str] = None
    args: List[Any] = []
    value: int = Field(0, ge=0)
    description: str = ""


def _coerce_arg(abi_type: str, value: Any) -> Any:
    # JSON has no bytes; byte arguments arrive as hex strings
    if abi_type.startswith("bytes") and isinstance(value, str):
        return parse_bytes(value, "args")
    if abi_type == "address" and isinstance(value, str):
        return parse_address(value, "args")
    return value


def build_calldata(request: ProposalRequest) -> bytes:
    """Resolve the request's call description into calldata."""
    if request.data and request.function_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide either data or function_signature, not both"
        )
    if request.data:
        return parse_bytes(request.data, "data")
    if not request.function_signature:
        return b""

    types = abi_input_types(request.function_signature)
    if len(types) != len(request.args):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{request.function_signature} takes {len(types)} arguments, got {len(request.args)}"
        )
    args = [_coerce_arg(t, a) for t, a in zip(types, request.args)]
    try:
        return encode_call(request.function_signature, *args)
    except (TypeError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not encode call: {e}"
        )


# ============ Status ============

@router.get("/governance")
def governance_status(protocol: VeriChainProtocol = Depends(get_protocol)):
    """Admins, quorum and time lock of the multisig."""
    multisig = protocol.multisig
    return {
        "address": multisig.address,
        "admins": view(protocol, multisig, "get_admins"),
        "required_approvals": multisig.required_approvals,
        "proposal_count": multisig.proposal_count,
        "time_lock": to_jsonable(multisig.time_lock),
        "paused": multisig.paused,
        "balance": protocol.ledger.balance_of(multisig.address),
    }


@router.get("/governance/proposals")
def pending_proposals(protocol: VeriChainProtocol = Depends(get_protocol)):
    """Proposals that are neither executed nor cancelled."""
    return {"proposals": view(protocol, protocol.multisig, "get_pending_proposals")}


@router.get("/governance/proposals/{proposal_id}")
def get_proposal(proposal_id: int, protocol: VeriChainProtocol = Depends(get_protocol)):
    multisig = protocol.multisig
    proposal = view(protocol, multisig, "get_proposal", proposal_id)
    approvers = [a for a in view(protocol, multisig, "get_admins")
                 if view(protocol, multisig, "has_approved", proposal_id, a)]
    return {
        **proposal,
        "approvers": approvers,
        "can_execute": view(protocol, multisig, "can_execute", proposal_id),
    }


# ============ Proposal lifecycle ============

@router.post("/governance/proposals", response_model=TransactionResponse)
def create_proposal(
    request: ProposalRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Create a proposal; the proposer's approval is recorded automatically."""
    data = build_calldata(request)
    return submit(
        protocol, sender, protocol.multisig, "create_proposal",
        parse_address(request.target, "target"), data, request.value, request.description
    )


@router.post("/governance/proposals/{proposal_id}/approve", response_model=TransactionResponse)
def approve_proposal(
    proposal_id: int,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.multisig, "approve_proposal", proposal_id)


@router.post("/governance/proposals/{proposal_id}/revoke", response_model=TransactionResponse)
def revoke_approval(
    proposal_id: int,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.multisig, "revoke_approval", proposal_id)


@router.post("/governance/proposals/{proposal_id}/execute", response_model=TransactionResponse)
def execute_proposal(
    proposal_id: int,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Execute once quorum is reached and the time lock has elapsed."""
    return submit(protocol, sender, protocol.multisig, "execute_proposal", proposal_id)


@router.post("/governance/proposals/{proposal_id}/cancel", response_model=TransactionResponse)
def cancel_proposal(
    proposal_id: int,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.multisig, "cancel_proposal", proposal_id)


# ============ Emergency ============

@router.post("/governance/pause", response_model=TransactionResponse)
def pause_multisig(
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.multisig, "pause")


@router.post("/governance/unpause", response_model=TransactionResponse)
def unpause_multisig(
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.multisig, "unpause")
