"""
VeriChain Cross-Chain Reputation API
Supported chains, bridge configuration and aggregated reputation.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from verichain.routes.dependencies import (
    TransactionResponse,
    get_protocol,
    get_sender,
    parse_address,
    submit,
    view,
)
from verichain.services.protocol import VeriChainProtocol


router = APIRouter()


class ChainRequest(BaseModel):
    chain_id: int = Field(..., gt=0)
    name: str
    weight: int = Field(..., ge=0, le=10000, description="Basis points")


class WeightRequest(BaseModel):
    weight: int = Field(..., ge=0, le=10000)


class BridgeRequest(BaseModel):
    chain_id: int
    bridge: str
    trust_level: int = Field(..., ge=0, le=10000, description="Basis points")


class ReputationSubmission(BaseModel):
    user: str
    chain_id: int
    score: int = Field(..., ge=0, le=100)


@router.get("/reputation/chains")
def list_chains(protocol: VeriChainProtocol = Depends(get_protocol)):
    cross_chain = protocol.cross_chain
    chains = view(protocol, cross_chain, "get_supported_chains")
    for chain in chains:
        chain["bridge"] = view(protocol, cross_chain, "get_bridge", chain["chainId"])
    return {"chains": chains}


@router.post("/reputation/chains", response_model=TransactionResponse)
def add_chain(
    request: ChainRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.cross_chain, "add_chain", request.chain_id, request.name, request.weight)


@router.delete("/reputation/chains/{chain_id}", response_model=TransactionResponse)
def remove_chain(
    chain_id: int,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.cross_chain, "remove_chain", chain_id)


@router.put("/reputation/chains/{chain_id}/weight", response_model=TransactionResponse)
def set_chain_weight(
    chain_id: int,
    request: WeightRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.cross_chain, "set_chain_weight", chain_id, request.weight)


@router.post("/reputation/bridges", response_model=TransactionResponse)
def configure_bridge(
    request: BridgeRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(
        protocol, sender, protocol.cross_chain, "configure_bridge",
        request.chain_id, parse_address(request.bridge, "bridge"), request.trust_level
    )


@router.post("/reputation/submit", response_model=TransactionResponse)
def submit_reputation(
    request: ReputationSubmission,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Relay a score from another chain (configured bridge only)."""
    return submit(
        protocol, sender, protocol.cross_chain, "bridge_submit_reputation",
        parse_address(request.user, "user"), request.chain_id, request.score
    )


@router.get("/reputation/{address}")
def get_reputation(address: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Aggregated score and the per-chain entries behind it."""
    address = parse_address(address)
    cross_chain = protocol.cross_chain
    per_chain = {}
    for chain in view(protocol, cross_chain, "get_supported_chains"):
        score, timestamp = view(protocol, cross_chain, "get_chain_reputation", address, chain["chainId"])
        per_chain[str(chain["chainId"])] = {"score": score, "timestamp": timestamp}
    return {
        "user": address,
        "aggregated": view(protocol, cross_chain, "get_aggregated_reputation", address),
        "chains": per_chain,
    }
