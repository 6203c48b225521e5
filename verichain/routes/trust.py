"""
VeriChain Trust Score API
Score weights, activity metrics and computed trust scores.
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


class WeightsRequest(BaseModel):
    oracle: int = Field(..., ge=0)
    activity: int = Field(..., ge=0)
    reputation: int = Field(..., ge=0)
    consistency: int = Field(..., ge=0)


class MetricsRequest(BaseModel):
    user: str
    transaction_count: int = Field(0, ge=0)
    unique_contracts: int = Field(0, ge=0)
    account_age: int = Field(0, ge=0, description="Account age in days")
    gas_spent: int = Field(0, ge=0)


class ScoreRequest(BaseModel):
    user: str
    oracle_score: int = Field(..., ge=0)
    reputation_score: int = Field(..., ge=0)
    consistency_score: int = Field(..., ge=0)


class MetricUpdaterRequest(BaseModel):
    updater: str
    authorized: bool = True


@router.get("/trust/weights")
def get_weights(protocol: VeriChainProtocol = Depends(get_protocol)):
    return view(protocol, protocol.trust_score_calculator, "get_weights")


@router.put("/trust/weights", response_model=TransactionResponse)
def update_weights(
    request: WeightsRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Replace the component weights; they must sum to 100 (owner only)."""
    return submit(
        protocol, sender, protocol.trust_score_calculator, "update_weights",
        request.oracle, request.activity, request.reputation, request.consistency
    )


@router.post("/trust/metrics", response_model=TransactionResponse)
def update_activity_metrics(
    request: MetricsRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(
        protocol, sender, protocol.trust_score_calculator, "update_activity_metrics",
        parse_address(request.user, "user"),
        request.transaction_count,
        request.unique_contracts,
        request.account_age,
        request.gas_spent,
    )


@router.post("/trust/scores", response_model=TransactionResponse)
def calculate_trust_score(
    request: ScoreRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Compute and store a user's trust score from its components."""
    return submit(
        protocol, sender, protocol.trust_score_calculator, "calculate_trust_score",
        parse_address(request.user, "user"),
        request.oracle_score,
        request.reputation_score,
        request.consistency_score,
    )


@router.post("/trust/updaters", response_model=TransactionResponse)
def set_metric_updater(
    request: MetricUpdaterRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(
        protocol, sender, protocol.trust_score_calculator, "set_metric_updater",
        parse_address(request.updater, "updater"), request.authorized
    )


@router.post("/trust/{address}/publish", response_model=TransactionResponse)
def publish_score(
    address: str,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Write the stored score into the identity registry."""
    return submit(protocol, sender, protocol.trust_score_calculator, "push_score_to_registry", parse_address(address))


@router.get("/trust/{address}")
def get_user_score(address: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Score components, trust level and activity metrics for a user."""
    address = parse_address(address)
    calculator = protocol.trust_score_calculator
    return {
        "user": address,
        "components": view(protocol, calculator, "get_score_components", address),
        "trust_level": view(protocol, calculator, "get_trust_level", address),
        "activity_score": view(protocol, calculator, "get_activity_score", address),
        "metrics": view(protocol, calculator, "get_user_metrics", address),
    }


@router.get("/trust/{address}/meets/{minimum}")
def meets_minimum_trust(address: str, minimum: int, protocol: VeriChainProtocol = Depends(get_protocol)):
    address = parse_address(address)
    return {
        "user": address,
        "minimum": minimum,
        "meets": view(protocol, protocol.trust_score_calculator, "meets_minimum_trust", address, minimum),
    }
