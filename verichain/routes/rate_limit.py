"""
VeriChain Rate Limit API
Per-operation limits, user quotas and whitelist/blacklist management.
"""

from fastapi import APIRouter, Depends, HTTPException, status
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
from verichain.services.rate_limiter import OperationType


router = APIRouter()


class RateLimitRequest(BaseModel):
    max_requests: int = Field(..., gt=0)
    window_duration: int = Field(..., gt=0, description="Window length in seconds")
    cooldown_period: int = Field(0, ge=0, description="Penalty after the window fills, in seconds")


class ListingRequest(BaseModel):
    address: str
    listed: bool = True


class CallerRequest(BaseModel):
    caller: str
    authorized: bool = True


def parse_operation(op: str) -> OperationType:
    """Accept an operation by name (IDENTITY_CREATE) or number (0)."""
    try:
        if op.isdigit():
            return OperationType(int(op))
        return OperationType[op.upper()]
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown operation: {op}. Expected one of {[o.name for o in OperationType]}"
        )


@router.get("/rate-limit")
def list_rate_limits(protocol: VeriChainProtocol = Depends(get_protocol)):
    """Configured limit for every operation."""
    limiter = protocol.rate_limiter
    return {
        "paused": limiter.paused,
        "limits": {op.name: view(protocol, limiter, "get_rate_limit", op) for op in OperationType},
    }


@router.get("/rate-limit/{address}/{op}")
def check_rate_limit(address: str, op: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Whether ``address`` may perform ``op`` now, and its counters."""
    address, operation = parse_address(address), parse_operation(op)
    limiter = protocol.rate_limiter
    allowed, remaining = view(protocol, limiter, "check_rate_limit", address, operation)
    return {
        "address": address,
        "operation": operation.name,
        "allowed": allowed,
        "remaining": remaining,
        "info": view(protocol, limiter, "get_user_rate_info", address, operation),
        "whitelisted": view(protocol, limiter, "is_whitelisted", address),
        "blacklisted": view(protocol, limiter, "is_blacklisted", address),
    }


@router.put("/rate-limit/{op}", response_model=TransactionResponse)
def set_rate_limit(
    op: str,
    request: RateLimitRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Change an operation's limit (owner only)."""
    return submit(
        protocol, sender, protocol.rate_limiter, "set_rate_limit",
        parse_operation(op), request.max_requests, request.window_duration, request.cooldown_period
    )


@router.post("/rate-limit/{address}/{op}/reset", response_model=TransactionResponse)
def reset_user_limit(
    address: str,
    op: str,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(
        protocol, sender, protocol.rate_limiter, "reset_user_limit", parse_address(address), parse_operation(op)
    )


@router.post("/rate-limit/whitelist", response_model=TransactionResponse)
def update_whitelist(
    request: ListingRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    method = "add_to_whitelist" if request.listed else "remove_from_whitelist"
    return submit(protocol, sender, protocol.rate_limiter, method, parse_address(request.address))


@router.post("/rate-limit/blacklist", response_model=TransactionResponse)
def update_blacklist(
    request: ListingRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    method = "add_to_blacklist" if request.listed else "remove_from_blacklist"
    return submit(protocol, sender, protocol.rate_limiter, method, parse_address(request.address))


@router.post("/rate-limit/callers", response_model=TransactionResponse)
def set_authorized_caller(
    request: CallerRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(
        protocol, sender, protocol.rate_limiter, "set_authorized_caller",
        parse_address(request.caller, "caller"), request.authorized
    )


@router.post("/rate-limit/pause", response_model=TransactionResponse)
def pause_rate_limiter(
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.rate_limiter, "pause")


@router.post("/rate-limit/unpause", response_model=TransactionResponse)
def unpause_rate_limiter(
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.rate_limiter, "unpause")
