"""
VeriChain Chain API
Ledger status, contract addresses, event log and development helpers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from verichain.config import config
from verichain.routes.dependencies import get_protocol, parse_address
from verichain.services.protocol import VeriChainProtocol


router = APIRouter()


class AdvanceTimeRequest(BaseModel):
    seconds: int = Field(..., gt=0)


class AccountRequest(BaseModel):
    balance: int = Field(0, ge=0)


def require_dev_endpoints() -> None:
    if not config.ENABLE_DEV_ENDPOINTS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Development endpoints are disabled"
        )


@router.get("/chain")
def chain_status(protocol: VeriChainProtocol = Depends(get_protocol)):
    """Block height, time and deployed contract addresses."""
    ledger = protocol.ledger
    return {
        "chain_id": ledger.chain_id,
        "block_number": ledger.block_number,
        "timestamp": ledger.timestamp,
        "deployer": protocol.deployer.address,
        "contracts": protocol.addresses(),
        "price_feeds": {symbol: feed.address for symbol, feed in protocol.price_feeds.items()},
    }


@router.get("/chain/events")
def get_events(
    name: Optional[str] = None,
    address: Optional[str] = None,
    from_block: int = 0,
    limit: int = 100,
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Event log filtered by name and emitting contract, newest last."""
    address = parse_address(address) if address else None
    events = protocol.ledger.get_events(name=name, address=address, from_block=from_block)
    return {"events": [e.to_dict() for e in events[-limit:]] if limit > 0 else []}


@router.get("/chain/accounts/{address}")
def get_account(address: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    address = parse_address(address)
    ledger = protocol.ledger
    return {
        "address": address,
        "balance": ledger.balance_of(address),
        "nonce": ledger.nonces.get(address, 0),
        "is_contract": ledger.is_contract(address),
    }


# ============ Development ============

@router.post("/chain/advance", dependencies=[Depends(require_dev_endpoints)])
def advance_time(request: AdvanceTimeRequest, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Move block time forward, e.g. past a proposal's time lock."""
    timestamp = protocol.ledger.advance_time(request.seconds)
    return {"timestamp": timestamp, "block_number": protocol.ledger.block_number}


@router.post("/chain/accounts", dependencies=[Depends(require_dev_endpoints)])
def create_account(request: AccountRequest, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Create a throwaway funded account. The key is returned once and not stored."""
    account = protocol.ledger.new_account(request.balance)
    return {
        "address": account.address,
        "private_key": "0x" + bytes(account.key).hex(),
        "balance": request.balance,
    }
