"""
VeriChain Oracle API
Asset prices from registered feeds and financial stability analysis.
"""

from typing import List

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


class OracleRequest(BaseModel):
    symbol: str
    feed: str = Field(..., description="Address of an AggregatorV3-style feed on the ledger")


class AnalysisRequest(BaseModel):
    """Holdings to analyze; amounts and durations are aligned by index."""
    user: str
    amounts: List[int]
    durations: List[int] = Field(..., description="Holding durations in days")


class PriceResponse(BaseModel):
    symbol: str
    price: int
    decimals: int
    updated_at: int


@router.get("/oracle/assets")
def supported_assets(protocol: VeriChainProtocol = Depends(get_protocol)):
    adapter = protocol.oracle_adapter
    return {
        "assets": view(protocol, adapter, "get_supported_assets"),
        "max_price_age": adapter.max_price_age,
        "cache_duration": adapter.cache_duration,
    }


@router.get("/oracle/prices/{symbol}", response_model=PriceResponse)
def latest_price(symbol: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Latest non-stale price, served from cache when fresh."""
    price, decimals, updated_at = view(protocol, protocol.oracle_adapter, "get_latest_price", symbol)
    return {"symbol": symbol.upper(), "price": price, "decimals": decimals, "updated_at": updated_at}


@router.post("/oracle/prices/{symbol}/refresh", response_model=TransactionResponse)
def refresh_price(
    symbol: str,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Read the feed and update the cached price."""
    return submit(protocol, sender, protocol.oracle_adapter, "refresh_price", symbol)


@router.get("/oracle/prices/{symbol}/rounds/{round_id}")
def historical_price(symbol: str, round_id: int, protocol: VeriChainProtocol = Depends(get_protocol)):
    price, updated_at = view(protocol, protocol.oracle_adapter, "get_historical_price", symbol, round_id)
    return {"symbol": symbol.upper(), "round_id": round_id, "price": price, "updated_at": updated_at}


@router.post("/oracle/oracles", response_model=TransactionResponse)
def add_oracle(
    request: OracleRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Register a price feed for an asset (owner only)."""
    return submit(
        protocol, sender, protocol.oracle_adapter, "add_oracle", request.symbol, parse_address(request.feed, "feed")
    )


@router.delete("/oracle/oracles/{symbol}", response_model=TransactionResponse)
def remove_oracle(
    symbol: str,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.oracle_adapter, "remove_oracle", symbol)


@router.post("/oracle/analysis", response_model=TransactionResponse)
def analyze_financial_stability(
    request: AnalysisRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Score holdings for a user (the user or the owner may submit)."""
    return submit(
        protocol, sender, protocol.oracle_adapter, "analyze_financial_stability",
        parse_address(request.user, "user"), request.amounts, request.durations
    )


@router.get("/oracle/analysis/{address}")
def get_financial_analysis(address: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    address = parse_address(address)
    return {"user": address, **view(protocol, protocol.oracle_adapter, "get_financial_analysis", address)}
