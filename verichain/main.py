"""
VeriChain FastAPI Main Application
Entry point for the decentralized identity protocol API.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from verichain import __version__
from verichain.config import config
from verichain.routes import chain, credentials, governance, identity, oracle, rate_limit, reputation, trust
from verichain.routes.dependencies import TransactionReverted
from verichain.services.errors import ErrorKind, Revert
from verichain.services.protocol import deploy_protocol

logging.basicConfig(
    level=config.API_LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


# HTTP status for each revert category
STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_PARAMETER: status.HTTP_400_BAD_REQUEST,
    ErrorKind.EXPIRED: status.HTTP_410_GONE,
    ErrorKind.REVOKED: status.HTTP_410_GONE,
    ErrorKind.INSUFFICIENT_QUORUM: status.HTTP_409_CONFLICT,
    ErrorKind.TIMELOCK: status.HTTP_425_TOO_EARLY,
    ErrorKind.PAUSED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.EXECUTION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}

# Prices (8 decimals) for the mock feeds deployed in development mode
DEV_MOCK_PRICES = {
    "BTC": 65_000 * 10 ** 8,
    "ETH": 3_200 * 10 ** 8,
}


def status_for(error: Revert) -> int:
    return STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST)


# ============ Lifecycle ============

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Deploy the protocol unless one was attached beforehand."""
    if getattr(app.state, "protocol", None) is None:
        protocol = deploy_protocol()
        if config.ENABLE_DEV_ENDPOINTS:
            for symbol, price in DEV_MOCK_PRICES.items():
                if symbol not in protocol.price_feeds:
                    protocol.add_mock_feed(symbol, price)
        app.state.protocol = protocol
        logger.info("VeriChain protocol deployed: %s", protocol.addresses())
    yield
    logger.info("VeriChain API shutting down")


# Initialize FastAPI app
app = FastAPI(
    title="VeriChain Identity Protocol",
    description="Decentralized identity, trust scoring and credential verification with multisig governance",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(identity.router, prefix="/api", tags=["Identity"])
app.include_router(governance.router, prefix="/api", tags=["Governance"])
app.include_router(rate_limit.router, prefix="/api", tags=["Rate Limit"])
app.include_router(credentials.router, prefix="/api", tags=["Credentials"])
app.include_router(oracle.router, prefix="/api", tags=["Oracle"])
app.include_router(trust.router, prefix="/api", tags=["Trust Score"])
app.include_router(reputation.router, prefix="/api", tags=["Reputation"])
app.include_router(chain.router, prefix="/api", tags=["Chain"])


# ============ Error handling ============

@app.exception_handler(TransactionReverted)
async def transaction_reverted_handler(request: Request, exc: TransactionReverted) -> JSONResponse:
    """A mined transaction reverted: report the condition and where it was mined."""
    receipt = exc.receipt
    return JSONResponse(
        status_code=status_for(receipt.error),
        content={
            **receipt.error.to_dict(),
            "tx_hash": receipt.tx_hash,
            "block_number": receipt.block_number,
        }
    )


@app.exception_handler(Revert)
async def revert_handler(request: Request, exc: Revert) -> JSONResponse:
    """A read-only call hit a revert condition."""
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict())


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    protocol = getattr(app.state, "protocol", None)
    return {
        "status": "healthy" if protocol is not None else "starting",
        "service": "VeriChain Identity Protocol",
        "version": __version__,
        "chain_id": protocol.ledger.chain_id if protocol else config.CHAIN_ID,
        "block_number": protocol.ledger.block_number if protocol else 0,
    }


def run():
    """Run the API server with uvicorn."""
    uvicorn.run(
        "verichain.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        log_level=config.API_LOG_LEVEL
    )


if __name__ == "__main__":
    run()
