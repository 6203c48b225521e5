"""
VeriChain Configuration Module
Loads environment variables and provides configuration settings for the
identity protocol, its governance layer and the HTTP API.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _split_mapping(value: str) -> Dict[str, str]:
    """Parse ``BTC=0xabc,ETH=0xdef`` into a dict."""
    mapping = {}
    for item in _split_list(value):
        if "=" not in item:
            raise ValueError(f"Invalid mapping entry: {item!r}")
        key, _, val = item.partition("=")
        mapping[key.strip().upper()] = val.strip()
    return mapping


@dataclass
class Config:
    """Application configuration settings."""

    # ============ API Settings ============
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_LOG_LEVEL: str = os.getenv("API_LOG_LEVEL", "info")

    # ============ Chain (QIE) ============
    CHAIN_ID: int = int(os.getenv("CHAIN_ID", "1983"))  # QIE testnet
    RPC_URL: str = os.getenv("RPC_URL", "https://rpc1testnet.qie.digital/")
    EXPLORER_URL: str = os.getenv("EXPLORER_URL", "https://testnet.qie.digital")

    # Seconds added to the block timestamp for every mined block
    BLOCK_TIME: int = int(os.getenv("BLOCK_TIME", "1"))

    # Deployer wallet; a throwaway key is generated when empty
    PRIVATE_KEY: str = os.getenv("PRIVATE_KEY", "")

    # ============ Governance ============
    MULTISIG_ADMINS: List[str] = field(
        default_factory=lambda: _split_list(os.getenv("MULTISIG_ADMINS", ""))
    )
    REQUIRED_APPROVALS: int = int(os.getenv("REQUIRED_APPROVALS", "1"))
    TIMELOCK_DELAY: int = int(os.getenv("TIMELOCK_DELAY", "3600"))  # 1 hour

    # ============ Oracle ============
    # Feeds older than this are rejected as stale
    ORACLE_MAX_PRICE_AGE: int = int(os.getenv("ORACLE_MAX_PRICE_AGE", "3600"))
    # Cached prices are served without a feed read for this long
    ORACLE_CACHE_DURATION: int = int(os.getenv("ORACLE_CACHE_DURATION", "300"))
    ORACLE_FEEDS: Dict[str, str] = field(
        default_factory=lambda: _split_mapping(os.getenv("ORACLE_FEEDS", ""))
    )

    # ============ Identity ============
    # Trust score at which an identity is marked verified
    VERIFICATION_THRESHOLD: int = int(os.getenv("VERIFICATION_THRESHOLD", "50"))

    # ============ Dev endpoints ============
    # Enables /api/chain/advance (the evm_increaseTime equivalent)
    ENABLE_DEV_ENDPOINTS: bool = os.getenv("ENABLE_DEV_ENDPOINTS", "false").lower() == "true"

    def get_tx_url(self, tx_hash: str) -> str:
        """Get explorer URL for a transaction."""
        return f"{self.EXPLORER_URL}/tx/{tx_hash}"

    def get_address_url(self, address: str) -> str:
        """Get explorer URL for an address."""
        return f"{self.EXPLORER_URL}/address/{address}"

    def is_rpc_configured(self) -> bool:
        """Check if external price feeds can be reached."""
        return bool(self.RPC_URL and self.ORACLE_FEEDS)

    def validate_governance(self) -> bool:
        """Check that the multisig settings are deployable."""
        admins = len(self.MULTISIG_ADMINS) or 1
        return 0 < self.REQUIRED_APPROVALS <= admins


# Global config instance
config = Config()
