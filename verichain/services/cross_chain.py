"""
VeriChain Cross-Chain Reputation
Collects reputation scores relayed by per-chain bridges and aggregates them
into one weighted score.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from verichain.services.errors import (
    ChainAlreadySupported,
    ChainNotSupported,
    InvalidParameter,
    InvalidScore,
    InvalidWeight,
    UnauthorizedBridge,
)
from verichain.services.ledger import ZERO_ADDRESS, Contract, checksum, external

logger = logging.getLogger(__name__)


MAX_BASIS_POINTS = 10000
MAX_REPUTATION = 100
REPUTATION_TTL = 30 * 24 * 3600

HOME_CHAIN_ID = 1983
HOME_CHAIN_NAME = "QIE Testnet"
HOME_CHAIN_WEIGHT = 5000


@dataclass
class ChainInfo:
    chainId: int
    name: str
    weight: int
    addedAt: int


@dataclass
class ChainReputation:
    score: int
    timestamp: int
    bridge: str


@dataclass
class BridgeConfig:
    bridge: str
    trustLevel: int


def _check_basis_points(value: int) -> None:
    if value < 0 or value > MAX_BASIS_POINTS:
        raise InvalidWeight(value)


class CrossChainReputation(Contract):
    """Per-chain reputation store with bridge-gated submissions."""

    def __init__(self, ledger, address, owner: Optional[str] = None):
        super().__init__(ledger, address, owner)
        self.chains: Dict[int, ChainInfo] = {}
        self.bridges: Dict[int, BridgeConfig] = {}
        self.reputations: Dict[Tuple[str, int], ChainReputation] = {}
        self._add_chain(HOME_CHAIN_ID, HOME_CHAIN_NAME, HOME_CHAIN_WEIGHT)

    def _add_chain(self, chain_id: int, name: str, weight: int) -> None:
        _check_basis_points(weight)
        if chain_id in self.chains:
            raise ChainAlreadySupported(chain_id)
        self.chains[chain_id] = ChainInfo(chain_id, name, weight, self.now)
        self.emit("ChainAdded", chainId=chain_id, name=name, weight=weight)

    def _require_chain(self, chain_id: int) -> ChainInfo:
        chain = self.chains.get(chain_id)
        if chain is None:
            raise ChainNotSupported(chain_id)
        return chain

    # ============ Chains ============

    @external("addChain(uint256,string,uint256)")
    def add_chain(self, chain_id: int, name: str, weight: int) -> None:
        self._only_owner()
        if chain_id <= 0 or not name:
            raise InvalidParameter(chain_id, name)
        self._add_chain(chain_id, name, weight)
        logger.info("Chain %s (%s) added with weight %s", chain_id, name, weight)

    @external("removeChain(uint256)")
    def remove_chain(self, chain_id: int) -> None:
        self._only_owner()
        self._require_chain(chain_id)
        del self.chains[chain_id]
        self.bridges.pop(chain_id, None)
        self.emit("ChainRemoved", chainId=chain_id)

    @external("setChainWeight(uint256,uint256)")
    def set_chain_weight(self, chain_id: int, weight: int) -> None:
        self._only_owner()
        chain = self._require_chain(chain_id)
        _check_basis_points(weight)
        chain.weight = weight
        self.emit("ChainWeightUpdated", chainId=chain_id, weight=weight)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self.chains

    def chain_weights(self, chain_id: int) -> int:
        chain = self.chains.get(chain_id)
        return chain.weight if chain else 0

    def get_supported_chains(self) -> List[ChainInfo]:
        return list(self.chains.values())

    # ============ Bridges ============

    @external("configureBridge(uint256,address,uint256)")
    def configure_bridge(self, chain_id: int, bridge: str, trust_level: int) -> None:
        self._only_owner()
        self._require_chain(chain_id)
        bridge = checksum(bridge)
        if bridge == ZERO_ADDRESS:
            raise InvalidParameter(bridge)
        _check_basis_points(trust_level)
        self.bridges[chain_id] = BridgeConfig(bridge, trust_level)
        self.emit("BridgeConfigured", chainId=chain_id, bridge=bridge, trustLevel=trust_level)

    def get_bridge(self, chain_id: int) -> Optional[BridgeConfig]:
        return self.bridges.get(chain_id)

    @external("bridgeSubmitReputation(address,uint256,uint256)")
    def bridge_submit_reputation(self, user: str, chain_id: int, score: int) -> None:
        """Store a score relayed by the bridge configured for ``chain_id``."""
        self._require_chain(chain_id)
        bridge = self.bridges.get(chain_id)
        if bridge is None or bridge.bridge != self.msg.sender:
            raise UnauthorizedBridge(self.msg.sender, chain_id)
        if score < 0 or score > MAX_REPUTATION:
            raise InvalidScore(score)

        user = checksum(user)
        self.reputations[(user, chain_id)] = ChainReputation(score, self.now, self.msg.sender)
        self.emit("ReputationReceived", user=user, chainId=chain_id, score=score, bridge=self.msg.sender)

    # ============ Reputation ============

    def get_chain_reputation(self, user: str, chain_id: int) -> Tuple[int, int]:
        """Return (score, timestamp); (0, 0) when nothing was submitted."""
        entry = self.reputations.get((checksum(user), chain_id))
        if entry is None:
            return 0, 0
        return entry.score, entry.timestamp

    def get_aggregated_reputation(self, user: str) -> int:
        """
        Weighted mean of fresh per-chain scores.

        Each chain counts with weight * bridge trust; chains without a
        bridge or with entries older than 30 days are skipped.
        """
        user = checksum(user)
        weighted = 0
        total = 0
        for chain_id, chain in self.chains.items():
            entry = self.reputations.get((user, chain_id))
            bridge = self.bridges.get(chain_id)
            if entry is None or bridge is None:
                continue
            if self.now > entry.timestamp + REPUTATION_TTL:
                continue
            factor = chain.weight * bridge.trustLevel
            weighted += entry.score * factor
            total += factor
        return weighted // total if total else 0
