"""
VeriChain Protocol Deployment
Deploys the full contract suite on a ledger and wires the cross-references
between contracts.
"""

import logging
from typing import Dict, Iterable, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from verichain.config import config
from verichain.services.cross_chain import CrossChainReputation
from verichain.services.errors import Revert
from verichain.services.identity_registry import IdentityRegistry
from verichain.services.ledger import Contract, Ledger, TxReceipt, checksum
from verichain.services.multisig import MultiSigAdmin
from verichain.services.oracle_adapter import OracleAdapter
from verichain.services.price_feed import MockPriceFeed, Web3PriceFeed
from verichain.services.rate_limiter import RateLimiter
from verichain.services.trust_score import TrustScoreCalculator
from verichain.services.zk_verifier import ZKVerifier

logger = logging.getLogger(__name__)


# Extra chains registered for reputation aggregation (chain id, name, weight)
DEFAULT_REPUTATION_CHAINS = [
    (1, "Ethereum", 3000),
    (137, "Polygon", 2000),
]

MOCK_FEED_DECIMALS = 8


class VeriChainProtocol:
    """All deployed contracts plus the ledger they live on."""

    def __init__(self, ledger: Ledger, deployer: LocalAccount):
        self.ledger = ledger
        self.deployer = deployer
        self.identity_registry: Optional[IdentityRegistry] = None
        self.oracle_adapter: Optional[OracleAdapter] = None
        self.trust_score_calculator: Optional[TrustScoreCalculator] = None
        self.zk_verifier: Optional[ZKVerifier] = None
        self.multisig: Optional[MultiSigAdmin] = None
        self.rate_limiter: Optional[RateLimiter] = None
        self.cross_chain: Optional[CrossChainReputation] = None
        self.price_feeds: Dict[str, Contract] = {}

    # ============ Helpers ============

    def _configure(self, contract: Contract, method: str, *args) -> TxReceipt:
        """Send a configuration transaction from the deployer; raise on revert."""
        receipt = self.ledger.transact(self.deployer.address, contract, method, *args)
        receipt.unwrap()
        return receipt

    def contracts(self) -> Dict[str, Contract]:
        return {
            "IdentityRegistry": self.identity_registry,
            "OracleAdapter": self.oracle_adapter,
            "TrustScoreCalculator": self.trust_score_calculator,
            "ZKVerifier": self.zk_verifier,
            "MultiSigAdmin": self.multisig,
            "RateLimiter": self.rate_limiter,
            "CrossChainReputation": self.cross_chain,
        }

    def addresses(self) -> Dict[str, str]:
        return {name: c.address for name, c in self.contracts().items() if c is not None}

    # ============ Deployment ============

    def deploy_core(self) -> None:
        """Deploy the identity contracts and connect them to each other."""
        sender = self.deployer.address
        self.identity_registry = self.ledger.deploy(IdentityRegistry, sender=sender)
        self.oracle_adapter = self.ledger.deploy(OracleAdapter, sender=sender)
        self.trust_score_calculator = self.ledger.deploy(TrustScoreCalculator, sender=sender)
        self.zk_verifier = self.ledger.deploy(ZKVerifier, sender=sender)

        registry = self.identity_registry.address
        self._configure(self.identity_registry, "set_trust_score_calculator", self.trust_score_calculator.address)
        self._configure(self.identity_registry, "set_oracle_adapter", self.oracle_adapter.address)
        self._configure(self.trust_score_calculator, "set_identity_registry", registry)
        self._configure(self.trust_score_calculator, "set_oracle_adapter", self.oracle_adapter.address)
        self._configure(self.oracle_adapter, "set_identity_registry", registry)
        self._configure(self.zk_verifier, "set_identity_registry", registry)
        logger.info("Core contracts deployed: %s", self.addresses())

    def deploy_security(
        self,
        admins: Optional[Iterable[str]] = None,
        required_approvals: Optional[int] = None,
        time_lock_delay: Optional[int] = None,
    ) -> None:
        """Deploy the multisig, the rate limiter and cross-chain reputation."""
        sender = self.deployer.address
        admins = list(admins or config.MULTISIG_ADMINS or [sender])
        required = required_approvals if required_approvals is not None else config.REQUIRED_APPROVALS
        delay = time_lock_delay if time_lock_delay is not None else config.TIMELOCK_DELAY

        self.multisig = self.ledger.deploy(MultiSigAdmin, admins, required, delay, sender=sender)
        self.rate_limiter = self.ledger.deploy(RateLimiter, sender=sender)
        self.cross_chain = self.ledger.deploy(CrossChainReputation, sender=sender)

        for chain_id, name, weight in DEFAULT_REPUTATION_CHAINS:
            self._configure(self.cross_chain, "add_chain", chain_id, name, weight)
        logger.info("Security contracts deployed: multisig %s of %s, delay %ss", required, len(admins), delay)

    def connect_rate_limiter(self) -> None:
        """Route identity, oracle and proof traffic through the rate limiter."""
        for contract in (self.identity_registry, self.oracle_adapter, self.zk_verifier):
            self._configure(self.rate_limiter, "set_authorized_caller", contract.address, True)
            self._configure(contract, "set_rate_limiter", self.rate_limiter.address)

    # ============ Price feeds ============

    def register_feed(self, symbol: str, feed: Contract) -> None:
        self.price_feeds[symbol.upper()] = feed
        self._configure(self.oracle_adapter, "add_oracle", symbol, feed.address)

    def add_mock_feed(self, symbol: str, price: int, decimals: int = MOCK_FEED_DECIMALS) -> MockPriceFeed:
        """Deploy an owner-updatable feed; ``price`` is already scaled by ``decimals``."""
        feed = self.ledger.deploy(
            MockPriceFeed, decimals, f"{symbol.upper()} / USD", price, sender=self.deployer.address
        )
        self.register_feed(symbol, feed)
        return feed

    def add_web3_feed(self, symbol: str, feed_address: str, rpc_url: Optional[str] = None) -> Web3PriceFeed:
        """Register an external AggregatorV3 feed read over JSON-RPC."""
        feed = self.ledger.deploy(Web3PriceFeed, checksum(feed_address), rpc_url, sender=self.deployer.address)
        self.register_feed(symbol, feed)
        return feed

    # ============ Governance ============

    def hand_over_to_multisig(self) -> List[str]:
        """Transfer ownership of every owned contract to the multisig."""
        moved = []
        for name, contract in self.contracts().items():
            if contract is None or contract is self.multisig:
                continue
            self._configure(contract, "transfer_ownership", self.multisig.address)
            moved.append(name)
        logger.info("Ownership of %s handed to multisig %s", moved, self.multisig.address)
        return moved


def load_deployer(private_key: Optional[str] = None) -> LocalAccount:
    """Deployer from the configured key, or a fresh throwaway account."""
    key = private_key if private_key is not None else config.PRIVATE_KEY
    if key:
        return Account.from_key(key)
    account = Account.create()
    logger.warning("PRIVATE_KEY not set, using throwaway deployer %s", account.address)
    return account


def deploy_protocol(
    ledger: Optional[Ledger] = None,
    deployer: Optional[LocalAccount] = None,
    admins: Optional[Iterable[str]] = None,
    required_approvals: Optional[int] = None,
    time_lock_delay: Optional[int] = None,
    feeds: Optional[Dict[str, str]] = None,
    rate_limited: bool = True,
) -> VeriChainProtocol:
    """
    Deploy and wire the complete protocol.

    Args:
        ledger: Ledger to deploy on (a new one by default)
        deployer: Deploying account (PRIVATE_KEY or a throwaway one by default)
        admins: Multisig admins (MULTISIG_ADMINS or the deployer by default)
        required_approvals: Multisig quorum
        time_lock_delay: Multisig proposal delay in seconds
        feeds: Symbol to on-chain feed address (ORACLE_FEEDS by default)
        rate_limited: Whether contracts record requests with the rate limiter

    Returns:
        VeriChainProtocol with every contract deployed
    """
    ledger = ledger or Ledger()
    deployer = deployer or load_deployer()

    protocol = VeriChainProtocol(ledger, deployer)
    protocol.deploy_core()
    protocol.deploy_security(admins, required_approvals, time_lock_delay)
    if rate_limited:
        protocol.connect_rate_limiter()

    feeds = config.ORACLE_FEEDS if feeds is None else feeds
    for symbol, address in feeds.items():
        try:
            protocol.add_web3_feed(symbol, address)
        except Revert as e:
            # An unreachable feed must not block the rest of the deployment
            logger.warning("Skipping %s price feed at %s: %s", symbol, address, e)

    return protocol
