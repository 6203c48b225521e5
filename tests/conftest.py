"""Shared fixtures: a ledger with fixed genesis time, funded accounts and deployed contracts."""

import pytest

from verichain.services.cross_chain import CrossChainReputation
from verichain.services.identity_registry import IdentityRegistry
from verichain.services.ledger import Ledger, TxReceipt
from verichain.services.multisig import MultiSigAdmin
from verichain.services.oracle_adapter import OracleAdapter
from verichain.services.price_feed import MockPriceFeed
from verichain.services.rate_limiter import RateLimiter
from verichain.services.trust_score import TrustScoreCalculator
from verichain.services.zk_verifier import ZKVerifier

# 800 seconds into an hour, so hour-bucketed proof challenges stay stable
GENESIS = 1_700_000_000
ETHER = 10 ** 18


def assert_reverted(receipt: TxReceipt, error_cls) -> None:
    assert receipt.status == 0, f"expected {error_cls.__name__}, transaction succeeded"
    assert isinstance(receipt.error, error_cls), f"expected {error_cls.__name__}, got {receipt.error!r}"


@pytest.fixture
def ledger():
    return Ledger(chain_id=1983, block_time=1, genesis_timestamp=GENESIS)


@pytest.fixture
def owner(ledger):
    return ledger.new_account(100 * ETHER)


@pytest.fixture
def user1(ledger):
    return ledger.new_account(10 * ETHER)


@pytest.fixture
def user2(ledger):
    return ledger.new_account(10 * ETHER)


@pytest.fixture
def verifier(ledger):
    return ledger.new_account(10 * ETHER)


@pytest.fixture
def admins(ledger):
    return [ledger.new_account(10 * ETHER) for _ in range(3)]


@pytest.fixture
def registry(ledger, owner):
    return ledger.deploy(IdentityRegistry, sender=owner.address)


@pytest.fixture
def rate_limiter(ledger, owner):
    return ledger.deploy(RateLimiter, sender=owner.address)


@pytest.fixture
def multisig(ledger, owner, admins):
    return ledger.deploy(MultiSigAdmin, [a.address for a in admins], 2, 3600, sender=owner.address)


@pytest.fixture
def oracle(ledger, owner):
    return ledger.deploy(OracleAdapter, sender=owner.address)


@pytest.fixture
def btc_feed(ledger, owner):
    # $65,000 with 8 decimals
    return ledger.deploy(MockPriceFeed, 8, "BTC / USD", 65_000 * 10 ** 8, sender=owner.address)


@pytest.fixture
def calculator(ledger, owner):
    return ledger.deploy(TrustScoreCalculator, sender=owner.address)


@pytest.fixture
def zk_verifier(ledger, owner):
    return ledger.deploy(ZKVerifier, sender=owner.address)


@pytest.fixture
def cross_chain(ledger, owner):
    return ledger.deploy(CrossChainReputation, sender=owner.address)
