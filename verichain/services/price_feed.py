"""
VeriChain Price Feeds
Round-based price oracles consumed by the OracleAdapter.

Two implementations share the AggregatorV3 interface
(decimals, description, getRoundData, latestRoundData):
- MockPriceFeed: an in-ledger feed whose answers are pushed by its owner
- Web3PriceFeed: a read-only proxy to a feed deployed on a real chain
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from web3 import Web3
from web3.exceptions import Web3Exception

from verichain.config import config
from verichain.services.errors import InvalidPrice, PriceFeedUnavailable, RoundNotFound
from verichain.services.ledger import Contract, external

logger = logging.getLogger(__name__)


# Minimal AggregatorV3Interface ABI
AGGREGATOR_V3_ABI = [
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "description",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "_roundId", "type": "uint80"}],
        "name": "getRoundData",
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"name": "roundId", "type": "uint80"},
            {"name": "answer", "type": "int256"},
            {"name": "startedAt", "type": "uint256"},
            {"name": "updatedAt", "type": "uint256"},
            {"name": "answeredInRound", "type": "uint80"}
        ],
        "stateMutability": "view",
        "type": "function"
    }
]


@dataclass
class RoundData:
    roundId: int
    answer: int
    startedAt: int
    updatedAt: int
    answeredInRound: int


class PriceFeed(Contract):
    """AggregatorV3-style price feed interface."""

    def decimals(self) -> int:
        raise NotImplementedError

    def description(self) -> str:
        raise NotImplementedError

    def get_round_data(self, round_id: int) -> RoundData:
        raise NotImplementedError

    def latest_round_data(self) -> RoundData:
        raise NotImplementedError


class MockPriceFeed(PriceFeed):
    """Feed whose owner pushes new answers; each push opens a new round."""

    def __init__(self, ledger, address, decimals: int, description: str, initial_answer: int):
        super().__init__(ledger, address)
        self._decimals = decimals
        self._description = description
        self.rounds: Dict[int, RoundData] = {}
        self.latest_round = 0
        self._push(initial_answer)

    def _push(self, answer: int) -> None:
        self.latest_round += 1
        self.rounds[self.latest_round] = RoundData(
            roundId=self.latest_round,
            answer=answer,
            startedAt=self.now,
            updatedAt=self.now,
            answeredInRound=self.latest_round,
        )

    @external("updateAnswer(int256)")
    def update_answer(self, answer: int) -> None:
        self._only_owner()
        self._push(answer)
        self.emit("AnswerUpdated", current=answer, roundId=self.latest_round, updatedAt=self.now)

    def decimals(self) -> int:
        return self._decimals

    def description(self) -> str:
        return self._description

    def get_round_data(self, round_id: int) -> RoundData:
        data = self.rounds.get(round_id)
        if data is None:
            raise RoundNotFound(round_id)
        return data

    def latest_round_data(self) -> RoundData:
        return self.rounds[self.latest_round]


class Web3PriceFeed(PriceFeed):
    """
    Proxy registering an external on-chain feed with the ledger.

    Reads go over JSON-RPC; RPC and contract failures surface as
    PriceFeedUnavailable so the calling transaction reverts cleanly.
    """

    _transient = PriceFeed._transient + ("_w3", "_feed")

    def __init__(self, ledger, address, feed_address: str, rpc_url: Optional[str] = None, w3: Optional[Web3] = None):
        super().__init__(ledger, address)
        self.feed_address = Web3.to_checksum_address(feed_address)
        self.rpc_url = rpc_url or config.RPC_URL
        self._w3 = w3 or Web3(Web3.HTTPProvider(self.rpc_url))
        self._feed = self._w3.eth.contract(address=self.feed_address, abi=AGGREGATOR_V3_ABI)

    def _read(self, name: str, *args) -> Any:
        try:
            return getattr(self._feed.functions, name)(*args).call()
        except (Web3Exception, OSError) as e:
            logger.warning("Price feed %s %s() failed: %s", self.feed_address, name, e)
            raise PriceFeedUnavailable(self.feed_address, name) from e

    @staticmethod
    def _round(raw) -> RoundData:
        if len(raw) != 5:
            raise InvalidPrice(raw)
        return RoundData(*[int(v) for v in raw])

    def decimals(self) -> int:
        return int(self._read("decimals"))

    def description(self) -> str:
        return str(self._read("description"))

    def get_round_data(self, round_id: int) -> RoundData:
        return self._round(self._read("getRoundData", round_id))

    def latest_round_data(self) -> RoundData:
        return self._round(self._read("latestRoundData"))
