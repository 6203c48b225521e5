"""
VeriChain Oracle Adapter
Wraps per-asset price feeds with staleness checks and a short-lived cache,
and scores a user's financial stability from holding data they supply.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from verichain.config import config
from verichain.services.errors import (
    ArrayLengthMismatch,
    IdentityNotFound,
    InvalidParameter,
    InvalidPrice,
    OracleAlreadyExists,
    OracleNotFound,
    StalePrice,
    Unauthorized,
)
from verichain.services.ledger import ZERO_ADDRESS, Contract, checksum, external
from verichain.services.price_feed import RoundData
from verichain.services.rate_limiter import OperationType

logger = logging.getLogger(__name__)


@dataclass
class PriceData:
    price: int
    decimals: int
    updatedAt: int
    cachedAt: int


@dataclass
class FinancialAnalysis:
    stabilityScore: int = 0
    diversificationScore: int = 0
    activityScore: int = 0
    overallScore: int = 0
    lastAnalyzed: int = 0


# ============ Scoring ============

def holding_duration_score(days: int) -> int:
    """
    Piecewise-linear score for how long a position has been held.

    < 30 days ramps to 20, 30-90 to 40, 90-180 to 60, 180-365 to 100,
    a year or more scores 100.
    """
    if days < 0:
        raise InvalidParameter(days)
    if days >= 365:
        return 100
    if days >= 180:
        return 60 + (days - 180) * 40 // 185
    if days >= 90:
        return 40 + (days - 90) * 20 // 90
    if days >= 30:
        return 20 + (days - 30) * 20 // 60
    return days * 20 // 30


def stability_score(durations: Sequence[int]) -> int:
    """Average holding-duration score across positions."""
    if not durations:
        return 0
    return sum(holding_duration_score(d) for d in durations) // len(durations)


def diversification_score(amounts: Sequence[int]) -> int:
    """
    20 points per funded position (capped at 100), minus one point for every
    percentage point the largest position holds above half the portfolio.
    """
    if any(a < 0 for a in amounts):
        raise InvalidParameter(list(amounts))
    positions = [a for a in amounts if a > 0]
    total = sum(positions)
    if total == 0:
        return 0
    base = min(len(positions) * 20, 100)
    largest_share = max(positions) * 100 // total
    penalty = max(0, largest_share - 50)
    return max(0, base - penalty)


def holding_activity_score(durations: Sequence[int]) -> int:
    """Share of positions held for at least 30 days, as a percentage."""
    if not durations:
        return 0
    return sum(1 for d in durations if d >= 30) * 100 // len(durations)


def overall_financial_score(stability: int, diversification: int, activity: int) -> int:
    return (stability * 50 + diversification * 30 + activity * 20) // 100


class OracleAdapter(Contract):
    """Price-feed wrapper and financial analysis store."""

    def __init__(
        self,
        ledger,
        address,
        owner: Optional[str] = None,
        max_price_age: Optional[int] = None,
        cache_duration: Optional[int] = None,
    ):
        super().__init__(ledger, address, owner)
        self.max_price_age = max_price_age if max_price_age is not None else config.ORACLE_MAX_PRICE_AGE
        self.cache_duration = cache_duration if cache_duration is not None else config.ORACLE_CACHE_DURATION
        self.oracles: Dict[str, str] = {}
        self.price_cache: Dict[str, PriceData] = {}
        self.analyses: Dict[str, FinancialAnalysis] = {}
        self.identity_registry: Optional[str] = None
        self.rate_limiter: Optional[str] = None

    # ============ Oracle management ============

    @staticmethod
    def _symbol(symbol: str) -> str:
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise InvalidParameter(symbol)
        return symbol

    def _feed(self, symbol: str) -> str:
        feed = self.oracles.get(self._symbol(symbol))
        if feed is None:
            raise OracleNotFound(symbol)
        return feed

    @external("addOracle(string,address)")
    def add_oracle(self, symbol: str, feed: str) -> None:
        self._only_owner()
        symbol = self._symbol(symbol)
        feed = checksum(feed)
        if symbol in self.oracles:
            raise OracleAlreadyExists(symbol)
        if not self.ledger.is_contract(feed):
            raise InvalidParameter(feed)
        # Reject anything that does not answer like a feed
        self._call(feed, "decimals")

        self.oracles[symbol] = feed
        self.emit("OracleAdded", symbol=symbol, oracle=feed)
        logger.info("Oracle for %s registered at %s", symbol, feed)

    @external("removeOracle(string)")
    def remove_oracle(self, symbol: str) -> None:
        self._only_owner()
        feed = self._feed(symbol)
        symbol = self._symbol(symbol)
        del self.oracles[symbol]
        self.price_cache.pop(symbol, None)
        self.emit("OracleRemoved", symbol=symbol, oracle=feed)

    def get_supported_assets(self) -> List[str]:
        return list(self.oracles)

    def is_asset_supported(self, symbol: str) -> bool:
        return (symbol or "").strip().upper() in self.oracles

    # ============ Prices ============

    def _validate(self, symbol: str, round_data: RoundData) -> None:
        if round_data.answer <= 0:
            raise InvalidPrice(symbol, round_data.answer)
        if self.now > round_data.updatedAt + self.max_price_age:
            raise StalePrice(symbol, round_data.updatedAt)

    def _read_feed(self, symbol: str) -> PriceData:
        feed = self._feed(symbol)
        round_data = self._call(feed, "latest_round_data")
        self._validate(symbol, round_data)
        decimals = self._call(feed, "decimals")
        return PriceData(round_data.answer, decimals, round_data.updatedAt, self.now)

    def get_latest_price(self, symbol: str) -> Tuple[int, int, int]:
        """
        Return (price, decimals, updatedAt).

        Served from the cache while it is younger than ``cache_duration``;
        otherwise read from the feed. Never writes the cache.
        """
        symbol = self._symbol(symbol)
        self._feed(symbol)
        cached = self.price_cache.get(symbol)
        if cached and self.now < cached.cachedAt + self.cache_duration:
            if self.now > cached.updatedAt + self.max_price_age:
                raise StalePrice(symbol, cached.updatedAt)
            return cached.price, cached.decimals, cached.updatedAt

        data = self._read_feed(symbol)
        return data.price, data.decimals, data.updatedAt

    @external("refreshPrice(string)")
    def refresh_price(self, symbol: str) -> Tuple[int, int, int]:
        """Read the feed and store the result in the cache."""
        symbol = self._symbol(symbol)
        if self.rate_limiter:
            self._call(self.rate_limiter, "record_request", self.msg.sender, OperationType.ORACLE_REQUEST)
        data = self._read_feed(symbol)
        self.price_cache[symbol] = data
        self.emit("PriceUpdated", symbol=symbol, price=data.price, timestamp=data.updatedAt)
        return data.price, data.decimals, data.updatedAt

    def get_historical_price(self, symbol: str, round_id: int) -> Tuple[int, int]:
        """Return (price, updatedAt) for a past feed round."""
        round_data = self._call(self._feed(symbol), "get_round_data", round_id)
        if round_data.answer <= 0:
            raise InvalidPrice(symbol, round_data.answer)
        return round_data.answer, round_data.updatedAt

    def get_cached_price(self, symbol: str) -> Optional[PriceData]:
        return self.price_cache.get(self._symbol(symbol))

    # ============ Financial analysis ============

    @external("analyzeFinancialStability(address,uint256[],uint256[])")
    def analyze_financial_stability(
        self,
        user: str,
        amounts: Sequence[int],
        durations: Sequence[int],
    ) -> FinancialAnalysis:
        """
        Score caller-supplied holdings and store the result for ``user``.

        Args:
            user: Address the analysis belongs to
            amounts: Holding amounts, one per position
            durations: Holding durations in days, aligned with amounts
        """
        user = checksum(user)
        if self.msg.sender not in (self.owner, user):
            raise Unauthorized(self.msg.sender)
        if len(amounts) != len(durations):
            raise ArrayLengthMismatch(len(amounts), len(durations))
        if not amounts:
            raise InvalidParameter("empty holdings")
        if self.identity_registry and not self._call(self.identity_registry, "has_identity", user):
            raise IdentityNotFound(user)

        stability = stability_score(durations)
        diversification = diversification_score(amounts)
        activity = holding_activity_score(durations)
        analysis = FinancialAnalysis(
            stabilityScore=stability,
            diversificationScore=diversification,
            activityScore=activity,
            overallScore=overall_financial_score(stability, diversification, activity),
            lastAnalyzed=self.now,
        )
        self.analyses[user] = analysis
        self.emit("FinancialAnalysisCompleted", user=user, overallScore=analysis.overallScore, timestamp=self.now)
        return analysis

    def get_financial_analysis(self, user: str) -> FinancialAnalysis:
        return self.analyses.get(checksum(user), FinancialAnalysis())

    # ============ Admin ============

    @external("setIdentityRegistry(address)")
    def set_identity_registry(self, registry: str) -> None:
        self._only_owner()
        registry = checksum(registry)
        self.identity_registry = None if registry == ZERO_ADDRESS else registry

    @external("setRateLimiter(address)")
    def set_rate_limiter(self, limiter: str) -> None:
        self._only_owner()
        limiter = checksum(limiter)
        self.rate_limiter = None if limiter == ZERO_ADDRESS else limiter
