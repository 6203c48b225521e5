"""
VeriChain Trust Score Calculator
Combines oracle, activity, reputation and consistency components into a
single 0-100 trust score.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from verichain.services.access import RoleTable
from verichain.services.errors import InvalidScore, WeightsSumNot100
from verichain.services.ledger import ZERO_ADDRESS, Contract, checksum, external

logger = logging.getLogger(__name__)


@dataclass
class ScoreWeights:
    oracleWeight: int = 40
    activityWeight: int = 30
    reputationWeight: int = 20
    consistencyWeight: int = 10

    def total(self) -> int:
        return self.oracleWeight + self.activityWeight + self.reputationWeight + self.consistencyWeight


@dataclass
class UserMetrics:
    transactionCount: int = 0
    uniqueContracts: int = 0
    accountAge: int = 0  # days
    gasSpent: int = 0
    lastUpdated: int = 0


@dataclass
class ScoreComponents:
    oracleScore: int = 0
    activityScore: int = 0
    reputationScore: int = 0
    consistencyScore: int = 0
    finalScore: int = 0
    lastCalculated: int = 0


# Activity score caps: points awarded and the input at which they max out
TX_POINTS, TX_CAP = 33, 1000
CONTRACT_POINTS, CONTRACT_CAP = 33, 20
AGE_POINTS, AGE_CAP = 34, 365


def activity_score(metrics: UserMetrics) -> int:
    """Transactions, distinct contracts and account age, 0-100."""
    # Hundredths of a point so the three parts round together
    tx = min(metrics.transactionCount, TX_CAP) * TX_POINTS * 100 // TX_CAP
    contracts = min(metrics.uniqueContracts, CONTRACT_CAP) * CONTRACT_POINTS * 100 // CONTRACT_CAP
    age = min(metrics.accountAge, AGE_CAP) * AGE_POINTS * 100 // AGE_CAP
    return (tx + contracts + age) // 100


def trust_level(score: int) -> str:
    if score <= 30:
        return "LOW"
    if score <= 60:
        return "MEDIUM"
    if score <= 85:
        return "HIGH"
    return "ELITE"


def _check_score(*scores: int) -> None:
    for score in scores:
        if score < 0 or score > 100:
            raise InvalidScore(score)


class TrustScoreCalculator(Contract):
    """Weighted trust score calculator."""

    def __init__(self, ledger, address, owner: Optional[str] = None):
        super().__init__(ledger, address, owner)
        self.weights = ScoreWeights()
        self.metrics: Dict[str, UserMetrics] = {}
        self.scores: Dict[str, ScoreComponents] = {}
        self.metric_updaters = RoleTable("metric_updaters")
        self.identity_registry: Optional[str] = None
        self.oracle_adapter: Optional[str] = None

    # ============ Pure scoring ============

    def calculate_score(self, oracle: int, activity: int, reputation: int, consistency: int) -> int:
        w = self.weights
        return (
            oracle * w.oracleWeight
            + activity * w.activityWeight
            + reputation * w.reputationWeight
            + consistency * w.consistencyWeight
        ) // 100

    def get_weights(self) -> ScoreWeights:
        return self.weights

    # ============ Metrics ============

    @external("updateActivityMetrics(address,uint256,uint256,uint256,uint256)")
    def update_activity_metrics(
        self,
        user: str,
        transaction_count: int,
        unique_contracts: int,
        account_age: int,
        gas_spent: int,
    ) -> None:
        self._only_owner_or(self.metric_updaters)
        user = checksum(user)
        self.metrics[user] = UserMetrics(
            transactionCount=transaction_count,
            uniqueContracts=unique_contracts,
            accountAge=account_age,
            gasSpent=gas_spent,
            lastUpdated=self.now,
        )
        self.emit("ActivityMetricsUpdated", user=user, transactionCount=transaction_count)

    def get_user_metrics(self, user: str) -> UserMetrics:
        return self.metrics.get(checksum(user), UserMetrics())

    def get_activity_score(self, user: str) -> int:
        return activity_score(self.get_user_metrics(user))

    # ============ Trust score ============

    @external("calculateTrustScore(address,uint256,uint256,uint256)")
    def calculate_trust_score(self, user: str, oracle_score: int, reputation_score: int, consistency_score: int) -> int:
        """Compute and store the user's score components; returns the final score."""
        self._only_owner_or(self.metric_updaters)
        _check_score(oracle_score, reputation_score, consistency_score)
        user = checksum(user)
        activity = self.get_activity_score(user)
        final = self.calculate_score(oracle_score, activity, reputation_score, consistency_score)

        self.scores[user] = ScoreComponents(
            oracleScore=oracle_score,
            activityScore=activity,
            reputationScore=reputation_score,
            consistencyScore=consistency_score,
            finalScore=final,
            lastCalculated=self.now,
        )
        self.emit("TrustScoreCalculated", user=user, finalScore=final, timestamp=self.now)
        return final

    @external("pushScoreToRegistry(address)")
    def push_score_to_registry(self, user: str) -> None:
        """Write the stored final score into the identity registry."""
        self._only_owner_or(self.metric_updaters)
        if not self.identity_registry:
            raise InvalidScore(user)
        user = checksum(user)
        self._call(self.identity_registry, "update_trust_score", user, self.get_score_components(user).finalScore)

    def get_score_components(self, user: str) -> ScoreComponents:
        return self.scores.get(checksum(user), ScoreComponents())

    def get_trust_level(self, user: str) -> str:
        return trust_level(self.get_score_components(user).finalScore)

    def meets_minimum_trust(self, user: str, minimum: int) -> bool:
        return self.get_score_components(user).finalScore >= minimum

    # ============ Admin ============

    @external("updateWeights(uint256,uint256,uint256,uint256)")
    def update_weights(self, oracle: int, activity: int, reputation: int, consistency: int) -> None:
        self._only_owner()
        weights = ScoreWeights(oracle, activity, reputation, consistency)
        if weights.total() != 100:
            raise WeightsSumNot100(weights.total())
        self.weights = weights
        self.emit("WeightsUpdated", oracle=oracle, activity=activity,
                  reputation=reputation, consistency=consistency)

    @external("setMetricUpdater(address,bool)")
    def set_metric_updater(self, updater: str, authorized: bool) -> None:
        self._only_owner()
        updater = checksum(updater)
        if authorized:
            self.metric_updaters.grant(updater)
        else:
            self.metric_updaters.revoke(updater)

    @external("setIdentityRegistry(address)")
    def set_identity_registry(self, registry: str) -> None:
        self._only_owner()
        registry = checksum(registry)
        self.identity_registry = None if registry == ZERO_ADDRESS else registry

    @external("setOracleAdapter(address)")
    def set_oracle_adapter(self, adapter: str) -> None:
        self._only_owner()
        adapter = checksum(adapter)
        self.oracle_adapter = None if adapter == ZERO_ADDRESS else adapter
