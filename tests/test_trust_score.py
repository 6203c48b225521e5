"""Tests for TrustScoreCalculator."""

import pytest

from verichain.services.errors import InvalidScore, NotAuthorizedVerifier, Unauthorized, WeightsSumNot100
from verichain.services.trust_score import UserMetrics, activity_score, trust_level

from tests.conftest import assert_reverted


def full_metrics(ledger, owner, calculator, user):
    ledger.transact(
        owner.address, calculator, "update_activity_metrics", user.address, 1000, 20, 365, 10 ** 18
    ).unwrap()


class TestWeights:
    def test_default_weights(self, calculator) -> None:
        weights = calculator.get_weights()
        assert (weights.oracleWeight, weights.activityWeight,
                weights.reputationWeight, weights.consistencyWeight) == (40, 30, 20, 10)

    def test_calculate_score(self, calculator) -> None:
        assert calculator.calculate_score(80, 60, 50, 70) == 67
        assert calculator.calculate_score(100, 100, 100, 100) == 100
        assert calculator.calculate_score(0, 0, 0, 0) == 0

    def test_update_weights(self, ledger, owner, calculator) -> None:
        receipt = ledger.transact(owner.address, calculator, "update_weights", 25, 25, 25, 25)
        assert receipt.ok
        assert receipt.event("WeightsUpdated").args["oracle"] == 25
        assert calculator.calculate_score(80, 60, 50, 70) == 65

    def test_weights_must_sum_to_100(self, ledger, owner, calculator) -> None:
        receipt = ledger.transact(owner.address, calculator, "update_weights", 50, 30, 20, 10)
        assert_reverted(receipt, WeightsSumNot100)
        assert calculator.get_weights().oracleWeight == 40

    def test_update_weights_is_owner_only(self, ledger, user1, calculator) -> None:
        receipt = ledger.transact(user1.address, calculator, "update_weights", 25, 25, 25, 25)
        assert_reverted(receipt, Unauthorized)


class TestActivity:
    def test_activity_components(self) -> None:
        assert activity_score(UserMetrics()) == 0
        assert activity_score(UserMetrics(transactionCount=1000)) == 33
        assert activity_score(UserMetrics(uniqueContracts=20)) == 33
        assert activity_score(UserMetrics(accountAge=365)) == 34
        assert activity_score(UserMetrics(transactionCount=1000, uniqueContracts=20, accountAge=365)) == 100

    def test_inputs_are_capped(self) -> None:
        metrics = UserMetrics(transactionCount=50_000, uniqueContracts=500, accountAge=3650)
        assert activity_score(metrics) == 100

    def test_partial_inputs_round_together(self) -> None:
        metrics = UserMetrics(transactionCount=500, uniqueContracts=10)
        assert activity_score(metrics) == 33

    def test_metrics_require_updater(self, ledger, user1, calculator) -> None:
        receipt = ledger.transact(user1.address, calculator, "update_activity_metrics", user1.address, 1, 1, 1, 1)
        assert_reverted(receipt, Unauthorized)

    def test_granted_updater(self, ledger, owner, user1, user2, calculator) -> None:
        ledger.transact(owner.address, calculator, "set_metric_updater", user2.address, True).unwrap()
        receipt = ledger.transact(user2.address, calculator, "update_activity_metrics", user1.address, 10, 2, 30, 0)
        assert receipt.ok
        metrics = calculator.get_user_metrics(user1.address)
        assert metrics.transactionCount == 10
        assert metrics.lastUpdated == receipt.timestamp

    def test_updater_role_follows_ownership_transfer(self, ledger, owner, user1, user2, calculator) -> None:
        ledger.transact(owner.address, calculator, "transfer_ownership", user2.address).unwrap()

        assert ledger.transact(user2.address, calculator, "update_activity_metrics", user1.address, 10, 2, 30, 0).ok
        assert ledger.transact(user2.address, calculator, "calculate_trust_score", user1.address, 50, 50, 50).ok
        receipt = ledger.transact(owner.address, calculator, "update_activity_metrics", user1.address, 1, 1, 1, 1)
        assert_reverted(receipt, Unauthorized)
        receipt = ledger.transact(owner.address, calculator, "calculate_trust_score", user1.address, 50, 50, 50)
        assert_reverted(receipt, Unauthorized)


class TestTrustScore:
    def test_calculate_trust_score(self, ledger, owner, user1, calculator) -> None:
        full_metrics(ledger, owner, calculator, user1)
        receipt = ledger.transact(owner.address, calculator, "calculate_trust_score", user1.address, 80, 50, 70)

        assert receipt.unwrap() == 79
        components = calculator.get_score_components(user1.address)
        assert components.activityScore == 100
        assert components.finalScore == 79
        assert components.lastCalculated == receipt.timestamp
        assert receipt.event("TrustScoreCalculated").args["finalScore"] == 79

    def test_component_out_of_range(self, ledger, owner, user1, calculator) -> None:
        receipt = ledger.transact(owner.address, calculator, "calculate_trust_score", user1.address, 101, 0, 0)
        assert_reverted(receipt, InvalidScore)

    @pytest.mark.parametrize("score,level", [
        (0, "LOW"),
        (30, "LOW"),
        (31, "MEDIUM"),
        (60, "MEDIUM"),
        (61, "HIGH"),
        (85, "HIGH"),
        (86, "ELITE"),
        (100, "ELITE"),
    ])
    def test_trust_level_boundaries(self, score, level) -> None:
        assert trust_level(score) == level

    def test_level_and_minimum(self, ledger, owner, user1, calculator) -> None:
        full_metrics(ledger, owner, calculator, user1)
        ledger.transact(owner.address, calculator, "calculate_trust_score", user1.address, 80, 50, 70).unwrap()
        assert calculator.get_trust_level(user1.address) == "HIGH"
        assert calculator.meets_minimum_trust(user1.address, 79)
        assert not calculator.meets_minimum_trust(user1.address, 80)

    def test_unscored_user(self, calculator, user1) -> None:
        assert calculator.get_trust_level(user1.address) == "LOW"
        assert calculator.get_score_components(user1.address).finalScore == 0


class TestRegistryIntegration:
    def test_push_score_verifies_identity(self, ledger, owner, user1, calculator, registry) -> None:
        ledger.transact(owner.address, registry, "set_trust_score_calculator", calculator.address).unwrap()
        ledger.transact(owner.address, calculator, "set_identity_registry", registry.address).unwrap()
        ledger.transact(user1.address, registry, "create_identity", "ipfs://QmProfile").unwrap()

        full_metrics(ledger, owner, calculator, user1)
        ledger.transact(owner.address, calculator, "calculate_trust_score", user1.address, 80, 50, 70).unwrap()
        receipt = ledger.transact(owner.address, calculator, "push_score_to_registry", user1.address)

        assert receipt.ok
        assert receipt.event("IdentityVerified").args["verifier"] == calculator.address
        assert registry.get_trust_score(user1.address) == 79
        assert registry.get_identity(user1.address).verified

    def test_push_requires_calculator_authorisation(self, ledger, owner, user1, calculator, registry) -> None:
        ledger.transact(owner.address, calculator, "set_identity_registry", registry.address).unwrap()
        ledger.transact(user1.address, registry, "create_identity", "ipfs://QmProfile").unwrap()
        receipt = ledger.transact(owner.address, calculator, "push_score_to_registry", user1.address)
        assert_reverted(receipt, NotAuthorizedVerifier)

    def test_push_without_registry(self, ledger, owner, user1, calculator) -> None:
        receipt = ledger.transact(owner.address, calculator, "push_score_to_registry", user1.address)
        assert_reverted(receipt, InvalidScore)
