"""Tests for RateLimiter: fixed windows, cooldowns and list overrides."""

import pytest

from verichain.services.errors import (
    AddressBlacklistedError,
    ContractIsPaused,
    InvalidOperationType,
    InvalidRateLimitConfig,
    RateLimitExceededError,
    Unauthorized,
)
from verichain.services.ledger import MAX_UINT256
from verichain.services.rate_limiter import DAY, HOUR, OperationType

from tests.conftest import assert_reverted


def record(ledger, sender, limiter, user, op):
    return ledger.transact(sender.address, limiter, "record_request", user.address, op)


class TestDefaults:
    def test_identity_create_limit(self, rate_limiter) -> None:
        limit = rate_limiter.get_rate_limit(OperationType.IDENTITY_CREATE)
        assert limit.maxRequests == 1
        assert limit.windowDuration == DAY
        assert limit.cooldownPeriod == DAY

    def test_verification_request_limit(self, rate_limiter) -> None:
        limit = rate_limiter.get_rate_limit(OperationType.VERIFICATION_REQUEST)
        assert limit.maxRequests == 20
        assert limit.windowDuration == HOUR

    def test_fresh_user_has_full_quota(self, ledger, rate_limiter, user1) -> None:
        allowed, remaining = ledger.call(
            rate_limiter, "check_rate_limit", user1.address, OperationType.CREDENTIAL_UPDATE
        )
        assert allowed is True
        assert remaining == 5

    def test_unknown_operation(self, rate_limiter) -> None:
        with pytest.raises(InvalidOperationType):
            rate_limiter.get_rate_limit(9)


class TestRecording:
    def test_requires_authorized_caller(self, ledger, rate_limiter, user1) -> None:
        receipt = record(ledger, user1, rate_limiter, user1, OperationType.IDENTITY_CREATE)
        assert_reverted(receipt, Unauthorized)

    def test_authorized_caller_may_record(self, ledger, owner, rate_limiter, user1, user2) -> None:
        ledger.transact(owner.address, rate_limiter, "set_authorized_caller", user2.address, True).unwrap()
        receipt = record(ledger, user2, rate_limiter, user1, OperationType.CREDENTIAL_UPDATE)
        assert receipt.ok
        assert receipt.event("RequestRecorded").args["count"] == 1

    def test_counts_down_remaining(self, ledger, owner, rate_limiter, user1) -> None:
        for _ in range(3):
            record(ledger, owner, rate_limiter, user1, OperationType.VERIFICATION_REQUEST).unwrap()
        _, remaining = rate_limiter.check_rate_limit(user1.address, OperationType.VERIFICATION_REQUEST)
        assert remaining == 17

    def test_limits_are_per_operation(self, ledger, owner, rate_limiter, user1) -> None:
        record(ledger, owner, rate_limiter, user1, OperationType.IDENTITY_CREATE).unwrap()
        assert record(ledger, owner, rate_limiter, user1, OperationType.CREDENTIAL_UPDATE).ok

    def test_recording_follows_ownership_transfer(self, ledger, owner, rate_limiter, user1, user2) -> None:
        ledger.transact(owner.address, rate_limiter, "transfer_ownership", user2.address).unwrap()

        assert record(ledger, user2, rate_limiter, user1, OperationType.CREDENTIAL_UPDATE).ok
        receipt = record(ledger, owner, rate_limiter, user1, OperationType.CREDENTIAL_UPDATE)
        assert_reverted(receipt, Unauthorized)

    def test_owner_is_not_listed_as_caller(self, rate_limiter, owner) -> None:
        assert owner.address not in rate_limiter.authorized_callers


class TestWindowAndCooldown:
    def test_request_over_limit_reverts_and_cooldown_is_set(self, ledger, owner, rate_limiter, user1) -> None:
        first = record(ledger, owner, rate_limiter, user1, OperationType.IDENTITY_CREATE)
        assert first.ok
        assert first.event("CooldownStarted").args["until"] == first.timestamp + DAY

        second = record(ledger, owner, rate_limiter, user1, OperationType.IDENTITY_CREATE)
        assert_reverted(second, RateLimitExceededError)
        assert second.error.params[2] == first.timestamp + DAY

        info = rate_limiter.get_user_rate_info(user1.address, OperationType.IDENTITY_CREATE)
        assert info.requestCount == 1
        assert info.cooldownUntil == first.timestamp + DAY

    def test_twenty_first_verification_request_reverts(self, ledger, owner, rate_limiter, user1) -> None:
        op = OperationType.VERIFICATION_REQUEST
        for _ in range(20):
            record(ledger, owner, rate_limiter, user1, op).unwrap()
        assert_reverted(record(ledger, owner, rate_limiter, user1, op), RateLimitExceededError)
        assert rate_limiter.check_rate_limit(user1.address, op) == (False, 0)

    def test_requests_succeed_again_after_cooldown(self, ledger, owner, rate_limiter, user1) -> None:
        op = OperationType.IDENTITY_CREATE
        record(ledger, owner, rate_limiter, user1, op).unwrap()
        assert not record(ledger, owner, rate_limiter, user1, op).ok

        ledger.advance_time(DAY)
        receipt = record(ledger, owner, rate_limiter, user1, op)
        assert receipt.ok
        assert rate_limiter.get_user_rate_info(user1.address, op).requestCount == 1

    def test_window_resets_without_cooldown(self, ledger, owner, rate_limiter, user1) -> None:
        op = OperationType.CREDENTIAL_UPDATE
        ledger.transact(owner.address, rate_limiter, "set_rate_limit", op, 2, HOUR, 0).unwrap()
        record(ledger, owner, rate_limiter, user1, op).unwrap()
        record(ledger, owner, rate_limiter, user1, op).unwrap()
        assert_reverted(record(ledger, owner, rate_limiter, user1, op), RateLimitExceededError)

        ledger.advance_time(HOUR)
        assert record(ledger, owner, rate_limiter, user1, op).ok

    def test_reset_user_limit(self, ledger, owner, rate_limiter, user1) -> None:
        op = OperationType.IDENTITY_CREATE
        record(ledger, owner, rate_limiter, user1, op).unwrap()
        ledger.transact(owner.address, rate_limiter, "reset_user_limit", user1.address, op).unwrap()
        assert record(ledger, owner, rate_limiter, user1, op).ok


class TestOverrides:
    def test_whitelisted_user_is_unlimited(self, ledger, owner, rate_limiter, user1) -> None:
        ledger.transact(owner.address, rate_limiter, "add_to_whitelist", user1.address).unwrap()
        op = OperationType.IDENTITY_CREATE
        for _ in range(3):
            assert record(ledger, owner, rate_limiter, user1, op).ok
        assert rate_limiter.check_rate_limit(user1.address, op) == (True, MAX_UINT256)

    def test_blacklist_wins_over_whitelist(self, ledger, owner, rate_limiter, user1) -> None:
        ledger.transact(owner.address, rate_limiter, "add_to_whitelist", user1.address).unwrap()
        ledger.transact(owner.address, rate_limiter, "add_to_blacklist", user1.address).unwrap()
        receipt = record(ledger, owner, rate_limiter, user1, OperationType.ORACLE_REQUEST)
        assert_reverted(receipt, AddressBlacklistedError)
        assert rate_limiter.check_rate_limit(user1.address, OperationType.ORACLE_REQUEST) == (False, 0)

    def test_paused_limiter_rejects_requests(self, ledger, owner, rate_limiter, user1) -> None:
        ledger.transact(owner.address, rate_limiter, "pause").unwrap()
        receipt = record(ledger, owner, rate_limiter, user1, OperationType.ORACLE_REQUEST)
        assert_reverted(receipt, ContractIsPaused)

        ledger.transact(owner.address, rate_limiter, "unpause").unwrap()
        assert record(ledger, owner, rate_limiter, user1, OperationType.ORACLE_REQUEST).ok


class TestAdmin:
    def test_set_rate_limit(self, ledger, owner, rate_limiter) -> None:
        op = OperationType.ORACLE_REQUEST
        receipt = ledger.transact(owner.address, rate_limiter, "set_rate_limit", op, 7, 60, 30)
        assert receipt.ok
        assert rate_limiter.get_rate_limit(op).maxRequests == 7

    def test_set_rate_limit_rejects_zero(self, ledger, owner, rate_limiter) -> None:
        receipt = ledger.transact(owner.address, rate_limiter, "set_rate_limit", 0, 0, 60, 0)
        assert_reverted(receipt, InvalidRateLimitConfig)

    def test_admin_is_owner_only(self, ledger, user1, rate_limiter) -> None:
        receipt = ledger.transact(user1.address, rate_limiter, "add_to_whitelist", user1.address)
        assert_reverted(receipt, Unauthorized)
