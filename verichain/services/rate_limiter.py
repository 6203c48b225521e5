"""
VeriChain Rate Limiter
Per-user, per-operation request counting with cooldown penalties.

Windows are fixed: a window resets completely once
``now >= windowStart + windowDuration``; counts do not decay in between.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from verichain.services.access import RoleTable
from verichain.services.errors import (
    AddressBlacklistedError,
    ContractIsPaused,
    InvalidOperationType,
    InvalidRateLimitConfig,
    RateLimitExceededError,
)
from verichain.services.ledger import MAX_UINT256, Contract, checksum, external

logger = logging.getLogger(__name__)


class OperationType(enum.IntEnum):
    """Rate-limited operation kinds."""
    IDENTITY_CREATE = 0
    CREDENTIAL_UPDATE = 1
    VERIFICATION_REQUEST = 2
    ORACLE_REQUEST = 3
    TRUST_SCORE_UPDATE = 4
    PROOF_VERIFICATION = 5


@dataclass
class RateLimitConfig:
    maxRequests: int
    windowDuration: int
    cooldownPeriod: int


@dataclass
class UserRateInfo:
    requestCount: int = 0
    windowStart: int = 0
    lastRequest: int = 0
    cooldownUntil: int = 0


HOUR = 3600
DAY = 24 * HOUR

DEFAULT_LIMITS = {
    OperationType.IDENTITY_CREATE: RateLimitConfig(1, DAY, DAY),
    OperationType.CREDENTIAL_UPDATE: RateLimitConfig(5, HOUR, 30 * 60),
    OperationType.VERIFICATION_REQUEST: RateLimitConfig(20, HOUR, 10 * 60),
    OperationType.ORACLE_REQUEST: RateLimitConfig(3, HOUR, HOUR),
    OperationType.TRUST_SCORE_UPDATE: RateLimitConfig(10, HOUR, 15 * 60),
    OperationType.PROOF_VERIFICATION: RateLimitConfig(10, HOUR, 10 * 60),
}


def _operation(op) -> OperationType:
    try:
        return OperationType(op)
    except ValueError:
        raise InvalidOperationType(op) from None


class RateLimiter(Contract):
    """Anti-abuse counters consulted by the other protocol contracts."""

    def __init__(self, ledger, address, owner=None):
        super().__init__(ledger, address, owner)
        self.paused = False
        self.limits: Dict[OperationType, RateLimitConfig] = {
            op: RateLimitConfig(c.maxRequests, c.windowDuration, c.cooldownPeriod)
            for op, c in DEFAULT_LIMITS.items()
        }
        self.user_info: Dict[Tuple[str, OperationType], UserRateInfo] = {}
        self.whitelist = RoleTable("whitelist")
        self.blacklist = RoleTable("blacklist")
        self.authorized_callers = RoleTable("authorized_callers")

    # ============ Views ============

    def get_rate_limit(self, op) -> RateLimitConfig:
        return self.limits[_operation(op)]

    def get_user_rate_info(self, user: str, op) -> UserRateInfo:
        return self.user_info.get((checksum(user), _operation(op)), UserRateInfo())

    def is_whitelisted(self, user: str) -> bool:
        return checksum(user) in self.whitelist

    def is_blacklisted(self, user: str) -> bool:
        return checksum(user) in self.blacklist

    def check_rate_limit(self, user: str, op) -> Tuple[bool, int]:
        """
        Report whether ``user`` may perform ``op`` now.

        Returns:
            (allowed, remaining) where remaining is MAX_UINT256 for
            whitelisted users
        """
        user, op = checksum(user), _operation(op)
        if user in self.blacklist:
            return False, 0
        if user in self.whitelist:
            return True, MAX_UINT256
        if self.paused:
            return False, 0

        limit = self.limits[op]
        info = self.user_info.get((user, op))
        if info is None:
            return True, limit.maxRequests
        if self.now < info.cooldownUntil:
            return False, 0
        if self.now >= info.windowStart + limit.windowDuration:
            return True, limit.maxRequests

        remaining = max(limit.maxRequests - info.requestCount, 0)
        return remaining > 0, remaining

    # ============ Recording ============

    @external("recordRequest(address,uint8)")
    def record_request(self, user: str, op) -> bool:
        """
        Count one request of ``op`` for ``user``.

        The request that fills the window starts the cooldown, so the
        next request inside the cooldown reverts with RateLimitExceededError.
        """
        self._only_owner_or(self.authorized_callers)
        user, op = checksum(user), _operation(op)

        if user in self.blacklist:
            raise AddressBlacklistedError(user)
        if self.paused:
            raise ContractIsPaused()
        if user in self.whitelist:
            return True

        limit = self.limits[op]
        info = self.user_info.setdefault((user, op), UserRateInfo())

        if self.now < info.cooldownUntil:
            raise RateLimitExceededError(user, int(op), info.cooldownUntil)

        if self.now >= info.windowStart + limit.windowDuration:
            info.requestCount = 0
            info.windowStart = self.now

        if info.requestCount >= limit.maxRequests:
            raise RateLimitExceededError(user, int(op), info.cooldownUntil)

        info.requestCount += 1
        info.lastRequest = self.now
        self.emit("RequestRecorded", user=user, operation=int(op), count=info.requestCount)

        if info.requestCount >= limit.maxRequests and limit.cooldownPeriod:
            info.cooldownUntil = self.now + limit.cooldownPeriod
            self.emit("CooldownStarted", user=user, operation=int(op), until=info.cooldownUntil)
            logger.info("Rate limit reached for %s on %s, cooldown until %s", user, op.name, info.cooldownUntil)

        return True

    # ============ Admin ============

    @external("setRateLimit(uint8,uint256,uint256,uint256)")
    def set_rate_limit(self, op, max_requests: int, window_duration: int, cooldown_period: int) -> None:
        self._only_owner()
        op = _operation(op)
        if max_requests <= 0 or window_duration <= 0 or cooldown_period < 0:
            raise InvalidRateLimitConfig(max_requests, window_duration, cooldown_period)
        self.limits[op] = RateLimitConfig(max_requests, window_duration, cooldown_period)
        self.emit(
            "RateLimitUpdated",
            operation=int(op),
            maxRequests=max_requests,
            windowDuration=window_duration,
            cooldownPeriod=cooldown_period,
        )

    @external("resetUserLimit(address,uint8)")
    def reset_user_limit(self, user: str, op) -> None:
        self._only_owner()
        self.user_info.pop((checksum(user), _operation(op)), None)
        self.emit("UserLimitReset", user=checksum(user), operation=int(op))

    @external("addToWhitelist(address)")
    def add_to_whitelist(self, user: str) -> None:
        self._only_owner()
        user = checksum(user)
        self.whitelist.grant(user)
        self.emit("AddressWhitelisted", user=user)

    @external("removeFromWhitelist(address)")
    def remove_from_whitelist(self, user: str) -> None:
        self._only_owner()
        user = checksum(user)
        self.whitelist.revoke(user)
        self.emit("AddressRemovedFromWhitelist", user=user)

    @external("addToBlacklist(address)")
    def add_to_blacklist(self, user: str) -> None:
        self._only_owner()
        user = checksum(user)
        self.blacklist.grant(user)
        self.emit("AddressBlacklisted", user=user)

    @external("removeFromBlacklist(address)")
    def remove_from_blacklist(self, user: str) -> None:
        self._only_owner()
        user = checksum(user)
        self.blacklist.revoke(user)
        self.emit("AddressRemovedFromBlacklist", user=user)

    @external("setAuthorizedCaller(address,bool)")
    def set_authorized_caller(self, caller: str, authorized: bool) -> None:
        self._only_owner()
        caller = checksum(caller)
        if authorized:
            self.authorized_callers.grant(caller)
        else:
            self.authorized_callers.revoke(caller)
        self.emit("AuthorizedCallerUpdated", caller=caller, authorized=authorized)

    @external("pause()")
    def pause(self) -> None:
        self._only_owner()
        self.paused = True
        self.emit("ContractPaused", account=self.msg.sender)

    @external("unpause()")
    def unpause(self) -> None:
        self._only_owner()
        self.paused = False
        self.emit("ContractUnpaused", account=self.msg.sender)
