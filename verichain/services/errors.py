"""
VeriChain Revert Conditions
Typed failure conditions raised by contracts. Each condition is tagged with
an ErrorKind so callers can branch on the category without string matching.
"""

import enum


class ErrorKind(str, enum.Enum):
    """Category of a revert condition."""
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    UNAUTHORIZED = "unauthorized"
    INVALID_PARAMETER = "invalid_parameter"
    EXPIRED = "expired"
    REVOKED = "revoked"
    INSUFFICIENT_QUORUM = "insufficient_quorum"
    TIMELOCK = "timelock_not_elapsed"
    PAUSED = "paused"
    RATE_LIMITED = "rate_limited"
    EXECUTION_FAILED = "execution_failed"


class Revert(Exception):
    """
    Base class for contract failures.

    A revert aborts the whole transaction; the ledger restores every piece
    of state touched since the transaction started.
    """

    kind = ErrorKind.INVALID_PARAMETER
    message = "Transaction reverted"

    def __init__(self, *params):
        self.params = params
        rendered = ", ".join(repr(p) for p in params)
        super().__init__(f"{self.name}({rendered})")

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            "error": self.name,
            "kind": self.kind.value,
            "message": self.message,
            "args": ["0x" + p.hex() if isinstance(p, bytes) else p for p in self.params],
        }


# ============ Generic ============

class Unauthorized(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Caller is not allowed to perform this action"


class ContractIsPaused(Revert):
    kind = ErrorKind.PAUSED
    message = "Contract is paused"


class InvalidParameter(Revert):
    message = "Invalid parameter"


class InsufficientBalance(Revert):
    message = "Insufficient balance for value transfer"


class UnknownFunction(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "Target does not implement the called function"


# ============ IdentityRegistry ============

class IdentityAlreadyExists(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "An identity already exists for this address"


class IdentityNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "No identity registered for this address"


class InvalidDataURI(Revert):
    message = "Encrypted data URI must not be empty"


class InvalidTrustScore(Revert):
    message = "Trust score must be between 0 and 100"


class NotAuthorizedVerifier(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Caller is not an authorized verifier"


class SelfVerificationNotAllowed(Revert):
    message = "You cannot request verification of your own identity"


class RequestNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "Verification request not found"


class RequestAlreadyFulfilled(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Verification request was already fulfilled"


class DIDCollision(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Derived DID is already assigned"


# ============ MultiSigAdmin ============

class NotAdmin(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Caller is not an admin"


class OnlySelf(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Only callable through an executed proposal"


class InvalidAdminCount(Revert):
    message = "At least one admin is required"


class InvalidAdminAddress(Revert):
    message = "Admin address is zero or duplicated"


class InvalidRequiredApprovals(Revert):
    message = "Required approvals must be between 1 and the admin count"


class InvalidTimeLockDelay(Revert):
    message = "Time lock delay is outside the allowed bounds"


class InvalidTarget(Revert):
    message = "Proposal target must not be the zero address"


class ProposalNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "Proposal not found"


class ProposalAlreadyExecuted(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Proposal was already executed"


class ProposalAlreadyCancelled(Revert):
    kind = ErrorKind.REVOKED
    message = "Proposal was cancelled"


class AlreadyApproved(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "You already approved this proposal"


class NotApproved(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "You have not approved this proposal"


class InsufficientApprovals(Revert):
    kind = ErrorKind.INSUFFICIENT_QUORUM
    message = "Proposal does not have enough approvals"


class TimeLockNotPassed(Revert):
    kind = ErrorKind.TIMELOCK
    message = "Proposal time lock has not elapsed yet"


class ExecutionFailed(Revert):
    kind = ErrorKind.EXECUTION_FAILED
    message = "Proposal call failed"


class AdminAlreadyExists(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Address is already an admin"


# ============ RateLimiter ============

class RateLimitExceededError(Revert):
    kind = ErrorKind.RATE_LIMITED
    message = "Too many requests, please wait before trying again"


class AddressBlacklistedError(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Address is blacklisted"


class InvalidRateLimitConfig(Revert):
    message = "Rate limit needs a positive request count and window"


class InvalidOperationType(Revert):
    message = "Unknown operation type"


# ============ OracleAdapter ============

class OracleAlreadyExists(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "An oracle is already registered for this asset"


class OracleNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "No oracle registered for this asset"


class StalePrice(Revert):
    kind = ErrorKind.EXPIRED
    message = "Price feed data is stale"


class InvalidPrice(Revert):
    message = "Price feed returned a non-positive price"


class ArrayLengthMismatch(Revert):
    message = "Holding amounts and durations must have the same length"


# ============ TrustScoreCalculator ============

class WeightsSumNot100(Revert):
    message = "Score weights must sum to 100"


class InvalidScore(Revert):
    message = "Score must be between 0 and 100"


# ============ ZKVerifier ============

class CredentialAlreadyExists(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "A credential of this type is already committed"


class CredentialNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "Credential not found"


class CredentialRevoked(Revert):
    kind = ErrorKind.REVOKED
    message = "Credential has been revoked"


class CredentialExpired(Revert):
    kind = ErrorKind.EXPIRED
    message = "Credential has expired"


class InvalidExpiration(Revert):
    message = "Expiration must be zero or in the future"


class InvalidProof(Revert):
    message = "Proof is malformed"


class ProofAlreadyUsed(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Proof was already used"


class NotTrustedIssuer(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Caller is not a trusted issuer"


class CredentialTypeNotAllowed(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Issuer is not allowed to issue this credential type"


class IssuerAlreadyExists(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Issuer is already trusted"


class IssuerNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "Issuer is not trusted"


# ============ CrossChainReputation ============

class ChainAlreadySupported(Revert):
    kind = ErrorKind.ALREADY_EXISTS
    message = "Chain is already supported"


class ChainNotSupported(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "Chain is not supported"


class InvalidWeight(Revert):
    message = "Weight must not exceed 10000 basis points"


class UnauthorizedBridge(Revert):
    kind = ErrorKind.UNAUTHORIZED
    message = "Caller is not the configured bridge for this chain"


class PriceFeedUnavailable(Revert):
    kind = ErrorKind.EXECUTION_FAILED
    message = "Price feed could not be read"


class RoundNotFound(Revert):
    kind = ErrorKind.NOT_FOUND
    message = "No data present for the requested round"
