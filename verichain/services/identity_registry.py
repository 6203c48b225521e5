"""
VeriChain Identity Registry
One identity per address: DID, trust score, encrypted credential reference
and peer verification requests.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional

from web3 import Web3

from verichain.config import config
from verichain.services.access import RoleTable, authorize
from verichain.services.errors import (
    ContractIsPaused,
    DIDCollision,
    IdentityAlreadyExists,
    IdentityNotFound,
    InvalidDataURI,
    InvalidTrustScore,
    NotAuthorizedVerifier,
    RequestAlreadyFulfilled,
    RequestNotFound,
    SelfVerificationNotAllowed,
    Unauthorized,
)
from verichain.services.ledger import ZERO_ADDRESS, Contract, checksum, external
from verichain.services.rate_limiter import OperationType

logger = logging.getLogger(__name__)


MAX_TRUST_SCORE = 100


@dataclass
class Identity:
    did: bytes
    trustScore: int
    createdAt: int
    lastUpdated: int
    verified: bool
    encryptedDataURI: str
    verificationCount: int


@dataclass
class VerificationRequest:
    id: int
    requester: str
    subject: str
    requestedAt: int
    fulfilled: bool
    credentialType: str


def derive_did(user: str, timestamp: int, entropy: bytes) -> bytes:
    """DID = keccak256(address, timestamp, entropy)."""
    return bytes(Web3.solidity_keccak(["address", "uint256", "bytes32"], [user, timestamp, entropy]))


class IdentityRegistry(Contract):
    """Registry of decentralized identities."""

    def __init__(self, ledger, address, owner: Optional[str] = None, verification_threshold: Optional[int] = None):
        super().__init__(ledger, address, owner)
        self.paused = False
        self.verification_threshold = (
            verification_threshold if verification_threshold is not None else config.VERIFICATION_THRESHOLD
        )
        self.identities: Dict[str, Identity] = {}
        self.did_to_address: Dict[bytes, str] = {}
        self.verification_requests: List[VerificationRequest] = []
        self.authorized_verifiers = RoleTable("authorized_verifiers")
        self.trust_score_calculator: Optional[str] = None
        self.oracle_adapter: Optional[str] = None
        self.rate_limiter: Optional[str] = None

    # ============ Guards ============

    def _when_not_paused(self) -> None:
        if self.paused:
            raise ContractIsPaused()

    def _require_identity(self, user: str) -> Identity:
        identity = self.identities.get(user)
        if identity is None:
            raise IdentityNotFound(user)
        return identity

    def _score_writers(self) -> RoleTable:
        writers = RoleTable("score_writers", self.authorized_verifiers.members())
        if self.trust_score_calculator:
            writers.grant(self.trust_score_calculator)
        return writers

    # ============ Views ============

    def has_identity(self, user: str) -> bool:
        return checksum(user) in self.identities

    def get_identity(self, user: str) -> Identity:
        return self._require_identity(checksum(user))

    def get_trust_score(self, user: str) -> int:
        return self._require_identity(checksum(user)).trustScore

    def get_address_from_did(self, did: bytes) -> str:
        return self.did_to_address.get(bytes(did), ZERO_ADDRESS)

    def total_identities(self) -> int:
        return len(self.identities)

    def is_verifier(self, account: str) -> bool:
        return checksum(account) in self.authorized_verifiers

    def get_verification_request(self, request_id: int) -> VerificationRequest:
        if request_id < 0 or request_id >= len(self.verification_requests):
            raise RequestNotFound(request_id)
        return self.verification_requests[request_id]

    def get_requests_for(self, subject: str) -> List[VerificationRequest]:
        subject = checksum(subject)
        return [r for r in self.verification_requests if r.subject == subject]

    # ============ Identity lifecycle ============

    @external("createIdentity(string)")
    def create_identity(self, encrypted_data_uri: str) -> bytes:
        """
        Register the caller's identity.

        The DID mixes the caller, block time and CSPRNG entropy; it is
        unique per registry and never reassigned.
        """
        self._when_not_paused()
        user = self.msg.sender
        if user in self.identities:
            raise IdentityAlreadyExists(user)
        if not encrypted_data_uri:
            raise InvalidDataURI()

        if self.rate_limiter:
            self._call(self.rate_limiter, "record_request", user, OperationType.IDENTITY_CREATE)

        did = derive_did(user, self.now, secrets.token_bytes(32))
        if did in self.did_to_address:
            raise DIDCollision(did)

        self.identities[user] = Identity(
            did=did,
            trustScore=0,
            createdAt=self.now,
            lastUpdated=self.now,
            verified=False,
            encryptedDataURI=encrypted_data_uri,
            verificationCount=0,
        )
        self.did_to_address[did] = user
        self.emit("IdentityCreated", user=user, did=did, timestamp=self.now)
        logger.info("Identity created for %s", user)
        return did

    @external("updateCredentials(string)")
    def update_credentials(self, new_data_uri: str) -> None:
        self._when_not_paused()
        identity = self._require_identity(self.msg.sender)
        if not new_data_uri:
            raise InvalidDataURI()
        identity.encryptedDataURI = new_data_uri
        identity.lastUpdated = self.now
        self.emit("CredentialsUpdated", user=self.msg.sender, newDataURI=new_data_uri, timestamp=self.now)

    @external("updateTrustScore(address,uint256)")
    def update_trust_score(self, user: str, new_score: int) -> None:
        """
        Set a trust score. Reaching the verification threshold marks the
        identity verified; the flag is never cleared afterwards.
        """
        self._when_not_paused()
        authorize(self.msg.sender, self._score_writers(), error=NotAuthorizedVerifier)
        user = checksum(user)
        identity = self._require_identity(user)
        if new_score < 0 or new_score > MAX_TRUST_SCORE:
            raise InvalidTrustScore(new_score)

        old_score = identity.trustScore
        identity.trustScore = new_score
        identity.lastUpdated = self.now
        self.emit("TrustScoreUpdated", user=user, oldScore=old_score, newScore=new_score, timestamp=self.now)

        if new_score >= self.verification_threshold and not identity.verified:
            identity.verified = True
            identity.verificationCount += 1
            self.emit("IdentityVerified", user=user, verifier=self.msg.sender, timestamp=self.now)
            logger.info("Identity %s verified at score %s", user, new_score)

    # ============ Verification requests ============

    @external("requestVerification(address,string)")
    def request_verification(self, subject: str, credential_type: str) -> int:
        self._when_not_paused()
        requester = self.msg.sender
        subject = checksum(subject)
        if subject == requester:
            raise SelfVerificationNotAllowed(requester)
        self._require_identity(requester)
        self._require_identity(subject)

        request_id = len(self.verification_requests)
        self.verification_requests.append(VerificationRequest(
            id=request_id,
            requester=requester,
            subject=subject,
            requestedAt=self.now,
            fulfilled=False,
            credentialType=credential_type,
        ))
        self.emit("VerificationRequested", requestId=request_id, requester=requester,
                  subject=subject, credentialType=credential_type)
        return request_id

    @external("fulfillVerification(uint256)")
    def fulfill_verification(self, request_id: int) -> None:
        """Record the subject's response to a request; there is no automatic resolution."""
        self._when_not_paused()
        request = self.get_verification_request(request_id)
        if self.msg.sender != request.subject:
            raise Unauthorized(self.msg.sender)
        if request.fulfilled:
            raise RequestAlreadyFulfilled(request_id)

        request.fulfilled = True
        identity = self._require_identity(request.subject)
        identity.verificationCount += 1
        identity.lastUpdated = self.now
        self.emit("VerificationFulfilled", requestId=request_id, subject=request.subject,
                  requester=request.requester)

    # ============ Admin ============

    @external("setVerifier(address,bool)")
    def set_verifier(self, verifier: str, authorized: bool) -> None:
        self._only_owner()
        verifier = checksum(verifier)
        if authorized:
            self.authorized_verifiers.grant(verifier)
        else:
            self.authorized_verifiers.revoke(verifier)
        self.emit("VerifierUpdated", verifier=verifier, authorized=authorized)

    @external("setTrustScoreCalculator(address)")
    def set_trust_score_calculator(self, calculator: str) -> None:
        self._only_owner()
        self.trust_score_calculator = checksum(calculator)

    @external("setOracleAdapter(address)")
    def set_oracle_adapter(self, adapter: str) -> None:
        self._only_owner()
        self.oracle_adapter = checksum(adapter)

    @external("setRateLimiter(address)")
    def set_rate_limiter(self, limiter: str) -> None:
        """Wire a RateLimiter; the registry must be one of its authorized callers."""
        self._only_owner()
        limiter = checksum(limiter)
        self.rate_limiter = None if limiter == ZERO_ADDRESS else limiter

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
