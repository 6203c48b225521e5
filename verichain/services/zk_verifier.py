"""
VeriChain Credential Verifier
Commitment-based credential verification.

Issuers commit keccak256(credentialHash || secret) for a (user, type) pair.
The holder later proves possession by revealing the secret together with a
signature over a short-lived challenge; the credential itself never leaves
the holder.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_utils import keccak
from web3 import Web3

from verichain.services.errors import (
    CredentialAlreadyExists,
    CredentialExpired,
    CredentialNotFound,
    CredentialRevoked,
    CredentialTypeNotAllowed,
    IdentityNotFound,
    InvalidExpiration,
    InvalidParameter,
    InvalidProof,
    IssuerAlreadyExists,
    IssuerNotFound,
    NotTrustedIssuer,
    ProofAlreadyUsed,
    Unauthorized,
)
from verichain.services.ledger import ZERO_ADDRESS, Contract, checksum, external
from verichain.services.rate_limiter import OperationType

logger = logging.getLogger(__name__)


# Proof challenges are bound to the current hour
CHALLENGE_WINDOW = 3600

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


@dataclass
class CredentialCommitment:
    credentialHash: bytes
    commitment: bytes
    issuer: str
    issuedAt: int
    expiresAt: int
    revoked: bool
    credentialType: str


@dataclass
class TrustedIssuer:
    name: str
    allowedTypes: List[str] = field(default_factory=list)
    addedAt: int = 0
    active: bool = True

    def may_issue(self, credential_type: str) -> bool:
        return not self.allowedTypes or credential_type in self.allowedTypes


# ============ Proof helpers ============

def _bytes32(value) -> bytes:
    value = bytes.fromhex(value[2:] if value.startswith("0x") else value) if isinstance(value, str) else bytes(value)
    if len(value) != 32:
        raise InvalidParameter("expected 32 bytes")
    return value


def generate_commitment(credential_hash: bytes, secret: bytes) -> bytes:
    """commitment = keccak256(credentialHash || secret)"""
    return keccak(_bytes32(credential_hash) + _bytes32(secret))


def challenge_hash(user: str, credential_type: str, issuer: str, timestamp: int) -> bytes:
    """Message the holder signs: keccak256(user, type, issuer, hour bucket)."""
    return bytes(Web3.solidity_keccak(
        ["address", "string", "address", "uint256"],
        [checksum(user), credential_type, checksum(issuer), timestamp // CHALLENGE_WINDOW],
    ))


def build_proof(private_key, secret: bytes, user: str, credential_type: str, issuer: str, timestamp: int) -> bytes:
    """
    Produce the proof bytes a holder submits to verifyCredential.

    Args:
        private_key: Holder's key; must belong to ``user``
        secret: Secret the commitment was built with
        user: Credential subject
        credential_type: e.g. "DEGREE"
        issuer: Issuer recorded on the commitment
        timestamp: Block time the proof will be verified at (same hour)

    Returns:
        abi.encode(bytes32 secret, bytes signature)
    """
    message = encode_defunct(primitive=challenge_hash(user, credential_type, issuer, timestamp))
    signed = Account.sign_message(message, private_key=private_key)
    return encode(["bytes32", "bytes"], [_bytes32(secret), bytes(signed.signature)])


def decode_proof(proof: bytes) -> Tuple[bytes, bytes]:
    try:
        secret, signature = decode(["bytes32", "bytes"], bytes(proof))
    except (DecodingError, ValueError, TypeError) as e:
        raise InvalidProof(str(e)) from e
    if len(signature) != 65:
        raise InvalidProof("signature must be 65 bytes")
    # Only the canonical encoding: v in {27, 28} and s in the lower half order
    if signature[64] not in (27, 28):
        raise InvalidProof("invalid signature v")
    if int.from_bytes(signature[32:64], "big") > SECP256K1_N // 2:
        raise InvalidProof("invalid signature s")
    return secret, signature


def proof_id(secret: bytes, signature: bytes) -> bytes:
    """Replay key over the decoded proof contents."""
    return keccak(secret + signature)


class ZKVerifier(Contract):
    """Credential commitments, trusted issuers and proof verification."""

    def __init__(self, ledger, address, owner: Optional[str] = None):
        super().__init__(ledger, address, owner)
        self.credentials: Dict[Tuple[str, str], CredentialCommitment] = {}
        self.trusted_issuers: Dict[str, TrustedIssuer] = {}
        self.issuer_list: List[str] = []
        self.used_proofs: Set[bytes] = set()
        self.total_credentials_issued = 0
        self.total_verifications = 0
        self.identity_registry: Optional[str] = None
        self.rate_limiter: Optional[str] = None

        self._register_issuer(self.owner, "VeriChain Owner", [])

    # ============ Helpers ============

    def _register_issuer(self, issuer: str, name: str, allowed_types: Sequence[str]) -> None:
        self.trusted_issuers[issuer] = TrustedIssuer(
            name=name,
            allowedTypes=list(allowed_types),
            addedAt=self.now,
            active=True,
        )
        if issuer not in self.issuer_list:
            self.issuer_list.append(issuer)

    def _require_credential(self, user: str, credential_type: str) -> CredentialCommitment:
        credential = self.credentials.get((checksum(user), credential_type))
        if credential is None:
            raise CredentialNotFound(user, credential_type)
        return credential

    def _is_expired(self, credential: CredentialCommitment) -> bool:
        return credential.expiresAt != 0 and self.now > credential.expiresAt

    # ============ Commitments ============

    def generate_commitment(self, credential_hash: bytes, secret: bytes) -> bytes:
        return generate_commitment(credential_hash, secret)

    @external("commitCredential(address,bytes32,bytes32,string,uint256)")
    def commit_credential(
        self,
        user: str,
        credential_hash: bytes,
        commitment: bytes,
        credential_type: str,
        expires_at: int,
    ) -> None:
        """
        Record a credential commitment for ``user``.

        Args:
            user: Credential subject
            credential_hash: keccak256 of the credential document
            commitment: keccak256(credential_hash || secret)
            credential_type: Issuer-defined type such as "DEGREE"
            expires_at: Expiry timestamp, 0 for never
        """
        issuer = self.msg.sender
        trusted = self.trusted_issuers.get(issuer)
        if trusted is None or not trusted.active:
            raise NotTrustedIssuer(issuer)
        if not trusted.may_issue(credential_type):
            raise CredentialTypeNotAllowed(issuer, credential_type)
        if not credential_type:
            raise InvalidParameter(credential_type)

        user = checksum(user)
        key = (user, credential_type)
        if key in self.credentials:
            raise CredentialAlreadyExists(user, credential_type)
        if expires_at != 0 and expires_at <= self.now:
            raise InvalidExpiration(expires_at)
        if self.identity_registry and not self._call(self.identity_registry, "has_identity", user):
            raise IdentityNotFound(user)

        self.credentials[key] = CredentialCommitment(
            credentialHash=_bytes32(credential_hash),
            commitment=_bytes32(commitment),
            issuer=issuer,
            issuedAt=self.now,
            expiresAt=expires_at,
            revoked=False,
            credentialType=credential_type,
        )
        self.total_credentials_issued += 1
        self.emit("CredentialCommitted", user=user, credentialType=credential_type,
                  issuer=issuer, expiresAt=expires_at)
        logger.info("Credential %s committed for %s by %s", credential_type, user, issuer)

    @external("verifyCredential(address,string,bytes)")
    def verify_credential(self, user: str, credential_type: str, proof: bytes) -> bool:
        """
        Check a holder's proof against the stored commitment.

        Returns False when the secret does not open the commitment or the
        signature was not made by ``user``; a successful proof is recorded
        and cannot be replayed.
        """
        user = checksum(user)
        credential = self._require_credential(user, credential_type)
        if credential.revoked:
            raise CredentialRevoked(user, credential_type)
        if self._is_expired(credential):
            raise CredentialExpired(user, credential_type, credential.expiresAt)

        secret, signature = decode_proof(proof)
        replay_key = proof_id(secret, signature)
        if replay_key in self.used_proofs:
            raise ProofAlreadyUsed(replay_key)

        if self.rate_limiter:
            self._call(self.rate_limiter, "record_request", self.msg.sender, OperationType.PROOF_VERIFICATION)

        opens = keccak(credential.credentialHash + secret) == credential.commitment
        message = encode_defunct(primitive=challenge_hash(user, credential_type, credential.issuer, self.now))
        try:
            signer = Account.recover_message(message, signature=signature)
        except (BadSignature, ValueError, TypeError) as e:
            raise InvalidProof(str(e)) from e

        valid = opens and signer == user
        if valid:
            self.used_proofs.add(replay_key)
            self.total_verifications += 1
        self.emit("CredentialVerified", user=user, credentialType=credential_type,
                  verifier=self.msg.sender, success=valid)
        return valid

    @external("revokeCredential(address,string)")
    def revoke_credential(self, user: str, credential_type: str) -> None:
        credential = self._require_credential(user, credential_type)
        if self.msg.sender not in (credential.issuer, self.owner):
            raise Unauthorized(self.msg.sender)
        if credential.revoked:
            raise CredentialRevoked(user, credential_type)
        credential.revoked = True
        self.emit("CredentialRevoked", user=checksum(user), credentialType=credential_type,
                  revokedBy=self.msg.sender)

    # ============ Views ============

    def check_credential(self, user: str, credential_type: str) -> Tuple[bool, str]:
        """Return (exists, issuer); revoked or expired credentials do not exist."""
        credential = self.credentials.get((checksum(user), credential_type))
        if credential is None or credential.revoked or self._is_expired(credential):
            return False, ZERO_ADDRESS
        return True, credential.issuer

    def has_credential(self, user: str, credential_type: str) -> bool:
        return self.check_credential(user, credential_type)[0]

    def get_credential(self, user: str, credential_type: str) -> CredentialCommitment:
        return self._require_credential(user, credential_type)

    def is_trusted_issuer(self, issuer: str) -> bool:
        trusted = self.trusted_issuers.get(checksum(issuer))
        return trusted is not None and trusted.active

    def get_issuer(self, issuer: str) -> TrustedIssuer:
        trusted = self.trusted_issuers.get(checksum(issuer))
        if trusted is None:
            raise IssuerNotFound(issuer)
        return trusted

    def get_trusted_issuers(self) -> List[str]:
        return [a for a in self.issuer_list if self.trusted_issuers[a].active]

    def get_total_credentials_issued(self) -> int:
        return self.total_credentials_issued

    def get_total_verifications(self) -> int:
        return self.total_verifications

    # ============ Admin ============

    @external("addTrustedIssuer(address,string,string[])")
    def add_trusted_issuer(self, issuer: str, name: str, allowed_types: Sequence[str]) -> None:
        self._only_owner()
        issuer = checksum(issuer)
        if issuer == ZERO_ADDRESS:
            raise InvalidParameter(issuer)
        if self.is_trusted_issuer(issuer):
            raise IssuerAlreadyExists(issuer)
        self._register_issuer(issuer, name, allowed_types)
        self.emit("IssuerAdded", issuer=issuer, name=name)

    @external("removeTrustedIssuer(address)")
    def remove_trusted_issuer(self, issuer: str) -> None:
        self._only_owner()
        issuer = checksum(issuer)
        if not self.is_trusted_issuer(issuer):
            raise IssuerNotFound(issuer)
        self.trusted_issuers[issuer].active = False
        self.emit("IssuerRemoved", issuer=issuer)

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
