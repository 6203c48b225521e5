"""
VeriChain Credentials API
Credential commitments, proof verification, revocation and trusted issuers.
"""

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from verichain.routes.dependencies import (
    TransactionResponse,
    get_protocol,
    get_sender,
    parse_address,
    parse_bytes,
    submit,
    view,
)
from verichain.services.protocol import VeriChainProtocol
from verichain.services.zk_verifier import generate_commitment


router = APIRouter()


class CommitmentRequest(BaseModel):
    credential_hash: str = Field(..., description="bytes32 hex")
    secret: str = Field(..., description="bytes32 hex, kept by the holder")


class CommitCredentialRequest(BaseModel):
    user: str
    credential_hash: str
    commitment: str
    credential_type: str
    expires_at: int = Field(0, ge=0, description="Unix time, 0 for never")


class VerifyCredentialRequest(BaseModel):
    user: str
    credential_type: str
    proof: str = Field(..., description="abi.encode(bytes32 secret, bytes signature) as hex")


class RevokeCredentialRequest(BaseModel):
    user: str
    credential_type: str


class IssuerRequest(BaseModel):
    issuer: str
    name: str
    allowed_types: List[str] = []


@router.post("/credentials/commitment")
def compute_commitment(request: CommitmentRequest):
    """Compute keccak256(credentialHash || secret) without touching the ledger."""
    commitment = generate_commitment(
        parse_bytes(request.credential_hash, "credential_hash", 32),
        parse_bytes(request.secret, "secret", 32),
    )
    return {"commitment": "0x" + commitment.hex()}


@router.post("/credentials", response_model=TransactionResponse)
def commit_credential(
    request: CommitCredentialRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Commit a credential for a user (trusted issuers only)."""
    return submit(
        protocol, sender, protocol.zk_verifier, "commit_credential",
        parse_address(request.user, "user"),
        parse_bytes(request.credential_hash, "credential_hash", 32),
        parse_bytes(request.commitment, "commitment", 32),
        request.credential_type,
        request.expires_at,
    )


@router.post("/credentials/verify", response_model=TransactionResponse)
def verify_credential(
    request: VerifyCredentialRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """
    Verify a holder's proof.

    ``return_value`` is true only when the secret opens the commitment and
    the signature was made by the credential's subject.
    """
    return submit(
        protocol, sender, protocol.zk_verifier, "verify_credential",
        parse_address(request.user, "user"), request.credential_type, parse_bytes(request.proof, "proof")
    )


@router.post("/credentials/revoke", response_model=TransactionResponse)
def revoke_credential(
    request: RevokeCredentialRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(
        protocol, sender, protocol.zk_verifier, "revoke_credential",
        parse_address(request.user, "user"), request.credential_type
    )


# ============ Issuers ============

@router.get("/credentials/issuers")
def list_issuers(protocol: VeriChainProtocol = Depends(get_protocol)):
    verifier = protocol.zk_verifier
    issuers = view(protocol, verifier, "get_trusted_issuers")
    return {
        "issuers": [{"address": a, **view(protocol, verifier, "get_issuer", a)} for a in issuers],
    }


@router.post("/credentials/issuers", response_model=TransactionResponse)
def add_issuer(
    request: IssuerRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Trust a new issuer; an empty type list allows every type (owner only)."""
    return submit(
        protocol, sender, protocol.zk_verifier, "add_trusted_issuer",
        parse_address(request.issuer, "issuer"), request.name, request.allowed_types
    )


@router.delete("/credentials/issuers/{issuer}", response_model=TransactionResponse)
def remove_issuer(
    issuer: str,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.zk_verifier, "remove_trusted_issuer", parse_address(issuer, "issuer"))


# ============ Lookups ============

@router.get("/credentials/stats")
def credential_stats(protocol: VeriChainProtocol = Depends(get_protocol)):
    verifier = protocol.zk_verifier
    return {
        "total_credentials_issued": view(protocol, verifier, "get_total_credentials_issued"),
        "total_verifications": view(protocol, verifier, "get_total_verifications"),
    }


@router.get("/credentials/{address}/{credential_type}")
def get_credential(address: str, credential_type: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Credential record plus its current validity."""
    address = parse_address(address)
    verifier = protocol.zk_verifier
    valid, _ = view(protocol, verifier, "check_credential", address, credential_type)
    return {
        "user": address,
        "valid": valid,
        "credential": view(protocol, verifier, "get_credential", address, credential_type),
    }
