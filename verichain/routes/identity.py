"""
VeriChain Identity API
Identity creation, credential updates, trust scores and peer verification.
"""

from typing import Optional

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


router = APIRouter()


class CreateIdentityRequest(BaseModel):
    """Identity creation request."""
    encrypted_data_uri: str = Field(..., description="Reference to the encrypted identity document, e.g. ipfs://...")


class UpdateCredentialsRequest(BaseModel):
    encrypted_data_uri: str


class TrustScoreRequest(BaseModel):
    score: int = Field(..., ge=0)


class VerificationRequestBody(BaseModel):
    subject: str
    credential_type: str


class VerifierRequest(BaseModel):
    verifier: str
    authorized: bool = True


class IdentityResponse(BaseModel):
    """Identity record."""
    address: str
    did: str
    trustScore: int
    createdAt: int
    lastUpdated: int
    verified: bool
    encryptedDataURI: str
    verificationCount: int


# ============ Identity lifecycle ============

@router.post("/identity", response_model=TransactionResponse)
def create_identity(
    request: CreateIdentityRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """
    Create the sender's identity.

    The new DID is returned in ``return_value`` and in the IdentityCreated event.
    """
    return submit(protocol, sender, protocol.identity_registry, "create_identity", request.encrypted_data_uri)


@router.put("/identity/credentials", response_model=TransactionResponse)
def update_credentials(
    request: UpdateCredentialsRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Point the sender's identity at a new encrypted document."""
    return submit(protocol, sender, protocol.identity_registry, "update_credentials", request.encrypted_data_uri)


@router.get("/identity/stats")
def identity_stats(protocol: VeriChainProtocol = Depends(get_protocol)):
    """Registry-wide counters."""
    registry = protocol.identity_registry
    return {
        "total_identities": view(protocol, registry, "total_identities"),
        "verification_threshold": registry.verification_threshold,
        "paused": registry.paused,
    }


@router.get("/identity/did/{did}")
def resolve_did(did: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Resolve a DID (bytes32 hex) to its owner address."""
    address = view(protocol, protocol.identity_registry, "get_address_from_did", parse_bytes(did, "did", 32))
    return {"did": did, "address": address}


@router.get("/identity/{address}", response_model=IdentityResponse)
def get_identity(address: str, protocol: VeriChainProtocol = Depends(get_protocol)):
    """Get an identity by owner address."""
    address = parse_address(address)
    identity = view(protocol, protocol.identity_registry, "get_identity", address)
    return {"address": address, **identity}


@router.put("/identity/{address}/trust-score", response_model=TransactionResponse)
def update_trust_score(
    address: str,
    request: TrustScoreRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Set a trust score (authorized verifiers only)."""
    return submit(
        protocol, sender, protocol.identity_registry, "update_trust_score", parse_address(address), request.score
    )


# ============ Verification requests ============

@router.post("/identity/verification-requests", response_model=TransactionResponse)
def request_verification(
    request: VerificationRequestBody,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Ask another identity holder to verify their identity."""
    return submit(
        protocol, sender, protocol.identity_registry, "request_verification",
        parse_address(request.subject, "subject"), request.credential_type
    )


@router.get("/identity/verification-requests/{request_id}")
def get_verification_request(request_id: int, protocol: VeriChainProtocol = Depends(get_protocol)):
    return view(protocol, protocol.identity_registry, "get_verification_request", request_id)


@router.get("/identity/{address}/verification-requests")
def list_verification_requests(
    address: str,
    pending_only: Optional[bool] = False,
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Requests where ``address`` is the subject."""
    requests = view(protocol, protocol.identity_registry, "get_requests_for", parse_address(address))
    if pending_only:
        requests = [r for r in requests if not r["fulfilled"]]
    return {"subject": parse_address(address), "requests": requests}


@router.post("/identity/verification-requests/{request_id}/fulfill", response_model=TransactionResponse)
def fulfill_verification(
    request_id: int,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Fulfill a request addressed to the sender."""
    return submit(protocol, sender, protocol.identity_registry, "fulfill_verification", request_id)


# ============ Admin ============

@router.post("/identity/verifiers", response_model=TransactionResponse)
def set_verifier(
    request: VerifierRequest,
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    """Grant or revoke verifier rights (owner only)."""
    return submit(
        protocol, sender, protocol.identity_registry, "set_verifier",
        parse_address(request.verifier, "verifier"), request.authorized
    )


@router.post("/identity/pause", response_model=TransactionResponse)
def pause_registry(
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.identity_registry, "pause")


@router.post("/identity/unpause", response_model=TransactionResponse)
def unpause_registry(
    sender: str = Depends(get_sender),
    protocol: VeriChainProtocol = Depends(get_protocol)
):
    return submit(protocol, sender, protocol.identity_registry, "unpause")
