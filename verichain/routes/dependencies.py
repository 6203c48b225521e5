"""
VeriChain API Dependencies
Protocol access, sender extraction and transaction helpers shared by the
route modules.
"""

from typing import Any, Dict, List, Optional

from eth_utils import decode_hex, is_address, to_checksum_address
from fastapi import Header, HTTPException, Request, status
from pydantic import BaseModel

from verichain.services.ledger import Contract, TxReceipt, to_jsonable
from verichain.services.protocol import VeriChainProtocol


class TransactionResponse(BaseModel):
    """Receipt of a mined transaction."""
    tx_hash: str
    status: int
    sender: str
    to: Optional[str] = None
    method: str
    block_number: int
    timestamp: int
    return_value: Any = None
    events: List[Dict[str, Any]] = []


class TransactionReverted(Exception):
    """A transaction sent through the API was mined but reverted."""

    def __init__(self, receipt: TxReceipt):
        self.receipt = receipt
        super().__init__(str(receipt.error))


def get_protocol(request: Request) -> VeriChainProtocol:
    """Get the deployed protocol from application state."""
    protocol = getattr(request.app.state, "protocol", None)
    if protocol is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Protocol not deployed"
        )
    return protocol


def get_sender(x_sender: str = Header(..., description="Address the transaction is sent from")) -> str:
    """Transaction sender taken from the X-Sender header."""
    return parse_address(x_sender, "X-Sender")


def parse_address(value: str, field_name: str = "address") -> str:
    if not is_address(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field_name}: {value}"
        )
    return to_checksum_address(value)


def parse_bytes(value: str, field_name: str, length: Optional[int] = None) -> bytes:
    """Decode a 0x-prefixed hex string, optionally checking its length."""
    try:
        data = decode_hex(value)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field_name}: expected hex"
        )
    if length is not None and len(data) != length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {field_name}: expected {length} bytes, got {len(data)}"
        )
    return data


def submit(
    protocol: VeriChainProtocol,
    sender: str,
    contract: Contract,
    method: str,
    *args,
    value: int = 0,
) -> Dict[str, Any]:
    """
    Send a transaction and return its receipt as a dict.

    Raises:
        TransactionReverted: if the transaction reverted
    """
    receipt = protocol.ledger.transact(sender, contract, method, *args, value=value)
    if not receipt.ok:
        raise TransactionReverted(receipt)
    return receipt.to_dict()


def view(protocol: VeriChainProtocol, contract: Contract, method: str, *args, sender: Optional[str] = None) -> Any:
    """Run a read-only call and return a JSON-friendly result."""
    if sender:
        return to_jsonable(protocol.ledger.call(contract, method, *args, sender=sender))
    return to_jsonable(protocol.ledger.call(contract, method, *args))
