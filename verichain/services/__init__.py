"""
VeriChain Services Package
Ledger, protocol contracts and deployment helpers.
"""

from verichain.services.ledger import Ledger, TxReceipt, encode_call
from verichain.services.errors import ErrorKind, Revert
from verichain.services.protocol import VeriChainProtocol, deploy_protocol

__all__ = [
    'Ledger',
    'TxReceipt',
    'encode_call',
    'ErrorKind',
    'Revert',
    'VeriChainProtocol',
    'deploy_protocol',
]
