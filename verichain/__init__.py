"""
VeriChain Decentralized Identity Protocol

Identity registry, oracle-backed trust scoring, commitment-based credential
verification and multisig governance, executed on an in-process ledger and
served over a FastAPI HTTP API.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "VeriChain Team"
