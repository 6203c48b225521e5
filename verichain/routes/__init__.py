"""
VeriChain API Routes Package
Provides identity, governance, rate-limit, credential, oracle, trust,
reputation and chain endpoints.
"""

from verichain.routes import chain, credentials, governance, identity, oracle, rate_limit, reputation, trust

__all__ = ['chain', 'credentials', 'governance', 'identity', 'oracle', 'rate_limit', 'reputation', 'trust']
