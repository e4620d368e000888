# blockweave/identity/__init__.py
"""
Identities for BlockWeave.

Core concepts:
- Account: a named RSA key pair; its address is the registry identity
- AccountStore: local keystore
- Signed call: an operation request carrying the signer's public key
  and signature, so a remote registry can authenticate the caller
"""

from .account import Account, AccountStore, address_from_public_key
from .signatures import ReplayGuard, make_call, sign_call, verify_call

__all__ = [
    "Account",
    "AccountStore",
    "ReplayGuard",
    "address_from_public_key",
    "make_call",
    "sign_call",
    "verify_call",
]
