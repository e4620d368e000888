# blockweave/identity/signatures.py
"""
Signed registry calls.

A call names a registry operation and its JSON parameters. Signing
attaches the signer's public key and an RSA-SHA256 signature over the
canonical call, so a server can authenticate the caller and derive its
address without any prior key registration.
"""

import base64
import calendar
import hashlib
import threading
import time
import uuid
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature as BadSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from ..encoding import canonical_json
from ..errors import InvalidSignature
from .account import Account, address_from_public_key

SIGNATURE_TYPE = "RsaSignature2017"
TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Signatures dated further ahead than this are rejected
MAX_CLOCK_SKEW = 60.0


def _timestamp(when: float = None) -> str:
    return time.strftime(TIME_FORMAT, time.gmtime(when))


def _parse_timestamp(value: str) -> float:
    try:
        return calendar.timegm(time.strptime(value, TIME_FORMAT))
    except (ValueError, TypeError):
        raise InvalidSignature(f"Bad signature timestamp: {value!r}")


def _hash_sha256(data: str) -> bytes:
    """Hash string with SHA-256."""
    return hashlib.sha256(data.encode()).digest()


def _signed_bytes(call: Dict[str, Any], options: Dict[str, Any]) -> bytes:
    """Hash of options + hash of the call without its signature."""
    body = {k: v for k, v in call.items() if k != "signature"}
    return _hash_sha256(canonical_json(options)) + _hash_sha256(canonical_json(body))


def make_call(method: str, params: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build an unsigned call. The nonce makes every call's signature unique."""
    return {
        "method": method,
        "params": params or {},
        "created": _timestamp(),
        "nonce": uuid.uuid4().hex,
    }


def sign_call(call: Dict[str, Any], account: Account) -> Dict[str, Any]:
    """
    Sign a call with the account's private key.

    Args:
        call: Call built by make_call()
        account: The signing account

    Returns:
        Copy of the call with a signature attached
    """
    private_key = serialization.load_pem_private_key(
        account.private_key,
        password=None,
    )
    options = {
        "type": SIGNATURE_TYPE,
        "publicKeyPem": account.public_key.decode("utf-8"),
        "created": _timestamp(),
    }
    signature_bytes = private_key.sign(
        _signed_bytes(call, options),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )

    signed = dict(call)
    signed["signature"] = dict(
        options,
        signatureValue=base64.b64encode(signature_bytes).decode("utf-8"),
    )
    return signed


def verify_call(call: Dict[str, Any], max_age: float = None, now: float = None,
                max_skew: float = MAX_CLOCK_SKEW) -> str:
    """
    Verify a signed call and recover the caller.

    Args:
        call: Signed call
        max_age: Reject signatures older than this many seconds
        max_skew: Reject signatures dated further than this into the future
        now: Current UNIX time (default: time.time())

    Returns:
        Address of the signing account

    Raises:
        InvalidSignature: signature missing, malformed, stale, future-dated or wrong
    """
    signature = call.get("signature")
    if not isinstance(signature, dict):
        raise InvalidSignature("Call is not signed")

    try:
        public_key_pem = signature["publicKeyPem"].encode("utf-8")
        options = {
            "type": signature["type"],
            "publicKeyPem": signature["publicKeyPem"],
            "created": signature["created"],
        }
        signature_bytes = base64.b64decode(signature["signatureValue"])
        public_key = serialization.load_pem_public_key(public_key_pem)
        public_key.verify(
            signature_bytes,
            _signed_bytes(call, options),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
    except BadSignature:
        raise InvalidSignature("Signature does not match call")
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise InvalidSignature(f"Malformed signature: {e}")

    created = _parse_timestamp(signature["created"])
    current = time.time() if now is None else now
    if created - current > max_skew:
        raise InvalidSignature("Signature is dated in the future")
    if max_age is not None and current - created > max_age:
        raise InvalidSignature(f"Signature older than {max_age}s")

    return address_from_public_key(public_key_pem)


class ReplayGuard:
    """
    Remembers accepted signatures so a captured call cannot be resubmitted.

    An entry is dropped once its signature is older than max_age, since
    verify_call rejects it from then on. Without max_age, entries are
    kept for the guard's lifetime.
    """

    def __init__(self, max_age: float = None):
        self.max_age = max_age
        self._seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def check(self, call: Dict[str, Any], now: float = None) -> None:
        """
        Record a verified call.

        Raises:
            InvalidSignature: the same signed call was accepted before
        """
        signature = call["signature"]
        created = _parse_timestamp(signature["created"])
        current = time.time() if now is None else now
        with self._lock:
            if self.max_age is not None:
                horizon = current - self.max_age
                self._seen = {k: t for k, t in self._seen.items() if t >= horizon}
            if signature["signatureValue"] in self._seen:
                raise InvalidSignature("Call has already been submitted")
            self._seen[signature["signatureValue"]] = created

    def __len__(self) -> int:
        return len(self._seen)
