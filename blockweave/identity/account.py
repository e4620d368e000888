# blockweave/identity/account.py
"""
Accounts: identities that can sign registry calls.

An Account is:
- A local name
- An RSA key pair for signing
- An address derived from the public key
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ..encoding import address_from_bytes, to_address
from ..storage import write_json

logger = logging.getLogger(__name__)


def _generate_keypair() -> tuple[bytes, bytes]:
    """Generate RSA key pair for signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return private_pem, _public_pem(private_key)


def _public_pem(private_key) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def address_from_public_key(public_key_pem: bytes) -> str:
    """
    Derive the address of a public key.

    The address is the last 20 bytes of the SHA3-256 digest of the
    DER-encoded SubjectPublicKeyInfo.
    """
    public_key = serialization.load_pem_public_key(public_key_pem)
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return address_from_bytes(der)


@dataclass
class Account:
    """
    A signing identity.

    Attributes:
        name: Local name (e.g., "deployer")
        public_key: PEM-encoded public key
        private_key: PEM-encoded private key (kept secret)
        created_at: Timestamp of creation
    """
    name: str
    public_key: bytes
    private_key: bytes
    created_at: float = field(default_factory=time.time)

    @property
    def address(self) -> str:
        """Registry identity of this account."""
        return address_from_public_key(self.public_key)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for storage."""
        return {
            "name": self.name,
            "public_key": self.public_key.decode("utf-8"),
            "private_key": self.private_key.decode("utf-8"),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        """Deserialize from storage."""
        return cls(
            name=data["name"],
            public_key=data["public_key"].encode("utf-8"),
            private_key=data["private_key"].encode("utf-8"),
            created_at=data.get("created_at", time.time()),
        )

    @classmethod
    def create(cls, name: str) -> "Account":
        """Create a new account with generated keys."""
        private_pem, public_pem = _generate_keypair()
        return cls(name=name, public_key=public_pem, private_key=private_pem)

    @classmethod
    def from_private_key(cls, name: str, private_pem: bytes) -> "Account":
        """
        Build an account around an existing PEM private key.

        Raises:
            ValueError: not an unencrypted RSA private key
        """
        private_key = serialization.load_pem_private_key(private_pem, password=None)
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ValueError("Only RSA private keys are supported")
        return cls(name=name, public_key=_public_pem(private_key), private_key=private_pem)

    @classmethod
    def from_key_file(cls, path: Path | str, name: str = None) -> "Account":
        """Load an account from a PEM private key file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Private key not found: {path}")
        return cls.from_private_key(name or path.stem, path.read_bytes())


class AccountStore:
    """
    Persistent keystore.

    Structure:
        store_dir/
            accounts.json     # All accounts, keys included
    """

    def __init__(self, store_dir: Path | str):
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self._accounts: Dict[str, Account] = {}
        self._load()

    def _index_path(self) -> Path:
        return self.store_dir / "accounts.json"

    def _load(self):
        """Load accounts from disk."""
        index_path = self._index_path()
        if index_path.exists():
            with open(index_path) as f:
                data = json.load(f)
            self._accounts = {
                name: Account.from_dict(account_data)
                for name, account_data in data.get("accounts", {}).items()
            }

    def _save(self):
        """Save accounts to disk."""
        data = {
            "version": "1.0",
            "accounts": {
                name: account.to_dict()
                for name, account in self._accounts.items()
            },
        }
        write_json(self._index_path(), data)

    def _add(self, account: Account) -> Account:
        if account.name in self._accounts:
            raise ValueError(f"Account {account.name} already exists")
        self._accounts[account.name] = account
        self._save()
        logger.info(f"Stored account {account.name} ({account.address})")
        return account

    def create(self, name: str) -> Account:
        """Create and store a new account."""
        if name in self._accounts:
            raise ValueError(f"Account {name} already exists")
        return self._add(Account.create(name))

    def import_private_key(self, name: str, private_pem: bytes) -> Account:
        """Store an account for an existing PEM private key."""
        return self._add(Account.from_private_key(name, private_pem))

    def get(self, name: str) -> Optional[Account]:
        """Get an account by name."""
        return self._accounts.get(name)

    def find_by_address(self, address: str) -> Optional[Account]:
        """Get an account by its registry address."""
        address = to_address(address)
        for account in self._accounts.values():
            if account.address == address:
                return account
        return None

    def list(self) -> List[Account]:
        """List all accounts."""
        return list(self._accounts.values())

    def __contains__(self, name: str) -> bool:
        return name in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)
