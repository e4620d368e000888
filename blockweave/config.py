# blockweave/config.py
"""
Configuration.

Settings are layered: built-in defaults, then a YAML file, then the
environment (a .env file in the working directory is merged into the
environment first).

YAML keys are the Settings field names:

    store_dir: ./data/registry
    keystore_dir: ~/.blockweave/keys
    account: deployer
    rpc_url: http://127.0.0.1:8545
    port: 8545

Environment variables:
    BLOCKWEAVE_STORE_DIR, BLOCKWEAVE_KEYSTORE_DIR, BLOCKWEAVE_ACCOUNT,
    BLOCKWEAVE_HOST, BLOCKWEAVE_PORT, BLOCKWEAVE_SIGNATURE_MAX_AGE,
    BLOCKWEAVE_KIND, RPC_URL, PRIVATE_KEY (path to a PEM private key)
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .identity import Account, AccountStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "blockweave.yaml"

ENV_KEYS = {
    "BLOCKWEAVE_STORE_DIR": "store_dir",
    "BLOCKWEAVE_KEYSTORE_DIR": "keystore_dir",
    "BLOCKWEAVE_ACCOUNT": "account",
    "BLOCKWEAVE_HOST": "host",
    "BLOCKWEAVE_PORT": "port",
    "BLOCKWEAVE_SIGNATURE_MAX_AGE": "signature_max_age",
    "BLOCKWEAVE_KIND": "kind",
    "RPC_URL": "rpc_url",
    "PRIVATE_KEY": "private_key",
}


@dataclass
class Settings:
    """
    Runtime settings for the deployment driver, server and CLI.

    Attributes:
        store_dir: Directory holding the deployed registry
        keystore_dir: Directory holding local accounts
        account: Keystore account used for signing
        private_key: PEM private key file used for signing (wins over account)
        rpc_url: Remote registry server; local store is used when unset
        host: Server bind address
        port: Server port
        signature_max_age: Seconds a signed call stays valid
        kind: Registry kind to deploy (fractal or simple)
    """
    store_dir: Path = Path("blockweave-data")
    keystore_dir: Path = field(default_factory=lambda: Path.home() / ".blockweave" / "keys")
    account: Optional[str] = None
    private_key: Optional[Path] = None
    rpc_url: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8545
    signature_max_age: float = 300.0
    kind: str = "fractal"

    def update(self, values: Mapping[str, Any], source: str = "config") -> None:
        """Apply raw values, coercing them to field types."""
        known = {f.name for f in fields(self)}
        for key, value in values.items():
            if key not in known:
                raise ValueError(f"Unknown setting in {source}: {key}")
            setattr(self, key, _coerce(key, value))


def _coerce(key: str, value: Any) -> Any:
    if value is None or value == "":
        if key in ("account", "private_key", "rpc_url"):
            return None
        raise ValueError(f"Setting {key} must not be empty")
    if key in ("store_dir", "keystore_dir", "private_key"):
        return Path(value).expanduser()
    if key == "port":
        return int(value)
    if key == "signature_max_age":
        return float(value)
    return str(value)


def load_settings(
    path: Path | str | None = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Load settings from defaults, a YAML file and the environment.

    Args:
        path: YAML file (default: ./blockweave.yaml if it exists)
        env: Environment mapping (default: os.environ after loading .env)

    Raises:
        FileNotFoundError: an explicit path does not exist
        ValueError: the file contains unknown keys or is not a mapping
    """
    settings = Settings()

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = Path(DEFAULT_CONFIG_FILE)

    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file must be a mapping: {config_path}")
        settings.update(data, source=str(config_path))
        logger.debug(f"Loaded settings from {config_path}")

    if env is None:
        load_dotenv(find_dotenv(usecwd=True))
        env = os.environ
    overrides: Dict[str, Any] = {
        key: env[name] for name, key in ENV_KEYS.items() if name in env
    }
    settings.update(overrides, source="environment")
    return settings


def signing_account(settings: Settings) -> Optional[Account]:
    """
    Resolve the account used to sign calls.

    A PEM private key file takes precedence over a keystore account.

    Raises:
        FileNotFoundError: private_key file does not exist
        ValueError: the named keystore account does not exist
    """
    if settings.private_key is not None:
        return Account.from_key_file(settings.private_key)
    if settings.account:
        account = AccountStore(settings.keystore_dir).get(settings.account)
        if account is None:
            raise ValueError(f"No account named {settings.account!r} in {settings.keystore_dir}")
        return account
    return None
