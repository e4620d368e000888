# blockweave/deploy.py
"""
Deployment driver.

Constructs one registry instance in the configured store directory,
owned by the deploying account, and reopens deployed registries.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict

from .config import Settings
from .identity import Account
from .registry import REGISTRY_KINDS, BaseRegistry, read_state

logger = logging.getLogger(__name__)


@dataclass
class Deployment:
    """Where and by whom a registry was deployed."""
    kind: str
    address: str
    owner: str
    store_dir: Path
    deployed_at: int

    @classmethod
    def from_registry(cls, registry: BaseRegistry) -> "Deployment":
        return cls(
            kind=registry.kind,
            address=registry.address,
            owner=registry.owner,
            store_dir=registry.store_dir,
            deployed_at=registry.deployed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "address": self.address,
            "owner": self.owner,
            "store_dir": str(self.store_dir),
            "deployed_at": self.deployed_at,
        }


def deploy(settings: Settings, account: Account, kind: str = None) -> Deployment:
    """
    Deploy a registry owned by account.

    Args:
        settings: Supplies the store directory and default kind
        account: Deploying account; becomes the registry owner
        kind: Registry kind (fractal or simple), overrides settings.kind

    Raises:
        ValueError: unknown kind, or the store already holds a registry
    """
    kind = kind or settings.kind
    registry_cls = REGISTRY_KINDS.get(kind)
    if registry_cls is None:
        raise ValueError(f"Unknown registry kind: {kind} (expected one of {sorted(REGISTRY_KINDS)})")

    registry = registry_cls(owner=account.address, store_dir=settings.store_dir)
    deployment = Deployment.from_registry(registry)
    logger.info(f"Deployed {kind} registry {deployment.address} to {deployment.store_dir}")
    return deployment


def open_registry(store_dir: Path | str, clock: Callable[[], float] = None) -> BaseRegistry:
    """
    Reopen a deployed registry of whichever kind store_dir holds.

    Raises:
        FileNotFoundError: nothing deployed in store_dir
        ValueError: the state file names an unknown kind
    """
    kind = read_state(store_dir).get("kind")
    registry_cls = REGISTRY_KINDS.get(kind)
    if registry_cls is None:
        raise ValueError(f"Unknown registry kind in {store_dir}: {kind!r}")
    return registry_cls.load(store_dir, clock=clock)
