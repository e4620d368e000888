# blockweave - Content-hash node registries with creator and owner control
#
# A registry keeps a forest of nodes, each carrying a 32-byte content hash
# and optionally linked to a parent node. Every change is serialized,
# validated before it is applied, and recorded in an append-only event log.
#
# Core concepts:
# - FractalRegistry: root/child nodes, creator-only one-way deactivation
# - NodeRegistry: flat hashes the registry owner may update
# - Account: signing identity whose address is the caller of an operation
# - RegistryServer / RegistryClient: JSON transport for a deployed registry

from .errors import (
    RegistryError,
    InvalidHash,
    NodeNotFound,
    ParentInactive,
    AlreadyInactive,
    NotCreator,
    NotOwner,
    InvalidAddress,
    InvalidSignature,
)
from .encoding import ZERO_HASH, NULL_ADDRESS, content_hash, file_hash
from .events import Event, EventLog
from .registry import FractalRegistry, Node, NodeRegistry, SimpleNode
from .identity import Account, AccountStore, sign_call, verify_call
from .config import Settings, load_settings
from .deploy import Deployment, deploy, open_registry
from .client import RegistryClient
from .server import RegistryServer

__all__ = [
    # Errors
    "RegistryError",
    "InvalidHash",
    "NodeNotFound",
    "ParentInactive",
    "AlreadyInactive",
    "NotCreator",
    "NotOwner",
    "InvalidAddress",
    "InvalidSignature",
    # Registries
    "FractalRegistry",
    "Node",
    "NodeRegistry",
    "SimpleNode",
    "Event",
    "EventLog",
    "ZERO_HASH",
    "NULL_ADDRESS",
    "content_hash",
    "file_hash",
    # Identity and deployment
    "Account",
    "AccountStore",
    "sign_call",
    "verify_call",
    "Settings",
    "load_settings",
    "Deployment",
    "deploy",
    "open_registry",
    # Transport
    "RegistryClient",
    "RegistryServer",
]

__version__ = "0.1.0"
