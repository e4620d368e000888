# blockweave/registry/__init__.py
"""
BlockWeave registries.

Two registry designs share one base (owner, lock, events, state file):

- FractalRegistry: forest of root/child nodes, immutable hashes,
  creator-only one-way deactivation
- NodeRegistry: flat list of hashes the registry owner may update

Example:
    registry = FractalRegistry(owner=deployer.address)
    root = registry.create_root_node(alice, content_hash(b"hello"), "root")
    registry.create_child_node(bob, root, content_hash(b"world"), "child")
"""

from .base import BaseRegistry, CallerView, read_state
from .fractal import FractalRegistry, Node
from .simple import NodeRegistry, SimpleNode

REGISTRY_KINDS = {
    FractalRegistry.kind: FractalRegistry,
    NodeRegistry.kind: NodeRegistry,
}

__all__ = [
    "BaseRegistry",
    "CallerView",
    "FractalRegistry",
    "Node",
    "NodeRegistry",
    "SimpleNode",
    "REGISTRY_KINDS",
    "read_state",
]
