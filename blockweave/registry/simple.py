# blockweave/registry/simple.py
"""
Simple node registry.

The earlier registry design: anyone may register a data hash, and the
registry owner (not the node's creator) may later replace it. Kept
separate from the fractal registry, whose hashes are immutable.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict

from ..encoding import HashLike, hash_hex, require_address, to_hash
from ..errors import NodeNotFound
from ..events import NODE_REGISTERED, NODE_UPDATED
from .base import BaseRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimpleNode:
    """A registered data hash."""
    node_id: int
    creator: str
    data_hash: bytes
    created_at: int
    updated_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "creator": self.creator,
            "data_hash": hash_hex(self.data_hash),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimpleNode":
        created_at = data.get("created_at", 0)
        return cls(
            node_id=int(data["node_id"]),
            creator=data["creator"],
            data_hash=to_hash(data["data_hash"]),
            created_at=created_at,
            updated_at=data.get("updated_at", created_at),
        )


class NodeRegistry(BaseRegistry):
    """Registry of data hashes, mutable by the registry owner."""

    kind = "simple"
    MUTATORS = ("register_node", "update_node", "transfer_ownership")

    def _reset(self):
        self._nodes: Dict[int, SimpleNode] = {}

    def _state(self) -> Dict[str, Any]:
        return {
            "nodes": {str(nid): node.to_dict() for nid, node in self._nodes.items()},
        }

    def _restore(self, data: Dict[str, Any]):
        for node_data in data.get("nodes", {}).values():
            node = SimpleNode.from_dict(node_data)
            self._nodes[node.node_id] = node

    def register_node(self, caller: str, data_hash: HashLike) -> int:
        """
        Register a data hash.

        Raises:
            InvalidHash: data_hash is zero or malformed
        """
        with self._transaction():
            caller = require_address(caller)
            data_hash = to_hash(data_hash)
            now = self._now()
            node = SimpleNode(
                node_id=len(self._nodes),
                creator=caller,
                data_hash=data_hash,
                created_at=now,
                updated_at=now,
            )
            self._nodes[node.node_id] = node
            self._commit(lambda: self._nodes.pop(node.node_id), NODE_REGISTERED, {
                "nodeId": node.node_id,
                "creator": caller,
                "dataHash": hash_hex(data_hash),
                "timestamp": now,
            }, timestamp=now)
        logger.debug(f"Node {node.node_id} registered by {caller}")
        return node.node_id

    def update_node(self, caller: str, node_id: int, data_hash: HashLike) -> None:
        """
        Replace a node's data hash. Owner only.

        Raises:
            NotOwner: caller is not the registry owner
            NodeNotFound: node_id was never registered
            InvalidHash: data_hash is zero or malformed
        """
        with self._transaction():
            self._only_owner(caller)
            node = self._nodes.get(node_id)
            if node is None:
                raise NodeNotFound(node_id)
            data_hash = to_hash(data_hash)
            now = self._now()

            def undo():
                self._nodes[node_id] = node

            self._nodes[node_id] = replace(node, data_hash=data_hash, updated_at=now)
            self._commit(undo, NODE_UPDATED, {
                "nodeId": node_id,
                "oldHash": hash_hex(node.data_hash),
                "newHash": hash_hex(data_hash),
                "timestamp": now,
            }, timestamp=now)
        logger.debug(f"Node {node_id} updated by owner")

    def get_node(self, node_id: int) -> SimpleNode:
        """
        Get a node record.

        Raises:
            NodeNotFound: node_id was never registered
        """
        with self._transaction():
            node = self._nodes.get(node_id)
            if node is None:
                raise NodeNotFound(node_id)
            return node

    def get_stats(self) -> int:
        """Total number of registered nodes."""
        with self._transaction():
            return len(self._nodes)

    def __contains__(self, node_id) -> bool:
        with self._transaction():
            return node_id in self._nodes

    def __len__(self) -> int:
        return self.get_stats()
