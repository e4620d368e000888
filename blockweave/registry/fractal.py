# blockweave/registry/fractal.py
"""
Fractal node registry.

A forest of content-hash nodes. Each node is either a root or the child
of exactly one existing, active parent. The creator of a node may
deactivate it, once; nothing else about a node ever changes.

Identifiers are dense and sequential: the n-th node created (root or
child) gets id n - 1. Root nodes store parent_id = 0 even though 0 is
also the id of the first node; is_root tells the two apart.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from ..encoding import HashLike, hash_hex, require_address, to_address, to_hash
from ..errors import AlreadyInactive, NodeNotFound, NotCreator, ParentInactive
from ..events import NODE_CREATED, NODE_DEACTIVATED
from .base import BaseRegistry

logger = logging.getLogger(__name__)

ROOT_PARENT_ID = 0


@dataclass(frozen=True)
class Node:
    """
    A registry entry.

    Attributes:
        node_id: Sequential identifier (dense from 0)
        creator: Address of the identity that created the node
        data_hash: 32-byte content hash (never zero)
        created_at: UNIX seconds at creation
        parent_id: Parent node id (0 for roots, see ``parent``)
        is_root: True for nodes created without a parent
        is_active: False once the creator has deactivated the node
        label: Human-readable label
    """
    node_id: int
    creator: str
    data_hash: bytes
    created_at: int
    parent_id: int
    is_root: bool
    is_active: bool = True
    label: str = ""

    @property
    def parent(self) -> Optional[int]:
        """Parent id, or None for a root node."""
        return None if self.is_root else self.parent_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "creator": self.creator,
            "data_hash": hash_hex(self.data_hash),
            "created_at": self.created_at,
            "parent_id": self.parent_id,
            "is_root": self.is_root,
            "is_active": self.is_active,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        return cls(
            node_id=int(data["node_id"]),
            creator=data["creator"],
            data_hash=to_hash(data["data_hash"]),
            created_at=data.get("created_at", 0),
            parent_id=data.get("parent_id", ROOT_PARENT_ID),
            is_root=data.get("is_root", False),
            is_active=data.get("is_active", True),
            label=data.get("label", ""),
        )


class FractalRegistry(BaseRegistry):
    """
    Registry of root and child nodes with creator-only deactivation.

    Usage:
        registry = FractalRegistry(owner=deployer)
        root = registry.create_root_node(alice, content_hash(b"..."), "root")
        child = registry.create_child_node(bob, root, content_hash(b"..."), "leaf")
        registry.get_children(root)  # [child]
    """

    kind = "fractal"
    MUTATORS = (
        "create_root_node",
        "create_child_node",
        "deactivate_node",
        "transfer_ownership",
    )

    def _reset(self):
        self._nodes: Dict[int, Node] = {}
        self._children: Dict[int, List[int]] = {}
        self._created_by: Dict[str, List[int]] = {}
        self._total_nodes = 0

    def _state(self) -> Dict[str, Any]:
        return {
            "nodes": {str(nid): node.to_dict() for nid, node in self._nodes.items()},
        }

    def _restore(self, data: Dict[str, Any]):
        nodes = [Node.from_dict(n) for n in data.get("nodes", {}).values()]
        # Ids are allocated in commit order, so id order rebuilds the indexes
        for node in sorted(nodes, key=lambda n: n.node_id):
            self._insert(node)

    def _insert(self, node: Node):
        """Store a node and append it to the indexes."""
        self._nodes[node.node_id] = node
        if not node.is_root:
            self._children.setdefault(node.parent_id, []).append(node.node_id)
        self._created_by.setdefault(node.creator, []).append(node.node_id)
        self._total_nodes = max(self._total_nodes, node.node_id + 1)

    def _remove_last(self, node: Node):
        """Undo the _insert of the most recently created node."""
        del self._nodes[node.node_id]
        if not node.is_root:
            self._children[node.parent_id].pop()
        self._created_by[node.creator].pop()
        self._total_nodes = node.node_id

    def _require_node(self, node_id: int) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def _create(self, creator: str, data_hash: bytes, label: str,
                parent_id: int, is_root: bool) -> int:
        now = self._now()
        node = Node(
            node_id=self._total_nodes,
            creator=creator,
            data_hash=data_hash,
            created_at=now,
            parent_id=parent_id,
            is_root=is_root,
            label=label,
        )
        self._insert(node)
        self._commit(lambda: self._remove_last(node), NODE_CREATED, {
            "nodeId": node.node_id,
            "parentId": parent_id,
            "creator": creator,
            "dataHash": hash_hex(data_hash),
            "label": label,
            "isRoot": is_root,
            "timestamp": now,
        }, timestamp=now)
        logger.debug(f"Node {node.node_id} created by {creator} "
                     f"({'root' if is_root else f'child of {parent_id}'})")
        return node.node_id

    def create_root_node(self, caller: str, data_hash: HashLike, label: str = "") -> int:
        """
        Create a node with no parent.

        Args:
            caller: Creating identity
            data_hash: 32-byte content hash (bytes or hex)
            label: Human-readable label

        Returns:
            The new node id

        Raises:
            InvalidHash: data_hash is zero or malformed
        """
        with self._transaction():
            caller = require_address(caller)
            data_hash = to_hash(data_hash)
            return self._create(caller, data_hash, _label(label),
                                parent_id=ROOT_PARENT_ID, is_root=True)

    def create_child_node(self, caller: str, parent_id: int,
                          data_hash: HashLike, label: str = "") -> int:
        """
        Create a node under an existing, active parent.

        Raises:
            NodeNotFound: parent_id was never created
            ParentInactive: parent has been deactivated
            InvalidHash: data_hash is zero or malformed
        """
        with self._transaction():
            caller = require_address(caller)
            parent = self._require_node(parent_id)
            if not parent.is_active:
                raise ParentInactive(parent_id)
            data_hash = to_hash(data_hash)
            return self._create(caller, data_hash, _label(label),
                                parent_id=parent.node_id, is_root=False)

    def deactivate_node(self, caller: str, node_id: int) -> None:
        """
        Deactivate a node. Only its creator may do this, and only once.

        Raises:
            NodeNotFound: node_id was never created
            NotCreator: caller did not create the node
            AlreadyInactive: node is already inactive
        """
        with self._transaction():
            caller = require_address(caller)
            node = self._require_node(node_id)
            if caller != node.creator:
                raise NotCreator(f"{caller} did not create node {node_id}")
            if not node.is_active:
                raise AlreadyInactive(node_id)

            def undo():
                self._nodes[node.node_id] = node

            now = self._now()
            self._nodes[node.node_id] = replace(node, is_active=False)
            self._commit(undo, NODE_DEACTIVATED, {
                "nodeId": node.node_id,
                "deactivatedBy": caller,
                "timestamp": now,
            }, timestamp=now)
        logger.debug(f"Node {node_id} deactivated by {caller}")

    def get_node(self, node_id: int) -> Node:
        """
        Get a node record.

        Raises:
            NodeNotFound: node_id was never created
        """
        with self._transaction():
            return self._require_node(node_id)

    def get_children(self, node_id: int) -> List[int]:
        """
        Child ids of a node, in creation order.

        Raises:
            NodeNotFound: node_id was never created
        """
        with self._transaction():
            self._require_node(node_id)
            return list(self._children.get(node_id, []))

    def get_created_by(self, creator: str) -> List[int]:
        """Ids of nodes created by an identity, in creation order."""
        with self._transaction():
            return list(self._created_by.get(to_address(creator), []))

    def get_stats(self) -> int:
        """Total number of nodes created."""
        with self._transaction():
            return self._total_nodes

    def __contains__(self, node_id) -> bool:
        with self._transaction():
            return node_id in self._nodes

    def __len__(self) -> int:
        return self.get_stats()


def _label(label) -> str:
    if not isinstance(label, str):
        raise ValueError(f"Label must be a string, got {type(label).__name__}")
    return label
