# blockweave/client.py
"""
Client SDK for the registry server.

Mirrors the registry's operation names. Mutations are signed with the
client's account, which the server treats as the caller.

Usage:
    client = RegistryClient("http://localhost:8545", account)

    root = client.create_root_node(content_hash(b"hello"), "root")
    child = client.create_child_node(root, content_hash(b"world"), "child")
    print(client.get_children(root))
"""

import json
from typing import Any, Dict, List, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from .encoding import HashLike, hash_hex, to_hash
from .errors import error_from_code
from .events import Event
from .identity import Account, make_call, sign_call
from .registry import Node, SimpleNode


class RegistryClient:
    """
    Client for a registry server.

    Args:
        base_url: Server URL (e.g., "http://localhost:8545")
        account: Signing account; required for mutating operations
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str = "http://localhost:8545",
                 account: Optional[Account] = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.account = account
        self.timeout = timeout

    def _request(self, method: str, path: str, data: dict = None) -> dict:
        """Make HTTP request to server."""
        url = f"{self.base_url}{path}"

        if data is not None:
            body = json.dumps(data).encode()
            headers = {"Content-Type": "application/json"}
        else:
            body = None
            headers = {}

        req = Request(url, data=body, headers=headers, method=method)

        try:
            with urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode())
        except HTTPError as e:
            error_body = e.read().decode()
            try:
                error_data = json.loads(error_body)
            except json.JSONDecodeError:
                raise RuntimeError(f"HTTP {e.code}: {error_body}")
            message = error_data.get("error", str(e))
            if "code" in error_data:
                raise error_from_code(error_data["code"], message)
            raise RuntimeError(message)
        except URLError as e:
            raise ConnectionError(f"Failed to connect to server: {e}")

    def _transact(self, method: str, **params) -> Any:
        if self.account is None:
            raise ValueError(f"{method} needs a signing account")
        call = sign_call(make_call(method, params), self.account)
        return self._request("POST", "/transactions", call)["result"]

    def health(self) -> bool:
        """Check if server is healthy."""
        try:
            result = self._request("GET", "/health")
            return result.get("status") == "ok"
        except (ConnectionError, RuntimeError):
            return False

    # Mutations

    def create_root_node(self, data_hash: HashLike, label: str = "") -> int:
        return self._transact("create_root_node", data_hash=_hex(data_hash), label=label)

    def create_child_node(self, parent_id: int, data_hash: HashLike, label: str = "") -> int:
        return self._transact("create_child_node", parent_id=parent_id,
                              data_hash=_hex(data_hash), label=label)

    def deactivate_node(self, node_id: int) -> None:
        self._transact("deactivate_node", node_id=node_id)

    def register_node(self, data_hash: HashLike) -> int:
        return self._transact("register_node", data_hash=_hex(data_hash))

    def update_node(self, node_id: int, data_hash: HashLike) -> None:
        self._transact("update_node", node_id=node_id, data_hash=_hex(data_hash))

    def transfer_ownership(self, new_owner: str) -> None:
        self._transact("transfer_ownership", new_owner=new_owner)

    # Reads

    def get_node(self, node_id: int) -> Node | SimpleNode:
        data = self._request("GET", f"/nodes/{node_id}")
        if "is_root" in data:
            return Node.from_dict(data)
        return SimpleNode.from_dict(data)

    def get_children(self, node_id: int) -> List[int]:
        return self._request("GET", f"/nodes/{node_id}/children")["children"]

    def get_created_by(self, creator: str) -> List[int]:
        return self._request("GET", f"/creators/{quote(creator)}/nodes")["nodes"]

    def get_stats(self) -> int:
        return self._request("GET", "/stats")["total_nodes"]

    @property
    def owner(self) -> str:
        return self._request("GET", "/owner")["owner"]

    def info(self) -> Dict[str, Any]:
        """Kind, address, owner and node count of the hosted registry."""
        return self._request("GET", "/registry")

    def events(self, name: str = None, since: int = 0) -> List[Event]:
        query = {"since": since}
        if name:
            query["name"] = name
        data = self._request("GET", f"/events?{urlencode(query)}")
        return [Event.from_dict(e) for e in data.get("events", [])]


def _hex(data_hash: HashLike) -> str:
    # Validate locally so obviously bad hashes never leave the client
    return hash_hex(to_hash(data_hash))


__all__ = ["RegistryClient"]
