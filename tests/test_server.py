# tests/test_server.py
"""Tests for the registry server and client over HTTP."""

import json
from urllib.request import Request, urlopen
from urllib.error import HTTPError

import pytest

from blockweave.client import RegistryClient
from blockweave.encoding import ZERO_HASH, content_hash
from blockweave.errors import (
    AlreadyInactive,
    InvalidAddress,
    InvalidHash,
    InvalidSignature,
    NodeNotFound,
    NotCreator,
    NotOwner,
    ParentInactive,
)
from blockweave.events import NODE_CREATED, NODE_DEACTIVATED
from blockweave.identity import Account, make_call, sign_call
from blockweave.registry import FractalRegistry, Node, NodeRegistry
from blockweave.server import RegistryServer

H1 = content_hash(b"one")
H2 = content_hash(b"two")
H3 = content_hash(b"three")


@pytest.fixture(scope="module")
def deployer():
    return Account.create("deployer")


@pytest.fixture(scope="module")
def alice():
    return Account.create("alice")


@pytest.fixture(scope="module")
def bob():
    return Account.create("bob")


def _serve(registry, **kwargs):
    server = RegistryServer(registry, port=0, **kwargs)
    server.start_background()
    return server


@pytest.fixture
def registry(deployer):
    return FractalRegistry(owner=deployer.address)


@pytest.fixture
def server(registry):
    server = _serve(registry)
    yield server
    server.shutdown()


def _post(url: str, body: bytes):
    req = Request(f"{url}/transactions", data=body,
                  headers={"Content-Type": "application/json"}, method="POST")
    try:
        with urlopen(req, timeout=10) as response:
            return response.status, json.loads(response.read())
    except HTTPError as e:
        return e.code, json.loads(e.read())


class TestFractalOverHttp:

    def test_health(self, server):
        assert RegistryClient(server.url).health()

    def test_health_unreachable(self):
        assert not RegistryClient("http://127.0.0.1:1", timeout=2).health()

    def test_caller_is_signer(self, server, registry, alice):
        client = RegistryClient(server.url, alice)
        root = client.create_root_node(H1, "root")

        assert root == 0
        assert registry.get_node(root).creator == alice.address

    def test_full_flow(self, server, alice, bob):
        a = RegistryClient(server.url, alice)
        b = RegistryClient(server.url, bob)

        root = a.create_root_node(H1, "root")
        first = b.create_child_node(root, H2, "first")
        second = a.create_child_node(root, H3)
        a.deactivate_node(root)

        node = b.get_node(root)
        assert isinstance(node, Node)
        assert node.is_active is False
        assert node.data_hash == H1
        assert b.get_children(root) == [first, second]
        assert b.get_created_by(alice.address) == [root, second]
        assert b.get_stats() == 3

    def test_errors_keep_their_class(self, server, alice, bob, deployer):
        a = RegistryClient(server.url, alice)
        b = RegistryClient(server.url, bob)
        root = a.create_root_node(H1)

        with pytest.raises(NodeNotFound):
            a.get_node(42)
        with pytest.raises(NodeNotFound):
            a.get_children(42)
        with pytest.raises(NotCreator):
            b.deactivate_node(root)

        a.deactivate_node(root)
        with pytest.raises(AlreadyInactive):
            a.deactivate_node(root)
        with pytest.raises(ParentInactive):
            b.create_child_node(root, H2)

        with pytest.raises(NotOwner):
            a.transfer_ownership(bob.address)
        with pytest.raises(InvalidAddress):
            RegistryClient(server.url, deployer).transfer_ownership("0x" + "00" * 20)

    def test_zero_hash_rejected_before_sending(self, server, alice, registry):
        with pytest.raises(InvalidHash):
            RegistryClient(server.url, alice).create_root_node(ZERO_HASH)
        assert registry.get_stats() == 0

    def test_zero_hash_rejected_by_server(self, server, alice, registry):
        call = sign_call(make_call("create_root_node", {"data_hash": "0x" + "00" * 32}), alice)
        status, data = _post(server.url, json.dumps(call).encode())

        assert status == 400
        assert data["code"] == "InvalidHash"
        assert registry.get_stats() == 0

    def test_ownership(self, server, registry, deployer, alice):
        owner = RegistryClient(server.url, deployer)
        assert owner.owner == deployer.address

        owner.transfer_ownership(alice.address)
        assert owner.owner == alice.address
        assert registry.owner == alice.address

    def test_info(self, server, registry):
        info = RegistryClient(server.url).info()
        assert info == {
            "kind": "fractal",
            "address": registry.address,
            "owner": registry.owner,
            "total_nodes": 0,
        }

    def test_events(self, server, alice):
        client = RegistryClient(server.url, alice)
        root = client.create_root_node(H1, "root")
        client.deactivate_node(root)

        names = [e.name for e in client.events()]
        assert names == ["OwnershipTransferred", NODE_CREATED, NODE_DEACTIVATED]

        created = client.events(name=NODE_CREATED)
        assert len(created) == 1
        assert created[0].args["creator"] == alice.address
        assert [e.sequence for e in client.events(since=2)] == [2]

    def test_write_without_account(self, server):
        with pytest.raises(ValueError):
            RegistryClient(server.url).create_root_node(H1)


class TestTransactionEndpoint:

    def test_unsigned_call(self, server, registry):
        call = make_call("create_root_node", {"data_hash": "0x" + "ab" * 32})
        status, data = _post(server.url, json.dumps(call).encode())

        assert status == 400
        assert data["code"] == "InvalidSignature"
        assert registry.get_stats() == 0

    def test_tampered_call(self, server, registry, alice):
        call = sign_call(make_call("deactivate_node", {"node_id": 0}), alice)
        call["params"] = {"node_id": 1}
        status, data = _post(server.url, json.dumps(call).encode())

        assert status == 400
        assert data["code"] == "InvalidSignature"

    def test_unknown_method(self, server, alice):
        call = sign_call(make_call("get_stats", {}), alice)
        status, data = _post(server.url, json.dumps(call).encode())

        assert status == 400
        assert "Unknown method" in data["error"]

    def test_bad_params(self, server, alice):
        call = sign_call(make_call("deactivate_node", {"node": 0}), alice)
        status, data = _post(server.url, json.dumps(call).encode())

        assert status == 400
        assert "Invalid params" in data["error"]

    def test_caller_cannot_be_injected(self, server, registry, alice, bob):
        """A caller param is rejected; the signer is always the caller."""
        call = sign_call(make_call("create_root_node", {
            "caller": bob.address,
            "data_hash": "0x" + "ab" * 32,
        }), alice)
        status, _ = _post(server.url, json.dumps(call).encode())

        assert status == 400
        assert registry.get_stats() == 0

    def test_invalid_json(self, server):
        status, data = _post(server.url, b"{not json")
        assert status == 400
        assert "Invalid JSON" in data["error"]

    def test_stale_signature(self, registry, alice):
        server = _serve(registry, signature_max_age=-1)
        try:
            with pytest.raises(InvalidSignature):
                RegistryClient(server.url, alice).create_root_node(H1)
        finally:
            server.shutdown()
        assert registry.get_stats() == 0

    def test_status_codes(self, server, registry, alice):
        registry.create_root_node(alice.address, H1)

        def get(path):
            try:
                with urlopen(f"{server.url}{path}", timeout=10) as response:
                    return response.status
            except HTTPError as e:
                return e.code

        assert get("/nodes/0") == 200
        assert get("/nodes/9") == 404
        assert get("/nodes/abc") == 400
        assert get("/creators/0x1234/nodes") == 400
        assert get("/nowhere") == 404


class TestSimpleRegistryOverHttp:

    @pytest.fixture
    def simple_server(self, deployer):
        server = _serve(NodeRegistry(owner=deployer.address))
        yield server
        server.shutdown()

    def test_register_and_update(self, simple_server, deployer, alice):
        a = RegistryClient(simple_server.url, alice)
        node_id = a.register_node(H1)

        with pytest.raises(NotOwner):
            a.update_node(node_id, H2)

        RegistryClient(simple_server.url, deployer).update_node(node_id, H2)
        assert a.get_node(node_id).data_hash == H2
        assert a.get_stats() == 1

    def test_fractal_methods_unavailable(self, simple_server, alice):
        with pytest.raises(RuntimeError, match="Unknown method"):
            RegistryClient(simple_server.url, alice).create_root_node(H1)


class TestReplayProtection:

    def test_resubmitted_call_rejected(self, registry, alice):
        """A captured signed call cannot be applied twice."""
        server = RegistryServer(registry, port=0)
        call = sign_call(make_call("create_root_node", {"data_hash": "0x" + "ab" * 32}), alice)

        assert server.execute(call) == 0
        with pytest.raises(InvalidSignature):
            server.execute(call)
        assert registry.get_stats() == 1

    def test_resubmitted_call_over_http(self, server, registry, alice):
        body = json.dumps(sign_call(make_call("create_root_node", {"data_hash": "0x" + "ab" * 32}), alice)).encode()

        assert _post(server.url, body)[0] == 200
        status, data = _post(server.url, body)
        assert status == 400
        assert data["code"] == "InvalidSignature"
        assert registry.get_stats() == 1

    def test_same_operation_twice(self, server, registry, alice):
        """Separately signed calls with equal params both go through."""
        client = RegistryClient(server.url, alice)
        client.create_root_node(H1)
        client.create_root_node(H1)
        assert registry.get_stats() == 2


class TestUnexpectedErrors:

    def test_read_failure_returns_500(self, registry, monkeypatch):
        def broken():
            raise RuntimeError("disk gone")

        monkeypatch.setattr(registry, "get_stats", broken)
        server = _serve(registry)
        try:
            with pytest.raises(HTTPError) as exc:
                urlopen(f"{server.url}/stats", timeout=10)
            assert exc.value.code == 500
            assert json.loads(exc.value.read())["error"] == "disk gone"

            # The server keeps serving
            assert RegistryClient(server.url).health()
        finally:
            server.shutdown()
