# tests/test_cli.py
"""Tests for the blockweave command line."""

import json

import pytest

from blockweave.cli import main
from blockweave.config import ENV_KEYS
from blockweave.deploy import open_registry
from blockweave.encoding import content_hash, hash_hex
from blockweave.identity import AccountStore
from blockweave.server import RegistryServer


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Empty working directory and no BlockWeave environment."""
    monkeypatch.chdir(tmp_path)
    for name in ENV_KEYS:
        monkeypatch.delenv(name, raising=False)
    return tmp_path


@pytest.fixture
def run(workdir, capsys):
    """Run the CLI against the temporary store and keystore."""
    base = [
        "--store-dir", str(workdir / "registry"),
        "--keystore-dir", str(workdir / "keys"),
    ]

    def _run(*argv):
        main(base + list(argv))
        return capsys.readouterr().out

    return _run


@pytest.fixture
def deployed(run):
    """Deployer and alice accounts, with a fractal registry deployed."""
    run("account", "create", "deployer")
    run("account", "create", "alice")
    run("--account", "deployer", "deploy")
    return run


def _fail(run, capsys, *argv) -> str:
    with pytest.raises(SystemExit) as exc:
        run(*argv)
    assert exc.value.code == 1
    return capsys.readouterr().err


class TestAccountCommands:

    def test_create_and_list(self, run, workdir):
        out = run("account", "create", "deployer")
        assert "Created account deployer" in out

        address = AccountStore(workdir / "keys").get("deployer").address
        assert address in out
        assert run("account", "show", "deployer").strip() == f"deployer: {address}"
        assert run("account", "list").strip() == f"deployer: {address}"

    def test_list_empty(self, run):
        assert "No accounts" in run("account", "list")

    def test_import(self, run, workdir):
        run("account", "create", "source")
        source = AccountStore(workdir / "keys").get("source")
        key_file = workdir / "key.pem"
        key_file.write_bytes(source.private_key)

        out = run("account", "import", "copy", str(key_file))
        assert source.address in out

    def test_show_by_address(self, run, workdir):
        run("account", "create", "deployer")
        address = AccountStore(workdir / "keys").get("deployer").address

        assert run("account", "show", address).strip() == f"deployer: {address}"
        assert run("account", "show", address.upper().replace("0X", "0x")).strip() == f"deployer: {address}"

    def test_show_unknown(self, run, capsys):
        assert "No account named" in _fail(run, capsys, "account", "show", "nobody")


class TestRegistryCommands:

    def test_deploy(self, run, workdir):
        run("account", "create", "deployer")
        out = run("--account", "deployer", "deploy")

        registry = open_registry(workdir / "registry")
        assert f"BlockWeave fractal registry deployed to: {registry.address}" in out
        assert run("owner").strip() == registry.owner

    def test_deploy_simple(self, run, workdir):
        run("account", "create", "deployer")
        assert "simple registry" in run("--account", "deployer", "deploy", "--kind", "simple")
        assert open_registry(workdir / "registry").kind == "simple"

    def test_deploy_without_account(self, run, capsys):
        assert "No signing account" in _fail(run, capsys, "deploy")

    def test_node_lifecycle(self, deployed, workdir):
        run = deployed
        assert "Created root node 0" in run("--account", "alice", "root", "--text", "hello", "--label", "greeting")
        assert "Created node 1 under 0" in run("--account", "alice", "child", "0", "--text", "world")
        assert "Created node 2 under 0" in run("--account", "deployer", "child", "0", hash_hex(content_hash(b"x")))
        assert run("children", "0").split() == ["1", "2"]

        alice = AccountStore(workdir / "keys").get("alice").address
        assert run("created-by", alice).split() == ["0", "1"]

        run("--account", "alice", "deactivate", "0")
        node = json.loads(run("show", "0"))
        assert node["is_active"] is False
        assert node["label"] == "greeting"
        assert node["data_hash"] == hash_hex(content_hash(b"hello"))
        assert "Total nodes: 3" in run("stats")

    def test_file_hash(self, deployed, workdir):
        run = deployed
        data_file = workdir / "data.txt"
        data_file.write_text("payload")

        run("--account", "alice", "root", "--file", str(data_file))
        node = json.loads(run("show", "0"))
        assert node["data_hash"] == hash_hex(content_hash(b"payload"))

    def test_childless_node(self, deployed):
        run = deployed
        run("--account", "alice", "root", "--text", "a")
        assert "has no children" in run("children", "0")

    def test_rejections_exit_nonzero(self, deployed, capsys):
        run = deployed
        run("--account", "alice", "root", "--text", "a")

        assert "did not create" in _fail(run, capsys, "--account", "deployer", "deactivate", "0")
        assert "not found" in _fail(run, capsys, "show", "7")
        assert "non-zero" in _fail(run, capsys, "--account", "alice", "root", "0x" + "00" * 32)
        assert "Provide a hash" in _fail(run, capsys, "--account", "alice", "root")
        assert "not the registry owner" in _fail(
            run, capsys, "--account", "alice", "transfer-ownership", "0x" + "11" * 20)

    def test_transfer_ownership(self, deployed, workdir):
        run = deployed
        alice = AccountStore(workdir / "keys").get("alice").address
        run("--account", "deployer", "transfer-ownership", alice)
        assert run("owner").strip() == alice

    def test_events(self, deployed):
        run = deployed
        run("--account", "alice", "root", "--text", "a")

        lines = run("events").strip().splitlines()
        assert [json.loads(line)["name"] for line in lines] == ["OwnershipTransferred", "NodeCreated"]
        assert len(run("events", "--name", "NodeCreated").strip().splitlines()) == 1

    def test_simple_registry_commands(self, run, workdir):
        run("account", "create", "deployer")
        run("--account", "deployer", "deploy", "--kind", "simple")

        assert "Registered node 0" in run("--account", "deployer", "register", "--text", "v1")
        assert "Updated node 0" in run("--account", "deployer", "update", "0", "--text", "v2")
        node = json.loads(run("show", "0"))
        assert node["data_hash"] == hash_hex(content_hash(b"v2"))

    def test_no_deployment(self, run, capsys):
        assert "No registry" in _fail(run, capsys, "stats")

    def test_hash(self, run):
        assert run("hash", "--text", "hello").strip() == hash_hex(content_hash(b"hello"))

    def test_no_command(self, run):
        with pytest.raises(SystemExit):
            run()


class TestRemoteMode:

    def test_commands_go_through_server(self, deployed, workdir):
        run = deployed
        server = RegistryServer(open_registry(workdir / "registry"), port=0)
        server.start_background()
        try:
            out = run("--url", server.url, "--account", "alice", "root", "--text", "remote")
            assert "Created root node 0" in out
            assert run("--url", server.url, "children", "0").strip() == "Node 0 has no children"
            assert "Total nodes: 1" in run("--url", server.url, "stats")
            names = [json.loads(line)["name"] for line in run("--url", server.url, "events").splitlines()]
            assert names[-1] == "NodeCreated"
        finally:
            server.shutdown()

        # The server wrote through to the same store
        assert open_registry(workdir / "registry").get_stats() == 1
