#!/usr/bin/env python3
"""
BlockWeave CLI

Command-line interface for deploying and using a node registry:
  blockweave account create|list|show - Manage local signing accounts
  blockweave deploy - Deploy a registry owned by the signing account
  blockweave root / child - Create nodes
  blockweave deactivate - Deactivate a node you created
  blockweave show / children / created-by / stats / owner / events - Read state
  blockweave serve - Serve the deployed registry over HTTP

Commands act on the local deployment in the configured store directory,
or on a remote server when --url (or rpc_url in config) is given.

Usage:
  blockweave account create <name>
  blockweave --account <name> deploy [--kind fractal|simple]
  blockweave --account <name> root (<hash> | --file <path> | --text <text>) [--label <label>]
  blockweave --account <name> child <parent> (<hash> | --file <path>) [--label <label>]
  blockweave children <node>
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .client import RegistryClient
from .config import Settings, load_settings, signing_account
from .deploy import deploy, open_registry
from .encoding import content_hash, file_hash, hash_hex
from .errors import RegistryError
from .identity import Account, AccountStore


def _settings(args) -> Settings:
    settings = load_settings(args.config)
    if args.store_dir:
        settings.store_dir = Path(args.store_dir)
    if args.keystore_dir:
        settings.keystore_dir = Path(args.keystore_dir)
    if args.account:
        settings.account = args.account
        settings.private_key = None
    if args.url:
        settings.rpc_url = args.url
    return settings


def _account(settings: Settings) -> Account:
    account = signing_account(settings)
    if account is None:
        raise ValueError("No signing account: use --account, BLOCKWEAVE_ACCOUNT or PRIVATE_KEY")
    return account


def _registry(settings: Settings, signed: bool = False):
    """
    Open the registry a command acts on.

    Returns a RegistryClient for remote use, otherwise the local
    registry (bound to the signing account when signed is set).
    Both expose the same operation names.
    """
    account = _account(settings) if signed else None
    if settings.rpc_url:
        return RegistryClient(settings.rpc_url, account)
    registry = open_registry(settings.store_dir)
    if signed:
        return registry.as_caller(account.address)
    return registry


def _data_hash(args) -> bytes | str:
    if args.file:
        return file_hash(Path(args.file))
    if args.text is not None:
        return content_hash(args.text.encode())
    if args.hash is None:
        raise ValueError("Provide a hash, --file or --text")
    return args.hash


def _print_json(data):
    print(json.dumps(data, indent=2))


def cmd_account(args):
    """Manage the local keystore."""
    settings = _settings(args)
    store = AccountStore(settings.keystore_dir)

    if args.action == "create":
        account = store.create(args.name)
        print(f"Created account {account.name}")
        print(f"  Address: {account.address}")
        print(f"  Keystore: {store.store_dir}")

    elif args.action == "import":
        pem = Path(args.key_file).read_bytes()
        account = store.import_private_key(args.name, pem)
        print(f"Imported account {account.name}: {account.address}")

    elif args.action == "show":
        account = store.get(args.name)
        if account is None and args.name.startswith("0x"):
            account = store.find_by_address(args.name)
        if account is None:
            raise ValueError(f"No account named {args.name!r}")
        print(f"{account.name}: {account.address}")

    else:
        accounts = store.list()
        if not accounts:
            print("No accounts")
        for account in accounts:
            print(f"{account.name}: {account.address}")


def cmd_deploy(args):
    """Deploy a registry owned by the signing account."""
    settings = _settings(args)
    deployment = deploy(settings, _account(settings), kind=args.kind)
    print(f"BlockWeave {deployment.kind} registry deployed to: {deployment.address}")
    print(f"  Owner: {deployment.owner}")
    print(f"  Store: {deployment.store_dir}")


def cmd_hash(args):
    """Print the content hash of a file or text."""
    print(hash_hex(_data_hash(args)))


def cmd_root(args):
    registry = _registry(_settings(args), signed=True)
    node_id = registry.create_root_node(_data_hash(args), args.label)
    print(f"Created root node {node_id}")


def cmd_child(args):
    registry = _registry(_settings(args), signed=True)
    node_id = registry.create_child_node(args.parent, _data_hash(args), args.label)
    print(f"Created node {node_id} under {args.parent}")


def cmd_deactivate(args):
    registry = _registry(_settings(args), signed=True)
    registry.deactivate_node(args.node)
    print(f"Deactivated node {args.node}")


def cmd_register(args):
    registry = _registry(_settings(args), signed=True)
    node_id = registry.register_node(_data_hash(args))
    print(f"Registered node {node_id}")


def cmd_update(args):
    registry = _registry(_settings(args), signed=True)
    registry.update_node(args.node, _data_hash(args))
    print(f"Updated node {args.node}")


def cmd_show(args):
    registry = _registry(_settings(args))
    _print_json(registry.get_node(args.node).to_dict())


def cmd_children(args):
    registry = _registry(_settings(args))
    children = registry.get_children(args.node)
    if not children:
        print(f"Node {args.node} has no children")
    for child_id in children:
        print(child_id)


def cmd_created_by(args):
    registry = _registry(_settings(args))
    for node_id in registry.get_created_by(args.address):
        print(node_id)


def cmd_stats(args):
    registry = _registry(_settings(args))
    print(f"Total nodes: {registry.get_stats()}")


def cmd_owner(args):
    registry = _registry(_settings(args))
    print(registry.owner)


def cmd_transfer_ownership(args):
    registry = _registry(_settings(args), signed=True)
    registry.transfer_ownership(args.new_owner)
    print(f"Ownership transferred to {args.new_owner}")


def cmd_events(args):
    settings = _settings(args)
    registry = _registry(settings)
    if settings.rpc_url:
        events = registry.events(name=args.name, since=args.since)
    else:
        events = registry.events.list(name=args.name, since=args.since)
    for event in events:
        print(json.dumps(event.to_dict()))


def cmd_serve(args):
    from .server import RegistryServer

    settings = _settings(args)
    server = RegistryServer(
        open_registry(settings.store_dir),
        host=args.host or settings.host,
        port=args.port if args.port is not None else settings.port,
        signature_max_age=settings.signature_max_age,
    )
    server.start()


def _add_hash_args(parser):
    parser.add_argument("hash", nargs="?", help="32-byte data hash (hex)")
    parser.add_argument("--file", help="Hash this file's content instead")
    parser.add_argument("--text", help="Hash this text instead")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockweave",
        description="BlockWeave - content-hash node registry",
    )
    parser.add_argument("--config", help="Settings YAML file (default: ./blockweave.yaml)")
    parser.add_argument("--store-dir", help="Directory of the deployed registry")
    parser.add_argument("--keystore-dir", help="Directory of local accounts")
    parser.add_argument("--account", help="Keystore account to sign with")
    parser.add_argument("--url", help="Registry server URL (remote mode)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # account command
    account_parser = subparsers.add_parser("account", help="Manage signing accounts")
    account_sub = account_parser.add_subparsers(dest="action", help="Account actions")
    create_parser = account_sub.add_parser("create", help="Create an account")
    create_parser.add_argument("name")
    import_parser = account_sub.add_parser("import", help="Import a PEM private key")
    import_parser.add_argument("name")
    import_parser.add_argument("key_file")
    show_parser = account_sub.add_parser("show", help="Show an account by name or address")
    show_parser.add_argument("name", help="Account name or 0x address")
    account_sub.add_parser("list", help="List accounts")
    account_parser.set_defaults(func=cmd_account)

    # deploy command
    deploy_parser = subparsers.add_parser("deploy", help="Deploy a registry")
    deploy_parser.add_argument("--kind", choices=["fractal", "simple"],
                               help="Registry kind (default: from settings)")
    deploy_parser.set_defaults(func=cmd_deploy)

    hash_parser = subparsers.add_parser("hash", help="Compute a content hash")
    hash_parser.add_argument("--file", help="File to hash")
    hash_parser.add_argument("--text", help="Text to hash")
    hash_parser.set_defaults(func=cmd_hash, hash=None)

    # node creation
    root_parser = subparsers.add_parser("root", help="Create a root node")
    _add_hash_args(root_parser)
    root_parser.add_argument("--label", default="", help="Node label")
    root_parser.set_defaults(func=cmd_root)

    child_parser = subparsers.add_parser("child", help="Create a child node")
    child_parser.add_argument("parent", type=int, help="Parent node id")
    _add_hash_args(child_parser)
    child_parser.add_argument("--label", default="", help="Node label")
    child_parser.set_defaults(func=cmd_child)

    deactivate_parser = subparsers.add_parser("deactivate", help="Deactivate a node you created")
    deactivate_parser.add_argument("node", type=int)
    deactivate_parser.set_defaults(func=cmd_deactivate)

    # simple registry
    register_parser = subparsers.add_parser("register", help="Register a hash (simple registry)")
    _add_hash_args(register_parser)
    register_parser.set_defaults(func=cmd_register)

    update_parser = subparsers.add_parser("update", help="Replace a node's hash (simple registry, owner only)")
    update_parser.add_argument("node", type=int)
    _add_hash_args(update_parser)
    update_parser.set_defaults(func=cmd_update)

    # reads
    show_node_parser = subparsers.add_parser("show", help="Show a node")
    show_node_parser.add_argument("node", type=int)
    show_node_parser.set_defaults(func=cmd_show)

    children_parser = subparsers.add_parser("children", help="List a node's children")
    children_parser.add_argument("node", type=int)
    children_parser.set_defaults(func=cmd_children)

    created_parser = subparsers.add_parser("created-by", help="List nodes created by an address")
    created_parser.add_argument("address")
    created_parser.set_defaults(func=cmd_created_by)

    stats_parser = subparsers.add_parser("stats", help="Show total node count")
    stats_parser.set_defaults(func=cmd_stats)

    owner_parser = subparsers.add_parser("owner", help="Show the registry owner")
    owner_parser.set_defaults(func=cmd_owner)

    transfer_parser = subparsers.add_parser("transfer-ownership", help="Hand the registry to a new owner")
    transfer_parser.add_argument("new_owner")
    transfer_parser.set_defaults(func=cmd_transfer_ownership)

    events_parser = subparsers.add_parser("events", help="Show the event log")
    events_parser.add_argument("--name", help="Only events with this name")
    events_parser.add_argument("--since", type=int, default=0, help="First sequence number")
    events_parser.set_defaults(func=cmd_events)

    serve_parser = subparsers.add_parser("serve", help="Serve the registry over HTTP")
    serve_parser.add_argument("--host", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except (RegistryError, ValueError, FileNotFoundError, ConnectionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
