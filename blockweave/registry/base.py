# blockweave/registry/base.py
"""
Shared registry machinery.

Both registry kinds have a single owner, serialize every operation,
emit events for each committed change, and optionally persist their
node table to a JSON key-value file:

    store_dir/
        registry.json     # kind, address, owner, node table
        events.json       # append-only event log
        registry.lock     # held around every operation

A persisted registry may be shared by several processes. Each
operation takes the store lock and reloads the tables from disk before
it validates anything, so ids stay unique across processes.
"""

import functools
import json
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

from ..encoding import NULL_ADDRESS, address_from_bytes, canonical_json, require_address, to_address
from ..errors import NotOwner
from ..events import Event, EventLog, OWNERSHIP_TRANSFERRED
from ..storage import store_lock, write_json

logger = logging.getLogger(__name__)

STATE_FILE = "registry.json"
STATE_VERSION = "1.0"


def read_state(store_dir: Path | str) -> Dict[str, Any]:
    """
    Read a registry state file.

    Raises:
        FileNotFoundError: store_dir holds no registry
    """
    path = Path(store_dir) / STATE_FILE
    if not path.exists():
        raise FileNotFoundError(f"No registry in {store_dir}")
    with open(path) as f:
        return json.load(f)


class BaseRegistry:
    """
    Owner-administered registry with serialized operations.

    Subclasses clear their node tables in _reset(), serialize them in
    _state() and rebuild them in _restore(). MUTATORS names the
    operations that take the caller identity as first argument.

    Every operation runs inside _transaction(). A mutation validates
    first, applies its change to the tables, then calls _commit() with
    a function that reverts that change if persisting fails.
    """

    kind = "base"
    MUTATORS: Tuple[str, ...] = ("transfer_ownership",)

    def __init__(
        self,
        owner: str,
        store_dir: Path | str | None = None,
        address: str = None,
        clock: Callable[[], float] = None,
    ):
        """
        Create a new registry.

        Args:
            owner: Initial owner (the deploying identity)
            store_dir: Directory to persist state in (memory only if None)
            address: Registry address (derived if not provided)
            clock: Time source returning UNIX seconds (default: time.time)
        """
        owner = require_address(owner)
        self._setup(store_dir, clock)
        with self._transaction():
            if self.store_dir is not None and (self.store_dir / STATE_FILE).exists():
                raise ValueError(f"{self.store_dir} already holds a registry")

            self._owner = owner
            self.deployed_at = self._now()
            if address:
                self.address = to_address(address)
            else:
                seed = [owner, self.deployed_at, self.kind, uuid.uuid4().hex]
                self.address = address_from_bytes(canonical_json(seed).encode())

            self._save()
            self._emit(OWNERSHIP_TRANSFERRED, {
                "previousOwner": NULL_ADDRESS,
                "newOwner": owner,
            })
        logger.info(f"Created {self.kind} registry {self.address} owned by {owner}")

    @classmethod
    def load(cls, store_dir: Path | str, clock: Callable[[], float] = None):
        """Reopen a registry persisted in store_dir."""
        data = read_state(store_dir)
        kind = data.get("kind")
        if kind != cls.kind:
            raise ValueError(f"{store_dir} holds a {kind!r} registry, not {cls.kind!r}")

        registry = cls.__new__(cls)
        registry._setup(store_dir, clock)
        registry._apply(data)
        logger.debug(f"Loaded {cls.kind} registry {registry.address} from {store_dir}")
        return registry

    def _setup(self, store_dir, clock):
        self.store_dir = Path(store_dir) if store_dir is not None else None
        if self.store_dir is not None:
            self.store_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._depth = 0
        self.events = EventLog(self.store_dir)
        self._reset()

    def _reset(self):
        pass

    def _state(self) -> Dict[str, Any]:
        return {}

    def _restore(self, data: Dict[str, Any]):
        pass

    def _apply(self, data: Dict[str, Any]):
        """Replace the in-memory state with a state file's contents."""
        self._owner = data["owner"]
        self.address = data["address"]
        self.deployed_at = data.get("deployed_at", 0)
        self._reset()
        self._restore(data)

    def _reload(self):
        """Pick up changes other processes committed to the store."""
        if not (self.store_dir / STATE_FILE).exists():
            return
        self._apply(read_state(self.store_dir))
        self.events.reload()

    @contextmanager
    def _transaction(self):
        """
        Run an operation exclusively.

        Holds the registry lock and, at the outermost level of a
        persisted registry, the store lock, reloading state from disk
        on entry. Nested use is allowed.
        """
        with self._lock:
            if self._depth or self.store_dir is None:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            with store_lock(self.store_dir):
                self._reload()
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1

    def _save(self):
        """Write the state file (no-op for in-memory registries)."""
        if self.store_dir is None:
            return
        data = {
            "version": STATE_VERSION,
            "kind": self.kind,
            "address": self.address,
            "owner": self._owner,
            "deployed_at": self.deployed_at,
        }
        data.update(self._state())
        write_json(self.store_dir / STATE_FILE, data)

    def _commit(self, undo: Callable[[], None], name: str, args: Dict[str, Any],
                timestamp: int = None) -> Event:
        """
        Persist an applied change and emit its event.

        If the state or event write fails, undo() reverts the tables and
        the previous state file is restored before the error propagates.
        """
        saved = False
        try:
            self._save()
            saved = True
            return self._emit(name, args, timestamp=timestamp)
        except Exception:
            undo()
            if saved:
                self._save()
            raise

    def _now(self) -> int:
        return int(self._clock())

    def _emit(self, name: str, args: Dict[str, Any], timestamp: int = None) -> Event:
        return self.events.emit(
            name,
            args,
            registry=self.address,
            timestamp=self._now() if timestamp is None else timestamp,
        )

    def _only_owner(self, caller: str) -> str:
        caller = require_address(caller)
        if caller != self._owner:
            raise NotOwner(f"{caller} is not the registry owner")
        return caller

    @property
    def owner(self) -> str:
        """Current registry owner."""
        with self._transaction():
            return self._owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """
        Hand the registry to a new owner.

        Raises:
            NotOwner: caller is not the current owner
            InvalidAddress: new_owner is the null identity or malformed
        """
        with self._transaction():
            self._only_owner(caller)
            new_owner = require_address(new_owner)
            previous = self._owner

            def undo():
                self._owner = previous

            self._owner = new_owner
            self._commit(undo, OWNERSHIP_TRANSFERRED, {
                "previousOwner": previous,
                "newOwner": new_owner,
            })
        logger.info(f"Registry {self.address} ownership: {previous} -> {new_owner}")

    def subscribe(self, listener: Callable[[Event], None]) -> Callable[[], None]:
        """Receive each event after its change commits."""
        return self.events.subscribe(listener)

    def as_caller(self, caller: str) -> "CallerView":
        """Bind a caller identity, for code that acts as one account."""
        return CallerView(self, caller)


class CallerView:
    """
    A registry seen from one caller.

    Mutating operations get the caller filled in; everything else is
    passed straight through.
    """

    def __init__(self, registry: BaseRegistry, caller: str):
        self.registry = registry
        self.caller = require_address(caller)

    def __getattr__(self, name: str):
        attr = getattr(self.registry, name)
        if name in self.registry.MUTATORS:
            return functools.partial(attr, self.caller)
        return attr

    def __repr__(self) -> str:
        return f"<CallerView {self.caller} on {self.registry.address}>"
