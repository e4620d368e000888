# blockweave/events.py
"""
Registry notifications.

Every successful state change emits one Event. Events are kept in an
append-only log for external indexers; the registry never reads them
back to make decisions.

Event names:
- NodeCreated: a root or child node was created
- NodeDeactivated: a node's creator deactivated it
- OwnershipTransferred: the registry owner changed
- NodeRegistered / NodeUpdated: the simple node registry variant
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from .storage import write_json

logger = logging.getLogger(__name__)

NODE_CREATED = "NodeCreated"
NODE_DEACTIVATED = "NodeDeactivated"
OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
NODE_REGISTERED = "NodeRegistered"
NODE_UPDATED = "NodeUpdated"

Listener = Callable[["Event"], None]


@dataclass(frozen=True)
class Event:
    """
    A structured notification record.

    Attributes:
        sequence: Position in the log (dense from 0)
        name: Event name (NodeCreated, NodeDeactivated, ...)
        args: JSON-safe event fields (read-only)
        timestamp: UNIX seconds when the event was emitted
        registry: Address of the emitting registry
    """
    sequence: int
    name: str
    args: Mapping[str, Any]
    timestamp: int
    registry: str = ""

    def __post_init__(self):
        # Logged history cannot be edited through a returned event
        object.__setattr__(self, "args", MappingProxyType(dict(self.args)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "name": self.name,
            "args": dict(self.args),
            "timestamp": self.timestamp,
            "registry": self.registry,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            sequence=data["sequence"],
            name=data["name"],
            args=data.get("args", {}),
            timestamp=data.get("timestamp", 0),
            registry=data.get("registry", ""),
        )


class EventLog:
    """
    Append-only event log.

    If store_dir is given, the log is persisted to store_dir/events.json
    after every append; otherwise it lives in memory only.
    """

    def __init__(self, store_dir: Path | str | None = None):
        self.store_dir = Path(store_dir) if store_dir is not None else None
        self._events: List[Event] = []
        self._listeners: List[Listener] = []
        if self.store_dir is not None:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    def _log_path(self) -> Path:
        return self.store_dir / "events.json"

    def _load(self):
        """Load events from disk."""
        log_path = self._log_path()
        if not log_path.exists():
            return
        try:
            with open(log_path) as f:
                data = json.load(f)
            self._events = [Event.from_dict(e) for e in data.get("events", [])]
        except (json.JSONDecodeError, KeyError) as e:
            logger.warning(f"Failed to load event log {log_path}: {e}")
            self._events = []

    def _save(self):
        """Save events to disk."""
        if self.store_dir is None:
            return
        data = {
            "version": "1.0",
            "events": [e.to_dict() for e in self._events],
        }
        write_json(self._log_path(), data)

    def reload(self):
        """Re-read the log from disk (no-op for in-memory logs)."""
        if self.store_dir is not None:
            self._load()

    def emit(self, name: str, args: Dict[str, Any], registry: str = "",
             timestamp: Optional[int] = None) -> Event:
        """Append an event and notify listeners."""
        event = Event(
            sequence=len(self._events),
            name=name,
            args=args,
            timestamp=int(time.time()) if timestamp is None else timestamp,
            registry=registry,
        )
        self._events.append(event)
        try:
            self._save()
        except Exception:
            self._events.pop()
            raise
        logger.debug(f"Event {event.sequence}: {name} {args}")

        # The write is already committed; a failing listener must not undo it
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {name}")
        return event

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with each new event.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def list(self, name: str = None, since: int = 0) -> List[Event]:
        """List events, optionally filtered by name and starting sequence."""
        return [
            e for e in self._events[max(since, 0):]
            if name is None or e.name == name
        ]

    def last(self) -> Optional[Event]:
        return self._events[-1] if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))
