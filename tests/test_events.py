# tests/test_events.py
"""Tests for the event log and registry notifications."""

import json
import logging
import tempfile
from pathlib import Path

import pytest

from blockweave.encoding import content_hash
from blockweave.errors import NotCreator
from blockweave.events import NODE_CREATED, NODE_DEACTIVATED, Event, EventLog
from blockweave.registry import FractalRegistry

OWNER = "0x" + "0a" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20


@pytest.fixture
def log_dir():
    """Create temporary log directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestEventLog:

    def test_sequences_are_dense(self):
        log = EventLog()
        first = log.emit("A", {"x": 1}, timestamp=10)
        second = log.emit("B", {"x": 2}, timestamp=11)

        assert (first.sequence, second.sequence) == (0, 1)
        assert log.last() == second
        assert len(log) == 2

    def test_list_filters(self):
        log = EventLog()
        log.emit("A", {})
        log.emit("B", {})
        log.emit("A", {})

        assert [e.sequence for e in log.list(name="A")] == [0, 2]
        assert [e.sequence for e in log.list(since=1)] == [1, 2]
        assert [e.sequence for e in log.list(name="A", since=1)] == [2]
        assert log.list(name="C") == []

    def test_persisted(self, log_dir):
        log = EventLog(log_dir)
        log.emit("A", {"nodeId": 1}, registry="0xabc", timestamp=5)

        reloaded = EventLog(log_dir)
        assert reloaded.list() == log.list()
        assert reloaded.last().registry == "0xabc"

    def test_corrupt_log_starts_empty(self, log_dir, caplog):
        (log_dir / "events.json").write_text("{not json")

        with caplog.at_level(logging.WARNING):
            log = EventLog(log_dir)

        assert len(log) == 0
        assert "Failed to load event log" in caplog.text

    def test_event_dict(self):
        event = Event(sequence=3, name="A", args={"k": "v"}, timestamp=9, registry="0x1")
        assert Event.from_dict(json.loads(json.dumps(event.to_dict()))) == event

    def test_listed_events_are_read_only(self):
        """History cannot be rewritten through a returned event."""
        log = EventLog()
        log.emit("A", {"nodeId": 1})

        with pytest.raises(TypeError):
            log.list()[0].args["nodeId"] = 2
        assert log.list()[0].args["nodeId"] == 1

    def test_caller_dict_not_shared(self):
        args = {"nodeId": 1}
        event = EventLog().emit("A", args)
        args["nodeId"] = 2
        assert event.args["nodeId"] == 1

    def test_failed_write_appends_nothing(self, log_dir, monkeypatch):
        log = EventLog(log_dir)
        log.emit("A", {})

        def fail():
            raise OSError("disk full")

        monkeypatch.setattr(log, "_save", fail)
        with pytest.raises(OSError):
            log.emit("B", {})
        assert [e.name for e in log] == ["A"]


class TestSubscriptions:

    def test_listener_sees_committed_state(self):
        registry = FractalRegistry(owner=OWNER)
        seen = []

        def listener(event):
            # State is already committed when the listener runs
            seen.append((event.name, registry.get_stats()))

        registry.subscribe(listener)
        registry.create_root_node(ALICE, content_hash(b"a"))
        registry.deactivate_node(ALICE, 0)

        assert seen == [(NODE_CREATED, 1), (NODE_DEACTIVATED, 1)]

    def test_no_event_on_rejection(self):
        registry = FractalRegistry(owner=OWNER)
        registry.create_root_node(ALICE, content_hash(b"a"))
        seen = []
        registry.subscribe(seen.append)

        with pytest.raises(NotCreator):
            registry.deactivate_node(BOB, 0)

        assert seen == []

    def test_unsubscribe(self):
        registry = FractalRegistry(owner=OWNER)
        seen = []
        unsubscribe = registry.subscribe(seen.append)

        registry.create_root_node(ALICE, content_hash(b"a"))
        unsubscribe()
        registry.create_root_node(ALICE, content_hash(b"b"))

        assert len(seen) == 1

    def test_failing_listener_does_not_undo_change(self, caplog):
        registry = FractalRegistry(owner=OWNER)

        def broken(event):
            raise RuntimeError("indexer down")

        registry.subscribe(broken)
        with caplog.at_level(logging.ERROR):
            node_id = registry.create_root_node(ALICE, content_hash(b"a"))

        assert registry.get_node(node_id).creator == ALICE
        assert registry.events.last().name == NODE_CREATED
        assert "Event listener failed" in caplog.text
