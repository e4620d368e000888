# blockweave/storage.py
"""
Store directory primitives.

Several processes may open the same store (a running server and local
CLI commands, for example). They coordinate through an exclusive lock
on store_dir/registry.lock, held around every read-modify-write, and
every JSON file is replaced atomically so a failed write leaves the
previous version in place.
"""

import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any

# Cross-platform file locking: msvcrt on Windows, fcntl elsewhere
if os.name == "nt":
    import msvcrt

    def _lock_file(f):
        f.seek(0)
        # LK_LOCK retries for ~10s before raising OSError
        msvcrt.locking(f.fileno(), msvcrt.LK_LOCK, 1)

    def _unlock_file(f):
        f.seek(0)
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock_file(f):
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)

    def _unlock_file(f):
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


LOCK_FILE = "registry.lock"


@contextmanager
def store_lock(store_dir: Path | str):
    """
    Hold the exclusive lock of a store directory.

    Blocks until no other holder (in this or another process) remains.
    Not reentrant: a holder must not take it again.
    """
    store_dir = Path(store_dir)
    store_dir.mkdir(parents=True, exist_ok=True)
    lock_path = store_dir / LOCK_FILE
    if not lock_path.exists():
        with open(lock_path, "a") as f:
            f.write("lock")

    handle = open(lock_path, "r+")
    try:
        _lock_file(handle)
        try:
            yield
        finally:
            _unlock_file(handle)
    finally:
        handle.close()


def write_json(path: Path | str, data: Any) -> None:
    """Write JSON to path atomically (write temp, fsync, replace)."""
    path = Path(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
