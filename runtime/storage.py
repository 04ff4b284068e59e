"""Key-value storage partitions and the snapshot synchronization port.

Several contexts may open the same partition. A write made by one context
is reported to the others on their next ``poll()``, never to the writer.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

Change = Tuple[str, str]  # (key, new value)

class KeyValueStorage(Protocol):
    """One context's handle on a partition shared with other contexts."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def poll(self) -> List[Change]:
        """Writes made by other contexts since the last poll."""
        ...

class MemoryPartition:
    """In-process partition; each open() returns one context's handle."""

    def __init__(self):
        self._items: Dict[str, str] = {}
        self._handles: List["MemoryStorage"] = []

    def open(self) -> "MemoryStorage":
        handle = MemoryStorage(self)
        self._handles.append(handle)
        return handle

    def _write(self, sender: "MemoryStorage", key: str, value: str) -> None:
        self._items[key] = value
        for h in self._handles:
            if h is not sender:
                h._pending.append((key, value))

class MemoryStorage:
    """One context's view of a MemoryPartition."""

    def __init__(self, partition: MemoryPartition):
        self._partition = partition
        self._pending: List[Change] = []

    def get_item(self, key: str) -> Optional[str]:
        return self._partition._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._partition._write(self, key, value)

    def poll(self) -> List[Change]:
        changes, self._pending = self._pending, []
        return changes

class FileStorage:
    """Partition backed by one JSON file per key in a shared directory.

    Other processes are detected by file stat changes when polled.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._seen: Dict[str, Tuple[int, int]] = {}
        for path in self.directory.glob("*.json"):
            self._seen[path.stem] = self._stat(path)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    @staticmethod
    def _stat(path: Path) -> Tuple[int, int]:
        st = path.stat()
        return (st.st_mtime_ns, st.st_size)

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        self._seen[key] = self._stat(path)
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        # Each write gets its own temp file in the partition directory
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f"{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        self._seen[key] = self._stat(path)

    def poll(self) -> List[Change]:
        changes: List[Change] = []
        for path in self.directory.glob("*.json"):
            key = path.stem
            try:
                stamp = self._stat(path)
                if self._seen.get(key) == stamp:
                    continue
                value = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            self._seen[key] = stamp
            changes.append((key, value))
        return changes

class StorageSync:
    """Snapshot port over one slot of a storage partition.

    Remote snapshots replace local state wholesale; the last write to reach
    the partition wins.
    """

    def __init__(self, storage: KeyValueStorage, key: str):
        self.storage = storage
        self.key = key
        self._callbacks: List[Callable[[str], None]] = []

    def load_snapshot(self) -> Optional[str]:
        return self.storage.get_item(self.key)

    def publish_snapshot(self, snapshot: dict) -> None:
        self.storage.set_item(self.key, json.dumps(snapshot))

    def on_remote_snapshot(self, callback: Callable[[str], None]) -> None:
        self._callbacks.append(callback)

    def poll(self) -> int:
        """Deliver pending remote writes to this slot; returns how many arrived."""
        delivered = 0
        for key, value in self.storage.poll():
            if key != self.key:
                continue
            logger.debug("[Sync] Remote snapshot on %s (%d bytes)", key, len(value))
            for cb in list(self._callbacks):
                cb(value)
            delivered += 1
        return delivered
