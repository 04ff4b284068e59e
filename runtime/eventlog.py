from typing import List, Tuple

from engine.model import Event

ADVISORY = "Advisory"

class EventLog:
    """Append-only log of motion events and operator advisories."""

    def __init__(self):
        self._log: List[Event] = []

    def append(self, evt: Event) -> int:
        """Append one event and return its offset."""
        self._log.append(evt)
        return len(self._log) - 1

    def append_many(self, evts: List[Event]) -> Tuple[int, int]:
        """Append events and return (start_offset, end_offset)."""
        start = len(self._log)
        self._log.extend(evts)
        end = len(self._log) - 1
        return start, end

    def since(self, offset: int, limit: int = 1000) -> Tuple[List[Event], int]:
        """Return events starting from offset, up to limit."""
        offset = max(0, offset)
        chunk = self._log[offset: offset + limit]
        return chunk, offset + len(chunk)

    def intel(self, limit: int = 50) -> List[Event]:
        """Most recent advisories, newest first, as shown in the intel feed."""
        feed = [e for e in reversed(self._log) if e.kind == ADVISORY]
        return feed[:limit]
