import asyncio
import logging
from dataclasses import asdict
from typing import Callable, List, Optional

from engine.model import Event
from engine.motion import MotionEngine
from engine.snapshot import to_snapshot
from engine.workflow import Advisory
from .eventlog import ADVISORY, EventLog
from .storage import StorageSync

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"danger": logging.WARNING, "warning": logging.INFO}

class TickRunner:
    """Async driver that steps motion on a fixed cadence.

    Commands and ticks share one lock, so a command always runs to
    completion between two ticks. Remote snapshots are picked up between
    ticks as well.
    """

    def __init__(self, motion: MotionEngine, sync: Optional[StorageSync] = None,
                 tick_ms: int = 100, time_compression: float = 1.0, poll_ms: int = 250):
        self.motion = motion
        self.sync = sync
        self.tick_ms = tick_ms
        self.time_compression = time_compression
        self.sleep_s = (tick_ms / 1000.0) / max(1.0, time_compression)
        self.poll_every = max(1, poll_ms // max(1, tick_ms))
        self.ticks = 0
        self.events = EventLog()
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    async def start(self):
        """Start the tick loop."""
        if self._task:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        """Stop the tick loop gracefully."""
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def tick(self) -> List[Event]:
        """One simulation tick: pick up remote writes, then advance units."""
        if self.sync is not None and self.ticks % self.poll_every == 0:
            self.sync.poll()
        evts = self.motion.step()
        self.ticks += 1
        if evts:
            self.events.append_many(evts)
        return evts

    async def _loop(self):
        """Main tick loop."""
        while True:
            try:
                async with self._lock:
                    evts = self.tick()
            except Exception:
                logger.exception("[TickRunner] Tick %d failed", self.ticks)
                self.ticks += 1
                evts = []
            if evts:
                logger.debug("[TickRunner] Tick produced %d events", len(evts))
            await asyncio.sleep(self.sleep_s)

    def record(self, advisory: Advisory) -> None:
        """Put an advisory on the intel feed."""
        self.events.append(Event(ADVISORY, self.motion.ts_ms, asdict(advisory)))
        logger.log(_LOG_LEVELS.get(advisory.level, logging.DEBUG), "%s", advisory.message)

    async def run_command(self, command: Callable[..., Advisory], *args, **kwargs) -> Advisory:
        """Run a workflow command between ticks and log its advisory."""
        async with self._lock:
            advisory = command(*args, **kwargs)
            self.record(advisory)
        return advisory

    async def snapshot(self) -> dict:
        """Get current state as a snapshot document (consistent between ticks)."""
        async with self._lock:
            return to_snapshot(self.motion.store.state)

    def set_time_compression(self, time_compression: float):
        """Update time compression factor (1.0 = real-time, higher = faster)."""
        self.time_compression = max(0.1, min(1000.0, time_compression))
        self.sleep_s = (self.tick_ms / 1000.0) / max(1.0, self.time_compression)
        logger.info("[TickRunner] Time compression set to %sx (sleep: %.4fs)",
                    self.time_compression, self.sleep_s)
