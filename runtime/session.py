import logging
from dataclasses import dataclass
from typing import Optional

from engine.motion import MotionEngine
from engine.rng import DRNG
from engine.store import SharedStateStore
from engine.workflow import CommandWorkflow
from .config import Settings
from .runner import TickRunner
from .storage import FileStorage, KeyValueStorage, StorageSync

logger = logging.getLogger(__name__)

@dataclass
class Session:
    """Everything one command context owns, wired together."""
    settings: Settings
    sync: StorageSync
    store: SharedStateStore
    motion: MotionEngine
    workflow: CommandWorkflow
    runner: TickRunner

def build_session(settings: Settings, storage: Optional[KeyValueStorage] = None,
                  seed: Optional[int] = None) -> Session:
    """Compose store, motion, workflow and runner over a storage partition.

    storage defaults to a FileStorage in settings.storage_dir.
    """
    if storage is None:
        storage = FileStorage(settings.storage_dir)
    sync = StorageSync(storage, settings.storage_key)
    store = SharedStateStore(sync=sync, rng=DRNG(settings.seed if seed is None else seed),
                             speed_band=settings.speed_band)
    motion = MotionEngine(store, snap_threshold=settings.snap_threshold,
                          tick_ms=settings.tick_ms)
    workflow = CommandWorkflow(store, motion, speed_tiers=settings.speed_tiers,
                               map_size=settings.map_size)
    runner = TickRunner(motion, sync=sync, tick_ms=settings.tick_ms,
                        time_compression=settings.time_compression, poll_ms=settings.poll_ms)
    logger.info("[Session] Ready on %s (%d units, %d squads)", settings.storage_key,
                len(store.state.units), len(store.state.squads))
    return Session(settings=settings, sync=sync, store=store, motion=motion,
                   workflow=workflow, runner=runner)
