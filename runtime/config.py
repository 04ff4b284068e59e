import os
from pathlib import Path
from typing import Dict, Tuple

from pydantic import BaseModel, Field

from engine.model import DEFAULT_SPEED_BAND, MAP_SIZE, SNAP_THRESHOLD, SPEED_TIERS, SpeedTier

ENV_PREFIX = "POLAROPS_"

class Settings(BaseModel):
    """Runtime configuration for a command session."""
    map_size: float = MAP_SIZE
    tick_ms: int = 100
    time_compression: float = 1.0
    poll_ms: int = 250  # How often the storage partition is checked for remote writes
    snap_threshold: float = SNAP_THRESHOLD
    speed_band: Tuple[float, float] = DEFAULT_SPEED_BAND
    speed_tiers: Dict[SpeedTier, float] = Field(default_factory=lambda: dict(SPEED_TIERS))
    storage_key: str = "POLAR_OPS_DATA"
    storage_dir: Path = Path(".polar_ops")
    seed: int = 42

_ENV_FIELDS = ("map_size", "tick_ms", "time_compression", "poll_ms", "snap_threshold",
               "storage_key", "storage_dir", "seed")

def load_settings(**overrides) -> Settings:
    """Defaults, then POLAROPS_* environment variables, then explicit overrides."""
    values = {}
    for name in _ENV_FIELDS:
        raw = os.getenv(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = raw
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)
