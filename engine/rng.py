from typing import Tuple

import numpy as np

class DRNG:
    """Seeded random source for unit speeds and generated unit ids."""

    def __init__(self, seed: int):
        self.g = np.random.Generator(np.random.PCG64(seed))

    def uniform(self, a: float, b: float) -> float:
        """Return a random float in [a, b)."""
        return float(self.g.uniform(a, b))

    def integer(self, low: int, high: int) -> int:
        """Return a random int in [low, high)."""
        return int(self.g.integers(low, high))

    def speed(self, band: Tuple[float, float]) -> float:
        """Cruise speed in distance units per tick, drawn from band."""
        return self.uniform(band[0], band[1])
