"""Percentile-based volume intensity for footprint heatmap cells."""

from __future__ import annotations

from collections import deque
from typing import Iterable

from aggfootprint.data.types import PriceLevelStat


class QuantileColorScale:
    """Sliding window of cell volumes mapped to a ``[floor, 1.0]`` intensity.

    Bounds are the 5th / 95th percentile values of the window and are only
    recomputed once the window holds more than ``min_samples`` values.
    """

    def __init__(
        self,
        max_samples: int = 1000,
        min_samples: int = 10,
        lower_quantile: float = 0.05,
        upper_quantile: float = 0.95,
        floor: float = 0.1,
    ):
        self._samples: deque[float] = deque(maxlen=max_samples)
        self.min_samples = min_samples
        self.lower_quantile = lower_quantile
        self.upper_quantile = upper_quantile
        self.floor = floor
        self.lower = 0.0
        self.upper = 0.0

    def __len__(self) -> int:
        return len(self._samples)

    def observe(self, volumes: Iterable[float]) -> None:
        for v in volumes:
            if v > 0:
                self._samples.append(float(v))

        n = len(self._samples)
        if n > self.min_samples:
            ordered = sorted(self._samples)
            self.lower = ordered[int(n * self.lower_quantile)]
            self.upper = ordered[min(n - 1, int(n * self.upper_quantile))]

    def update(self, levels: Iterable[PriceLevelStat]) -> None:
        """Add the total volume of each cell."""
        self.observe(stat.total_volume for stat in levels)

    def intensity(self, volume: float) -> float:
        if self.upper <= self.lower or volume <= 0:
            return self.floor
        scaled = (volume - self.lower) / (self.upper - self.lower)
        return max(self.floor, min(1.0, scaled))
