"""Access-volume spike — records_viewed outside the population's 5–95% band.

Bounds are continuous percentiles (linear interpolation between order
statistics) over every event in the run, so one baseline is shared by all
events.  Values exactly on a bound are not spikes.
"""

from dataclasses import dataclass

import numpy as np

from featurizer.detectors import FlagDetector
from featurizer.errors import EmptyPopulationError


@dataclass(frozen=True)
class PopulationBounds:
    p5: float
    p95: float


def population_bounds(events, low=5.0, high=95.0) -> PopulationBounds:
    """Percentile bounds of records_viewed across *events*."""
    if not events:
        raise EmptyPopulationError("population_baseline")
    values = np.fromiter((e.records_viewed for e in events), dtype=np.float64, count=len(events))
    p_low, p_high = np.percentile(values, [low, high])
    return PopulationBounds(p5=float(p_low), p95=float(p_high))


class VolumeSpike(FlagDetector):
    id = "is_spike"
    name = "Access Volume Spike"
    low_percentile = 5.0
    high_percentile = 95.0

    def __init__(self):
        self._last = None  # (event tuple, bounds) of the latest call

    def bounds(self, events) -> PopulationBounds:
        """Bounds for *events*, reused while the same event tuple is passed in."""
        last = self._last
        if last is not None and last[0] is events:
            return last[1]
        b = population_bounds(events, self.low_percentile, self.high_percentile)
        if isinstance(events, tuple):
            self._last = (events, b)
        return b

    def compute(self, events):
        b = self.bounds(events)
        return {
            e.event_id: e.records_viewed < b.p5 or e.records_viewed > b.p95
            for e in events
        }

    def evidence(self, events, output):
        b = self.bounds(events)
        return {"p5": b.p5, "p95": b.p95, **super().evidence(events, output)}
