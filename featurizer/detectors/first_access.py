"""First-time access — the first event in which a user touches a resource."""

from featurizer.detectors import FlagDetector
from featurizer.sequence import ordered_partitions


class FirstAccess(FlagDetector):
    id = "is_first_time"
    name = "First-Time Access"

    def compute(self, events):
        partitions = ordered_partitions(
            events, lambda e: (e.user_id, e.resource_accessed)
        )
        flags = {}
        for group in partitions.values():
            flags[group[0].event_id] = True
            for e in group[1:]:
                flags[e.event_id] = False
        return flags

    def evidence(self, events, output):
        pairs = {(e.user_id, e.resource_accessed) for e in events}
        return {"user_resource_pairs": len(pairs), **super().evidence(events, output)}
