"""Per-key chronological arenas for sequence-based detectors.

Events are grouped by a key (usually user_id) into lists sorted by
(access_timestamp, event_id).  The event_id tie-break makes concurrent
timestamps order the same way on every run.  "Previous event" is then a
plain index lookup within the arena: no linked structure, no state carried
between runs.
"""

from collections import defaultdict
from typing import Callable, Hashable, Iterable

from featurizer.events import AccessEvent


def chronological(event: AccessEvent) -> tuple:
    """Sort key shared by every ordering-sensitive detector."""
    return (event.access_timestamp, event.event_id)


def ordered_partitions(
    events: Iterable[AccessEvent],
    key: Callable[[AccessEvent], Hashable],
) -> dict[Hashable, list[AccessEvent]]:
    """Group *events* by *key*, each group sorted chronologically."""
    groups: dict[Hashable, list[AccessEvent]] = defaultdict(list)
    for event in events:
        groups[key(event)].append(event)
    for group in groups.values():
        group.sort(key=chronological)
    return dict(groups)


class UserTimelines:
    """Each user's events in chronological order, with previous-event lookup."""

    __slots__ = ("_arenas", "_position")

    def __init__(self, events: Iterable[AccessEvent]):
        self._arenas = ordered_partitions(events, lambda e: e.user_id)
        # event_id -> (user_id, index within that user's arena)
        self._position: dict[int, tuple[int, int]] = {}
        for user_id, arena in self._arenas.items():
            for i, event in enumerate(arena):
                self._position[event.event_id] = (user_id, i)

    def timeline(self, user_id: int) -> list[AccessEvent]:
        return list(self._arenas.get(user_id, ()))

    def previous(self, event: AccessEvent) -> AccessEvent | None:
        """The event immediately before *event* in its user's sequence, if any."""
        user_id, i = self._position[event.event_id]
        if i == 0:
            return None
        return self._arenas[user_id][i - 1]

    def pairs(self):
        """Yield (event, previous_or_None) for every event, user by user."""
        for arena in self._arenas.values():
            prev = None
            for event in arena:
                yield event, prev
                prev = event

    def __len__(self) -> int:
        return len(self._arenas)
