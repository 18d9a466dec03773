"""Sequential velocity checks — an attribute changing too fast between a
user's consecutive events.

Each event is compared with the event immediately before it in the same
user's chronological sequence.  A user's first event has no reference and
is never flagged.

The two concrete checks deliberately use different boundary semantics:
location velocity fires on a gap strictly under 2 hours, device velocity
fires on a gap of 30 minutes or less.
"""

from datetime import timedelta

from featurizer.detectors import FlagDetector
from featurizer.sequence import UserTimelines


class SequentialDetector(FlagDetector):
    """Flag an event when *attribute* differs from the previous event's
    value within *window*."""

    attribute: str
    window: timedelta
    inclusive: bool  # True: gap <= window fires; False: gap < window fires

    def compute(self, events):
        timelines = UserTimelines(events)
        return {event.event_id: self.flag(event, prev) for event, prev in timelines.pairs()}

    def flag(self, event, prev) -> bool:
        if prev is None:
            return False
        if getattr(event, self.attribute) == getattr(prev, self.attribute):
            return False
        gap = event.access_timestamp - prev.access_timestamp
        return gap <= self.window if self.inclusive else gap < self.window

    def evidence(self, events, output):
        return {
            "window_seconds": int(self.window.total_seconds()),
            "users": len(UserTimelines(events)),
            **super().evidence(events, output),
        }


class LocationVelocity(SequentialDetector):
    id = "impossible_travel"
    name = "Location Velocity"
    attribute = "location"
    window = timedelta(hours=2)
    inclusive = False


class DeviceVelocity(SequentialDetector):
    id = "rapid_device_switch"
    name = "Device Velocity"
    attribute = "device_type"
    window = timedelta(minutes=30)
    inclusive = True
