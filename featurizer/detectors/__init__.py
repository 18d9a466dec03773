# Feature detectors as Python classes, one signal per class.
#
# Each detector is a pure function of the complete event set: it reads the
# events, never mutates them, and returns one value per join key.  Detectors
# know nothing about each other; the assembler is the only place their
# outputs meet.  One detector per file keeps the threshold, its boundary
# semantics, and its tests side by side.

from featurizer.events import AccessEvent

EVENT_KEY = "event_id"
USER_KEY = "user_id"


class Detector:
    """Base feature detector. Subclass and implement compute()."""

    id: str    # output column name in the feature record
    name: str
    key: str = EVENT_KEY  # join key: per-event output, or per-user (broadcast)

    def compute(self, events: tuple[AccessEvent, ...]) -> dict:
        """Return {join key value: feature value}, total over *events*."""
        raise NotImplementedError

    # Evidence summarises a run of this detector (bounds used, how many rows
    # were flagged) so an analyst can sanity-check the output without
    # re-deriving intermediate columns.
    def evidence(self, events: tuple[AccessEvent, ...], output: dict) -> dict:
        """Summarise *output* for the run report."""
        return {}

    def join_key(self, event: AccessEvent):
        return getattr(event, self.key)


class FlagDetector(Detector):
    """Per-event boolean detector; evidence is the flagged count."""

    def evidence(self, events, output):
        flagged = sum(1 for v in output.values() if v)
        return {
            "flagged": flagged,
            "flag_rate": round(flagged / max(len(output), 1), 3),
        }


from featurizer.detectors.volume_spike import VolumeSpike
from featurizer.detectors.user_ratios import UnauthorizedRatio, SensitiveRatio
from featurizer.detectors.first_access import FirstAccess
from featurizer.detectors.role_policy import RoleViolation
from featurizer.detectors.velocity import LocationVelocity, DeviceVelocity
from featurizer.detectors.off_hours import OffHours


def default_detectors() -> list[Detector]:
    """Fresh instances of every detector, in output-column order."""
    return [
        VolumeSpike(),
        UnauthorizedRatio(),
        SensitiveRatio(),
        FirstAccess(),
        RoleViolation(),
        LocationVelocity(),
        DeviceVelocity(),
        OffHours(),
    ]


ALL_DETECTORS = default_detectors()
