"""Feature assembler — joins detector outputs onto the base events.

The join is a left join: the event set is authoritative and every event
yields exactly one record.  Per-event outputs are looked up by event_id,
per-user outputs (the ratios) by user_id.  Rows are ordered by
(access_timestamp, user_id, event_id) so identical input always produces
identical output.
"""

import logging
from dataclasses import dataclass, fields
from datetime import datetime

from featurizer.detectors import Detector
from featurizer.errors import AssemblyGapError
from featurizer.events import AccessEvent, AccessType, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureRecord:
    event_id: int
    user_id: int
    user_role: Role
    resource_accessed: str
    access_type: AccessType
    location: str
    device_type: str
    access_timestamp: datetime
    records_viewed: int
    is_privacy_violation: bool
    is_spike: bool | None
    unauthorized_ratio: float | None
    sensitive_ratio: float | None
    is_first_time: bool | None
    is_role_violation: bool | None
    impossible_travel: bool | None
    rapid_device_switch: bool | None
    is_off_hours: bool | None

    def to_dict(self) -> dict:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (Role, AccessType)):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            out[f.name] = value
        return out


# Descriptive columns copied straight from the base event.
BASE_FIELDS = (
    "event_id", "user_id", "user_role", "resource_accessed", "access_type",
    "location", "device_type", "access_timestamp", "records_viewed",
    "is_privacy_violation",
)

FEATURE_FIELDS = tuple(f.name for f in fields(FeatureRecord) if f.name not in BASE_FIELDS)


def output_order(event: AccessEvent) -> tuple:
    return (event.access_timestamp, event.user_id, event.event_id)


class FeatureAssembler:

    def __init__(self, detectors: list[Detector], strict: bool = True):
        unknown = [d.id for d in detectors if d.id not in FEATURE_FIELDS]
        if unknown:
            raise ValueError(f"Detectors with no feature column: {', '.join(unknown)}")
        self.detectors = detectors
        self.strict = strict

    def assemble(self, events, outputs: dict[str, dict]) -> list[FeatureRecord]:
        """Build one record per event from *outputs* ({detector id: {key: value}}).

        Feature columns with no detector in this assembler are left as None.
        """
        records = []
        for event in sorted(events, key=output_order):
            row = {name: getattr(event, name) for name in BASE_FIELDS}
            row.update(dict.fromkeys(FEATURE_FIELDS))
            for detector in self.detectors:
                row[detector.id] = self._lookup(detector, outputs.get(detector.id, {}), event)
            records.append(FeatureRecord(**row))
        return records

    def _lookup(self, detector: Detector, output: dict, event: AccessEvent):
        key = detector.join_key(event)
        if key in output:
            return output[key]
        if self.strict:
            raise AssemblyGapError(detector.id, key)
        logger.warning("%s produced no output for %s=%r", detector.id, detector.key, key)
        return None
