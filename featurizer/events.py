"""Access event model and input validation.

Events arrive as plain dicts (decoded JSON from a file or a Kafka topic) and
are converted once, at the edge, into frozen ``AccessEvent`` instances.
Detectors only ever see validated events, so they never need to defend
against missing keys or wrong types.

Validation fails closed: a bad value raises ``MalformedEventError`` with the
offending ``event_id`` instead of being coerced.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator

from featurizer.errors import MalformedEventError

# Column widths of the source table (varchar(50)).
MAX_TEXT_LENGTH = 50

# event_id is a signed bigint in the store.
_MIN_EVENT_ID, _MAX_EVENT_ID = -2**63, 2**63 - 1


class Role(Enum):
    HR = "HR"
    FINANCE = "Finance"
    IT = "IT"
    CUSTOMER_SERVICE = "Customer Service"
    PILOT = "Pilot"


class AccessType(Enum):
    WRITE = "write"
    READ = "read"
    EXPORT = "export"
    DELETE = "delete"


@dataclass(frozen=True)
class AccessEvent:
    event_id: int
    user_id: int
    user_role: Role
    resource_accessed: str
    resource_sens: bool
    access_timestamp: datetime
    location: str
    device_type: str
    access_type: AccessType
    records_viewed: int
    is_authorized: bool
    is_privacy_violation: bool

    @classmethod
    def from_dict(cls, raw: dict) -> "AccessEvent":
        """Validate a decoded record and build an event from it."""
        if not isinstance(raw, dict):
            raise MalformedEventError(None, f"expected an object, got {type(raw).__name__}")

        event_id = raw.get("event_id")
        if not _is_int(event_id) or not _MIN_EVENT_ID <= event_id <= _MAX_EVENT_ID:
            raise MalformedEventError(event_id, "event_id must be a 64-bit integer")

        for name in _FIELDS:
            if raw.get(name) is None:
                raise MalformedEventError(event_id, f"missing required field '{name}'")

        user_id = raw["user_id"]
        if not _is_int(user_id):
            raise MalformedEventError(event_id, "user_id must be an integer")

        records_viewed = raw["records_viewed"]
        if not _is_int(records_viewed):
            raise MalformedEventError(event_id, "records_viewed must be an integer")
        if records_viewed < 0:
            raise MalformedEventError(event_id, f"records_viewed is negative ({records_viewed})")

        for name in ("resource_sens", "is_authorized", "is_privacy_violation"):
            if not isinstance(raw[name], bool):
                raise MalformedEventError(event_id, f"{name} must be a boolean")

        for name in ("resource_accessed", "location", "device_type"):
            value = raw[name]
            if not isinstance(value, str):
                raise MalformedEventError(event_id, f"{name} must be a string")
            if len(value) > MAX_TEXT_LENGTH:
                raise MalformedEventError(
                    event_id, f"{name} exceeds {MAX_TEXT_LENGTH} characters"
                )

        try:
            role = Role(raw["user_role"])
        except ValueError:
            raise MalformedEventError(event_id, f"unknown user_role {raw['user_role']!r}") from None
        try:
            access_type = AccessType(raw["access_type"])
        except ValueError:
            raise MalformedEventError(
                event_id, f"unknown access_type {raw['access_type']!r}"
            ) from None

        return cls(
            event_id=event_id,
            user_id=user_id,
            user_role=role,
            resource_accessed=raw["resource_accessed"],
            resource_sens=raw["resource_sens"],
            access_timestamp=_parse_timestamp(event_id, raw["access_timestamp"]),
            location=raw["location"],
            device_type=raw["device_type"],
            access_type=access_type,
            records_viewed=records_viewed,
            is_authorized=raw["is_authorized"],
            is_privacy_violation=raw["is_privacy_violation"],
        )

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "user_id": self.user_id,
            "user_role": self.user_role.value,
            "resource_accessed": self.resource_accessed,
            "resource_sens": self.resource_sens,
            "access_timestamp": self.access_timestamp.isoformat(),
            "location": self.location,
            "device_type": self.device_type,
            "access_type": self.access_type.value,
            "records_viewed": self.records_viewed,
            "is_authorized": self.is_authorized,
            "is_privacy_violation": self.is_privacy_violation,
        }


_FIELDS = (
    "user_id", "user_role", "resource_accessed", "resource_sens",
    "access_timestamp", "location", "device_type", "access_type",
    "records_viewed", "is_authorized", "is_privacy_violation",
)


def _is_int(value) -> bool:
    # bool is an int subclass; True is not a valid id or count.
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_timestamp(event_id, value) -> datetime:
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value)
        except ValueError:
            raise MalformedEventError(
                event_id, f"access_timestamp is not ISO-8601: {value!r}"
            ) from None
    else:
        raise MalformedEventError(event_id, "access_timestamp must be an ISO-8601 string")

    # The store's timestamps carry no zone; mixing aware and naive values
    # would make ordering ambiguous.
    if ts.tzinfo is not None:
        raise MalformedEventError(event_id, "access_timestamp must not carry a time zone")
    return ts


def parse_events(records: Iterable[dict]) -> tuple[AccessEvent, ...]:
    """Validate a batch of raw records.

    Also enforces global uniqueness of ``event_id`` — a duplicate would make
    the per-event join ambiguous.
    """
    events = []
    seen = set()
    for raw in records:
        event = AccessEvent.from_dict(raw)
        if event.event_id in seen:
            raise MalformedEventError(event.event_id, "duplicate event_id")
        seen.add(event.event_id)
        events.append(event)
    return tuple(events)


def read_jsonl(path: str | Path) -> Iterator[dict]:
    """Yield decoded records from a JSON-lines file, skipping blank lines."""
    with open(path) as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as e:
                raise MalformedEventError(None, f"{Path(path).name}:{lineno}: {e.msg}") from None


def load_events(path: str | Path) -> tuple[AccessEvent, ...]:
    return parse_events(read_jsonl(path))
