"""Per-user volume ratios — unauthorized and sensitive share of records viewed.

Both ratios are computed over a user's complete history and broadcast to
every one of that user's events: they describe overall behaviour, not
behaviour up to the event's timestamp.  A user with zero total records gets
a ratio of 0.
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from featurizer.detectors import Detector, USER_KEY

_RATIO_PLACES = Decimal("0.001")


@dataclass(frozen=True)
class UserAggregate:
    user_id: int
    total_records: int
    unauthorized_records: int
    unauthorized_ratio: float
    sensitive_records: int
    sensitive_ratio: float

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_records": self.total_records,
            "unauthorized_records": self.unauthorized_records,
            "unauthorized_ratio": self.unauthorized_ratio,
            "sensitive_records": self.sensitive_records,
            "sensitive_ratio": self.sensitive_ratio,
        }


def ratio(part: int, total: int) -> float:
    """part / total rounded half-up to 3 places; 0.0 when total is 0."""
    if total == 0:
        return 0.0
    # Exact decimal quotient, so 0.0005 rounds up instead of following the
    # binary float representation.
    return float((Decimal(part) / Decimal(total)).quantize(_RATIO_PLACES, rounding=ROUND_HALF_UP))


def user_aggregates(events) -> dict[int, UserAggregate]:
    totals = defaultdict(lambda: [0, 0, 0])  # total, unauthorized, sensitive
    for e in events:
        t = totals[e.user_id]
        t[0] += e.records_viewed
        if not e.is_authorized:
            t[1] += e.records_viewed
        if e.resource_sens:
            t[2] += e.records_viewed

    return {
        user_id: UserAggregate(
            user_id=user_id,
            total_records=total,
            unauthorized_records=unauthorized,
            unauthorized_ratio=ratio(unauthorized, total),
            sensitive_records=sensitive,
            sensitive_ratio=ratio(sensitive, total),
        )
        for user_id, (total, unauthorized, sensitive) in totals.items()
    }


class UserRatioDetector(Detector):
    key = USER_KEY
    field: str  # UserAggregate attribute to emit

    def compute(self, events):
        return {
            user_id: getattr(agg, self.field)
            for user_id, agg in user_aggregates(events).items()
        }

    def evidence(self, events, output):
        if not output:
            return {"users": 0}
        values = list(output.values())
        return {
            "users": len(values),
            "max_ratio": max(values),
            "users_above_zero": sum(1 for v in values if v > 0),
        }


class UnauthorizedRatio(UserRatioDetector):
    id = "unauthorized_ratio"
    name = "Unauthorized Access Velocity"
    field = "unauthorized_ratio"


class SensitiveRatio(UserRatioDetector):
    id = "sensitive_ratio"
    name = "Sensitive Resource Velocity"
    field = "sensitive_ratio"
