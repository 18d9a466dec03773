"""Analyst views over an event set.

These complement the per-event feature records with the two summaries
compliance reviewers ask for most: which users pull the most unauthorized
volume, and which (role, resource, access type) combinations occur at all
and how the policy judges each.
"""

from dataclasses import dataclass

from featurizer.detectors.user_ratios import UserAggregate, user_aggregates
from featurizer.events import AccessType, Role
from featurizer.policy import RolePolicy, load_policy


@dataclass(frozen=True)
class AccessCombination:
    user_role: Role
    resource_accessed: str
    access_type: AccessType
    is_violation: bool
    events: int

    def to_dict(self) -> dict:
        return {
            "user_role": self.user_role.value,
            "resource_accessed": self.resource_accessed,
            "access_type": self.access_type.value,
            "is_violation": self.is_violation,
            "events": self.events,
        }


def user_activity_report(events) -> list[UserAggregate]:
    """Per-user aggregates, heaviest unauthorized volume first."""
    aggregates = user_aggregates(events).values()
    return sorted(aggregates, key=lambda a: (-a.unauthorized_records, a.user_id))


def role_access_matrix(events, policy: RolePolicy | None = None) -> list[AccessCombination]:
    """Distinct (role, resource, access type) combinations with the policy verdict."""
    policy = policy or load_policy()
    counts: dict[tuple, int] = {}
    for e in events:
        combo = (e.user_role, e.resource_accessed, e.access_type)
        counts[combo] = counts.get(combo, 0) + 1

    rows = [
        AccessCombination(
            user_role=role,
            resource_accessed=resource,
            access_type=access_type,
            is_violation=not policy.allows(role, resource, access_type),
            events=n,
        )
        for (role, resource, access_type), n in counts.items()
    ]
    # Roles and access types in declaration order, as the store's enum columns sort.
    roles, access_types = list(Role), list(AccessType)
    rows.sort(key=lambda r: (roles.index(r.user_role), r.resource_accessed,
                             access_types.index(r.access_type)))
    return rows
