"""Role violation — an access no entry of the role's allow-list permits.

Stateless and per event: the verdict depends only on (role, resource,
access type) and the policy table.  IT holds a wildcard grant.
"""

from featurizer.detectors import FlagDetector
from featurizer.policy import RolePolicy, load_policy


class RoleViolation(FlagDetector):
    id = "is_role_violation"
    name = "Role Policy Violation"

    def __init__(self, policy: RolePolicy | None = None):
        self.policy = policy or load_policy()

    def compute(self, events):
        return {e.event_id: self.policy.is_violation(e) for e in events}

    def evidence(self, events, output):
        by_role = {}
        for e in events:
            if output.get(e.event_id):
                role = e.user_role.value
                by_role[role] = by_role.get(role, 0) + 1
        return {"violations_by_role": dict(sorted(by_role.items())),
                **super().evidence(events, output)}
