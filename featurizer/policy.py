"""Role access policy — one immutable lookup table, loaded from YAML.

The table is data, not code: adding a role or a resource grant means
editing ``policies/role_policy.yml``, never adding a branch.  Loading
validates the document against the closed ``Role`` and ``AccessType``
enumerations, so a typo fails at load time instead of silently turning
every event for that role into a violation.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import yaml

from featurizer.errors import PolicyError
from featurizer.events import AccessEvent, AccessType, Role

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).resolve().parent / "policies" / "role_policy.yml"

ANY_RESOURCE = "*"

_REQUIRED_FIELDS = ("title", "version", "roles")


@dataclass(frozen=True)
class PolicyRule:
    resource: str
    access_types: frozenset[AccessType] | None = None  # None: any access type

    def allows(self, resource: str, access_type: AccessType) -> bool:
        if self.resource != ANY_RESOURCE and self.resource != resource:
            return False
        return self.access_types is None or access_type in self.access_types


class RolePolicy:
    """Allow-list keyed by role."""

    def __init__(self, rules: Mapping[Role, tuple[PolicyRule, ...]], title: str = ""):
        self.title = title
        self._rules = MappingProxyType(dict(rules))

    @property
    def rules(self) -> Mapping[Role, tuple[PolicyRule, ...]]:
        return self._rules

    def allows(self, role: Role, resource: str, access_type: AccessType) -> bool:
        return any(rule.allows(resource, access_type) for rule in self._rules.get(role, ()))

    def is_violation(self, event: AccessEvent) -> bool:
        return not self.allows(event.user_role, event.resource_accessed, event.access_type)


def load_policy(path: str | Path = DEFAULT_POLICY_PATH) -> RolePolicy:
    """Parse and validate a policy document."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Policy file not found: {path}")

    with open(path) as f:
        definition = yaml.safe_load(f)

    if not isinstance(definition, dict):
        raise PolicyError(f"{path.name}: expected a mapping at the top level")
    for field in _REQUIRED_FIELDS:
        if field not in definition:
            raise PolicyError(f"{path.name}: missing required field '{field}'")

    roles = definition["roles"]
    if not isinstance(roles, dict):
        raise PolicyError(f"{path.name}: 'roles' must be a mapping")

    rules = {}
    for name, entries in roles.items():
        try:
            role = Role(name)
        except ValueError:
            raise PolicyError(f"{path.name}: unknown role '{name}'") from None
        rules[role] = tuple(_parse_rule(path, name, entry) for entry in entries or ())

    missing = [r.value for r in Role if r not in rules]
    if missing:
        raise PolicyError(f"{path.name}: no entry for role(s) {', '.join(missing)}")

    logger.debug("Loaded role policy %s (%d roles)", path.name, len(rules))
    return RolePolicy(rules, title=definition["title"])


def _parse_rule(path: Path, role_name: str, entry) -> PolicyRule:
    if not isinstance(entry, dict) or "resource" not in entry:
        raise PolicyError(f"{path.name}: {role_name}: each entry needs a 'resource'")

    resource = entry["resource"]
    if not isinstance(resource, str) or not resource:
        raise PolicyError(f"{path.name}: {role_name}: resource must be a non-empty string")

    access_types = entry.get("access_types")
    if access_types is None:
        return PolicyRule(resource)
    if not isinstance(access_types, list) or not access_types:
        raise PolicyError(
            f"{path.name}: {role_name}/{resource}: access_types must be a non-empty list"
        )
    try:
        parsed = frozenset(AccessType(a) for a in access_types)
    except ValueError as e:
        raise PolicyError(f"{path.name}: {role_name}/{resource}: {e}") from None
    return PolicyRule(resource, parsed)
