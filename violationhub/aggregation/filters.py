"""
Filter Set
----------
Allow-list filters taken from the query string of GET /violations.

Supported keys (all repeatable):
    cluster_identity.<key>, template_kind, constraint_name, severity,
    object_identity.<key>

An empty allow-list matches everything. Repeated values for one key are
OR'd, different keys are AND'd. Unknown keys are ignored.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

CLUSTER_IDENTITY_PREFIX = "cluster_identity."
OBJECT_IDENTITY_PREFIX = "object_identity."


def _match(allowed: List[str], value: str) -> bool:
    return not allowed or value in allowed


@dataclass(frozen=True)
class FilterSet:
    cluster_identity: Dict[str, List[str]] = field(default_factory=dict)
    template_kind: List[str] = field(default_factory=list)
    constraint_name: List[str] = field(default_factory=list)
    severity: List[str] = field(default_factory=list)
    object_identity: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_query(cls, pairs: Iterable[Tuple[str, str]]) -> "FilterSet":
        result = cls()
        for key, value in pairs:
            if key.startswith(CLUSTER_IDENTITY_PREFIX):
                subkey = key[len(CLUSTER_IDENTITY_PREFIX):]
                if subkey:
                    result.cluster_identity.setdefault(subkey, []).append(value)
            elif key.startswith(OBJECT_IDENTITY_PREFIX):
                subkey = key[len(OBJECT_IDENTITY_PREFIX):]
                if subkey:
                    result.object_identity.setdefault(subkey, []).append(value)
            elif key == "template_kind":
                result.template_kind.append(value)
            elif key == "constraint_name":
                result.constraint_name.append(value)
            elif key == "severity":
                result.severity.append(value)
        return result

    def is_open(self) -> bool:
        return not (
            self.cluster_identity
            or self.template_kind
            or self.constraint_name
            or self.severity
            or self.object_identity
        )

    def match_cluster_identity(self, identity: Dict[str, str]) -> bool:
        return all(
            _match(allowed, (identity or {}).get(key, ""))
            for key, allowed in self.cluster_identity.items()
        )

    def match_template_kind(self, kind: str) -> bool:
        return _match(self.template_kind, kind)

    def match_constraint_name(self, name: str) -> bool:
        return _match(self.constraint_name, name)

    def match_severity(self, severity: str) -> bool:
        return _match(self.severity, severity)

    def match_object_identity(self, identity: Dict[str, str]) -> bool:
        return all(
            _match(allowed, (identity or {}).get(key, ""))
            for key, allowed in self.object_identity.items()
        )
