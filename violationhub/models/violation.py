from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class Violation:
    """
    A single policy violation, or the common pattern of a ViolationGroup.

    Every field may be empty. Inside a ViolationGroup, an empty instance field
    means "same as the pattern".
    """
    kind: str = ""
    name: str = ""
    namespace: str = ""
    message: str = ""
    object_identity: Dict[str, str] = field(default_factory=dict)
    # Only set on group instances inside an AggregatedReport.
    cluster_name: str = ""

    def cloned(self) -> "Violation":
        return Violation(
            kind=self.kind,
            name=self.name,
            namespace=self.namespace,
            message=self.message,
            object_identity=dict(self.object_identity),
            cluster_name=self.cluster_name,
        )

    def is_equal_to(self, other: "Violation") -> bool:
        return (
            self.kind == other.kind
            and self.name == other.name
            and self.namespace == other.namespace
            and self.message == other.message
            and self.object_identity == other.object_identity
            and self.cluster_name == other.cluster_name
        )

    def difference_to(self, pattern: "Violation") -> "Violation":
        """
        Returns a copy with all fields cleared that are identical to the pattern.
        """
        result = self.cloned()
        if result.kind == pattern.kind:
            result.kind = ""
        if result.name == pattern.name:
            result.name = ""
        if result.namespace == pattern.namespace:
            result.namespace = ""
        if result.message == pattern.message:
            result.message = ""
        if result.object_identity == pattern.object_identity:
            result.object_identity = {}
        if result.cluster_name == pattern.cluster_name:
            result.cluster_name = ""
        return result

    def overlaid_on(self, pattern: "Violation") -> "Violation":
        """
        Inverse of difference_to(): fills every empty field from the pattern.

        An instance field whose true value is empty cannot be told apart from
        an inherited one, so it comes back as the pattern's value.
        """
        return Violation(
            kind=self.kind or pattern.kind,
            name=self.name or pattern.name,
            namespace=self.namespace or pattern.namespace,
            message=self.message or pattern.message,
            object_identity=dict(self.object_identity or pattern.object_identity),
            cluster_name=self.cluster_name or pattern.cluster_name,
        )

    def sort_key(self) -> Tuple[str, str, str, str, str]:
        return (self.namespace, self.name, self.kind, self.message, self.cluster_name)

    def to_dict(self) -> Dict[str, Any]:
        # empty fields are omitted, this is what makes instances compact on the wire
        data: Dict[str, Any] = {}
        if self.kind:
            data["kind"] = self.kind
        if self.name:
            data["name"] = self.name
        if self.namespace:
            data["namespace"] = self.namespace
        if self.message:
            data["message"] = self.message
        if self.object_identity:
            data["object_identity"] = dict(self.object_identity)
        if self.cluster_name:
            data["cluster"] = self.cluster_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Violation":
        return cls(
            kind=data.get("kind") or "",
            name=data.get("name") or "",
            namespace=data.get("namespace") or "",
            message=data.get("message") or "",
            object_identity=dict(data.get("object_identity") or {}),
            cluster_name=data.get("cluster") or "",
        )


@dataclass
class ViolationGroup:
    """
    Violations sharing a common Pattern. Instances are stored diff-compressed.
    """
    pattern: Violation
    instances: List[Violation] = field(default_factory=list)

    def expanded_instances(self) -> List[Violation]:
        return [instance.overlaid_on(self.pattern) for instance in self.instances]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict(),
            "instances": [v.to_dict() for v in self.instances],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ViolationGroup":
        return cls(
            pattern=Violation.from_dict(data.get("pattern") or {}),
            instances=[Violation.from_dict(v) for v in data.get("instances") or []],
        )
