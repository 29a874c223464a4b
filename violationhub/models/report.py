import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from violationhub.models.violation import Violation, ViolationGroup


@dataclass(frozen=True)
class ConstraintMetadata:
    severity: str = ""
    template_source: str = ""
    constraint_source: str = ""
    docstring: str = ""
    # Per-cluster freshness marker, only used for metrics.
    audit_timestamp: str = ""

    def without_audit_timestamp(self) -> "ConstraintMetadata":
        return replace(self, audit_timestamp="")

    def sort_key(self) -> Tuple[str, str, str, str]:
        return (self.severity, self.template_source, self.constraint_source, self.docstring)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.severity:
            data["severity"] = self.severity
        if self.template_source:
            data["template_source"] = self.template_source
        if self.constraint_source:
            data["constraint_source"] = self.constraint_source
        if self.docstring:
            data["docstring"] = self.docstring
        data["auditTimestamp"] = self.audit_timestamp
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConstraintMetadata":
        return cls(
            severity=data.get("severity") or "",
            template_source=data.get("template_source") or "",
            constraint_source=data.get("constraint_source") or "",
            docstring=data.get("docstring") or "",
            audit_timestamp=data.get("auditTimestamp") or "",
        )


@dataclass
class ReportForConstraint:
    """
    Before grouping, only `violations` is filled.
    After grouping, `violations` is empty and `violation_groups` is filled.
    """
    name: str
    metadata: ConstraintMetadata = field(default_factory=ConstraintMetadata)
    violations: List[Violation] = field(default_factory=list)
    violation_groups: List[ViolationGroup] = field(default_factory=list)

    @property
    def is_grouped(self) -> bool:
        return len(self.violation_groups) > 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "metadata": self.metadata.to_dict(),
        }
        if self.violations:
            data["violations"] = [v.to_dict() for v in self.violations]
        if self.violation_groups:
            data["violation_groups"] = [vg.to_dict() for vg in self.violation_groups]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportForConstraint":
        return cls(
            name=data.get("name") or "",
            metadata=ConstraintMetadata.from_dict(data.get("metadata") or {}),
            violations=[Violation.from_dict(v) for v in data.get("violations") or []],
            violation_groups=[
                ViolationGroup.from_dict(vg) for vg in data.get("violation_groups") or []
            ],
        )


@dataclass
class ReportForTemplate:
    kind: str
    constraints: List[ReportForConstraint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "constraints": [rc.to_dict() for rc in self.constraints],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportForTemplate":
        return cls(
            kind=data.get("kind") or "",
            constraints=[ReportForConstraint.from_dict(rc) for rc in data.get("constraints") or []],
        )


@dataclass
class Report:
    """
    The snapshot one cluster writes into blob storage.
    """
    cluster_identity: Dict[str, str] = field(default_factory=dict)
    templates: List[ReportForTemplate] = field(default_factory=list)

    def iter_constraints(self):
        for rt in self.templates:
            for rc in rt.constraints:
                yield rt, rc

    def set_cluster_name(self, cluster_name: str) -> None:
        """
        Tags every group instance with its cluster of origin, so that
        provenance survives merging across clusters.
        """
        for _, rc in self.iter_constraints():
            for vg in rc.violation_groups:
                for instance in vg.instances:
                    instance.cluster_name = cluster_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_identity": dict(self.cluster_identity),
            "templates": [rt.to_dict() for rt in self.templates],
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        return cls(
            cluster_identity=dict(data.get("cluster_identity") or {}),
            templates=[ReportForTemplate.from_dict(rt) for rt in data.get("templates") or []],
        )

    @classmethod
    def from_json(cls, payload) -> "Report":
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return cls.from_dict(data)


@dataclass
class AggregatedReport:
    """
    Merged view over many cluster reports. Built per request, never persisted.
    """
    cluster_identities: Dict[str, Dict[str, str]] = field(default_factory=dict)
    templates: List[ReportForTemplate] = field(default_factory=list)

    def sort(self) -> None:
        self.templates.sort(key=lambda rt: rt.kind)
        for rt in self.templates:
            rt.constraints.sort(key=lambda rc: (rc.name, rc.metadata.sort_key()))
            for rc in rt.constraints:
                rc.violation_groups.sort(key=lambda vg: vg.pattern.sort_key())
                for vg in rc.violation_groups:
                    vg.instances.sort(key=lambda v: v.sort_key())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cluster_identities": {
                name: dict(identity) for name, identity in self.cluster_identities.items()
            },
            "templates": [rt.to_dict() for rt in self.templates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregatedReport":
        return cls(
            cluster_identities={
                name: dict(identity)
                for name, identity in (data.get("cluster_identities") or {}).items()
            },
            templates=[ReportForTemplate.from_dict(rt) for rt in data.get("templates") or []],
        )
