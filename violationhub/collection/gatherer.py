import logging
from datetime import datetime
from typing import Any, Dict

from violationhub.collection.object_identity import parse_object_identity
from violationhub.collection.policy_source import PolicySource
from violationhub.models.report import (
    ConstraintMetadata,
    Report,
    ReportForConstraint,
    ReportForTemplate,
)
from violationhub.models.violation import Violation

logger = logging.getLogger("violationhub.collection")


def _str(value: Any) -> str:
    if value is None:
        return ""
    # unquoted timestamps come out of the YAML loader as datetimes
    if isinstance(value, datetime):
        return value.isoformat().replace("+00:00", "Z")
    return str(value)


def gather_report(cluster_identity: Dict[str, str], source: PolicySource) -> Report:
    """
    Compiles the raw (ungrouped) report for one cluster.

    Constraints without violations and templates without such constraints
    are left out.
    """
    report = Report(cluster_identity=dict(cluster_identity))

    for template in source.list_constraint_templates():
        rt = _gather_report_for_template(source, template)
        if rt.constraints:
            report.templates.append(rt)

    logger.info(
        f"gathered {sum(len(rc.violations) for _, rc in report.iter_constraints())} "
        f"violations across {len(report.templates)} templates"
    )
    return report


def _gather_report_for_template(source: PolicySource, template: Dict[str, Any]) -> ReportForTemplate:
    names = (
        ((template.get("spec") or {}).get("crd") or {}).get("spec") or {}
    ).get("names") or {}
    rt = ReportForTemplate(kind=_str(names.get("kind")))

    for constraint in source.list_constraints(template):
        rc = gather_report_for_constraint(constraint)
        if rc.violations:
            rt.constraints.append(rc)

    return rt


def gather_report_for_constraint(constraint: Dict[str, Any]) -> ReportForConstraint:
    metadata = constraint.get("metadata") or {}
    labels = metadata.get("labels") or {}
    annotations = metadata.get("annotations") or {}
    status = constraint.get("status") or {}

    rc = ReportForConstraint(
        name=_str(metadata.get("name")),
        metadata=ConstraintMetadata(
            severity=_str(labels.get("severity")),
            template_source=_str(annotations.get("template-source")),
            constraint_source=_str(annotations.get("constraint-source")),
            docstring=_str(annotations.get("docstring")),
            audit_timestamp=_str(status.get("auditTimestamp")),
        ),
    )

    for raw in status.get("violations") or []:
        identity, message = parse_object_identity(_str(raw.get("message")))
        rc.violations.append(Violation(
            kind=_str(raw.get("kind")),
            name=_str(raw.get("name")),
            namespace=_str(raw.get("namespace")),
            message=message,
            object_identity=identity or {},
        ))

    return rc
