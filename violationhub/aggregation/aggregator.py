from typing import Dict

from violationhub.aggregation.filters import FilterSet
from violationhub.models.report import (
    AggregatedReport,
    Report,
    ReportForConstraint,
    ReportForTemplate,
)
from violationhub.models.violation import ViolationGroup


def aggregate_reports(reports: Dict[str, Report], filter_set: FilterSet) -> AggregatedReport:
    """
    Merges the grouped reports of all clusters into one AggregatedReport.

    Each nesting level (cluster, template, constraint, violation group) has
    its own visitor. Objects are only added to the output once the levels
    below them actually contributed data, so filtered-out branches leave no
    empty shells behind. Cluster identities are the exception: a cluster that
    passes the cluster filter is always listed.
    """
    target = AggregatedReport()
    for cluster_name, report in reports.items():
        _visit_cluster_report(target, report, cluster_name, filter_set)
    return target


def _visit_cluster_report(
    target: AggregatedReport,
    report: Report,
    cluster_name: str,
    filter_set: FilterSet,
) -> None:
    if not filter_set.match_cluster_identity(report.cluster_identity):
        return

    target.cluster_identities[cluster_name] = dict(report.cluster_identity)
    for rt in report.templates:
        _visit_template_report(target, rt, filter_set)


def _visit_template_report(
    target: AggregatedReport,
    rt: ReportForTemplate,
    filter_set: FilterSet,
) -> None:
    if not filter_set.match_template_kind(rt.kind):
        return

    # try to merge into an existing ReportForTemplate
    for candidate in target.templates:
        if candidate.kind == rt.kind:
            for rc in rt.constraints:
                _visit_constraint_report(candidate, rc, filter_set)
            return

    # otherwise start a new one
    new_report = ReportForTemplate(kind=rt.kind)
    for rc in rt.constraints:
        _visit_constraint_report(new_report, rc, filter_set)
    if new_report.constraints:
        target.templates.append(new_report)


def _visit_constraint_report(
    target: ReportForTemplate,
    rc: ReportForConstraint,
    filter_set: FilterSet,
) -> None:
    if not filter_set.match_constraint_name(rc.name):
        return
    if not filter_set.match_severity(rc.metadata.severity):
        return

    # the audit timestamp only feeds metrics, it does not take part in merging
    metadata = rc.metadata.without_audit_timestamp()

    for candidate in target.constraints:
        if candidate.name == rc.name and candidate.metadata == metadata:
            for vg in rc.violation_groups:
                _visit_violation_group(candidate, vg, filter_set)
            return

    new_report = ReportForConstraint(name=rc.name, metadata=metadata)
    for vg in rc.violation_groups:
        _visit_violation_group(new_report, vg, filter_set)
    if new_report.violation_groups:
        target.constraints.append(new_report)


def _visit_violation_group(
    target: ReportForConstraint,
    vg: ViolationGroup,
    filter_set: FilterSet,
) -> None:
    if not filter_set.match_object_identity(vg.pattern.object_identity):
        return

    for candidate in target.violation_groups:
        if candidate.pattern.is_equal_to(vg.pattern):
            candidate.instances.extend(vg.instances)
            return

    target.violation_groups.append(ViolationGroup(
        pattern=vg.pattern.cloned(),
        instances=list(vg.instances),
    ))
