"""
Compliance Metrics
------------------
Prometheus gauges computed from the cached reports on every scrape:

    violationhub_raw_violations             per cluster, constraint and selected object identity keys
    violationhub_grouped_violations         per constraint and selected object identity keys
    violationhub_oldest_audit_age_seconds   per cluster
"""
import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from prometheus_client import CollectorRegistry
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from violationhub.aggregation.aggregator import aggregate_reports
from violationhub.aggregation.filters import FilterSet
from violationhub.cache.snapshot_cache import SnapshotCache, SnapshotRefreshError
from violationhub.models.report import Report, ReportForConstraint

logger = logging.getLogger("violationhub.metrics")

_LABEL_SANITIZE_RX = re.compile(r"[^a-zA-Z0-9]")
_RFC3339_RX = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})",
    re.ASCII,
)


def sanitize_label_name(key: str) -> str:
    return _LABEL_SANITIZE_RX.sub("_", key)


def parse_audit_timestamp(value: str) -> datetime:
    """
    Parses an RFC 3339 timestamp such as "2023-06-01T10:00:00.5Z".
    Raises ValueError for anything else, including date-only strings.
    """
    match = _RFC3339_RX.fullmatch(value)
    if match is None:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")

    year, month, day, hour, minute, second, fraction, offset = match.groups()
    if offset == "Z":
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        tz = timezone(sign * timedelta(hours=int(offset[1:3]), minutes=int(offset[4:6])))

    # datetime() rejects out-of-range fields
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second),
        int((fraction or "").ljust(6, "0")[:6]),
        tzinfo=tz,
    )


def oldest_audit_age(cluster_name: str, report: Report, now: Optional[datetime] = None) -> float:
    """
    Age in seconds of the oldest audit in this report, or -1 if no constraint
    carries an audit timestamp. An unparseable timestamp yields 0, which
    looks like very old data and is likely to trigger alerts.
    """
    now = now or datetime.now(timezone.utc)
    result = -1.0
    for _, rc in report.iter_constraints():
        value = rc.metadata.audit_timestamp
        if not value:
            continue
        try:
            audit_time = parse_audit_timestamp(value)
        except ValueError as e:
            logger.error(f"cannot parse audit timestamp {value!r} for cluster {cluster_name}: {e}")
            return 0.0
        age = (now - audit_time).total_seconds()
        if result == -1 or result < age:
            result = age
    return result


class ViolationMetricsCollector(Collector):

    def __init__(self, cache: SnapshotCache, object_identity_keys: Optional[List[str]] = None):
        self.cache = cache
        self.object_identity_keys = list(object_identity_keys or [])
        self.object_identity_labels = [sanitize_label_name(k) for k in self.object_identity_keys]

    def _families(self) -> Tuple[GaugeMetricFamily, GaugeMetricFamily, GaugeMetricFamily]:
        raw = GaugeMetricFamily(
            "violationhub_raw_violations",
            "Number of raw violations, grouped by constraint, source cluster and selected object identity labels.",
            labels=["cluster", "template_kind", "constraint_name", "severity"] + self.object_identity_labels,
        )
        grouped = GaugeMetricFamily(
            "violationhub_grouped_violations",
            "Number of violation groups, grouped by constraint and selected object identity labels.",
            labels=["template_kind", "constraint_name", "severity"] + self.object_identity_labels,
        )
        audit_age = GaugeMetricFamily(
            "violationhub_oldest_audit_age_seconds",
            "Data age for each source cluster.",
            labels=["cluster"],
        )
        return raw, grouped, audit_age

    def describe(self) -> Iterable[GaugeMetricFamily]:
        return list(self._families())

    def collect(self) -> Iterable[GaugeMetricFamily]:
        raw, grouped, audit_age = self._families()

        try:
            reports = self.cache.get_reports()
        except SnapshotRefreshError as e:
            logger.error(f"could not download reports for metric computation: {e}")
            reports = {}

        # the audit age comes straight from the individual reports
        for cluster_name, report in reports.items():
            audit_age.add_metric([cluster_name], oldest_audit_age(cluster_name, report))

        # counting violation groups requires an aggregated report
        full_report = aggregate_reports(reports, FilterSet())
        for rt in full_report.templates:
            # constraints may repeat within a template when metadata differs;
            # they must share one labelset
            by_name: Dict[str, List[ReportForConstraint]] = defaultdict(list)
            for rc in rt.constraints:
                by_name[rc.name].append(rc)
            for constraint_name, rcs in by_name.items():
                self._count_constraint(rt.kind, constraint_name, rcs, raw, grouped)

        return [raw, grouped, audit_age]

    def _count_constraint(
        self,
        template_kind: str,
        constraint_name: str,
        rcs: List[ReportForConstraint],
        raw: GaugeMetricFamily,
        grouped: GaugeMetricFamily,
    ) -> None:
        # keys: (severity, oid values) and (severity, oid values, cluster)
        grouped_counts: Dict[Tuple[str, Tuple[str, ...]], int] = defaultdict(int)
        raw_counts: Dict[Tuple[str, Tuple[str, ...], str], int] = defaultdict(int)

        for rc in rcs:
            severity = rc.metadata.severity
            for vg in rc.violation_groups:
                oid_values = tuple(
                    vg.pattern.object_identity.get(key, "") for key in self.object_identity_keys
                )
                grouped_counts[(severity, oid_values)] += 1
                for instance in vg.instances:
                    raw_counts[(severity, oid_values, instance.cluster_name)] += 1

        for (severity, oid_values), count in grouped_counts.items():
            grouped.add_metric(
                [template_kind, constraint_name, severity] + list(oid_values), count
            )
        for (severity, oid_values, cluster_name), count in raw_counts.items():
            raw.add_metric(
                [cluster_name, template_kind, constraint_name, severity] + list(oid_values), count
            )


def build_registry(cache: SnapshotCache, object_identity_keys: Optional[List[str]] = None) -> CollectorRegistry:
    registry = CollectorRegistry()
    registry.register(ViolationMetricsCollector(cache, object_identity_keys))
    return registry
