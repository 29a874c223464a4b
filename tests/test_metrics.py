from dataclasses import replace
from datetime import datetime, timezone

import pytest

from violationhub.cache.snapshot_cache import SnapshotRefreshError
from violationhub.metrics.collector import (
    build_registry,
    oldest_audit_age,
    parse_audit_timestamp,
    sanitize_label_name,
)
from violationhub.models.report import Report

NOW = datetime(2023, 6, 1, 10, 10, tzinfo=timezone.utc)


@pytest.fixture
def cache(mocker, all_cluster_reports):
    fake = mocker.Mock()
    fake.get_reports.return_value = all_cluster_reports
    return fake


def test_sanitize_label_name():
    assert sanitize_label_name("support-group") == "support_group"
    assert sanitize_label_name("app.kubernetes.io/name") == "app_kubernetes_io_name"


@pytest.mark.parametrize("value, expected", [
    ("2023-06-01T10:00:00Z", datetime(2023, 6, 1, 10, tzinfo=timezone.utc)),
    ("2023-06-01T10:00:00.5Z", datetime(2023, 6, 1, 10, 0, 0, 500000, tzinfo=timezone.utc)),
    ("2023-06-01T10:00:00.123456789Z", datetime(2023, 6, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)),
    ("2023-06-01T12:00:00+02:00", datetime(2023, 6, 1, 10, tzinfo=timezone.utc)),
    ("2023-06-01T08:30:00-01:30", datetime(2023, 6, 1, 10, tzinfo=timezone.utc)),
])
def test_parse_audit_timestamp(value, expected):
    assert parse_audit_timestamp(value) == expected


@pytest.mark.parametrize("value", [
    "2023-06-01",
    "2023-06-01T10:00:00",
    "2023-06-01 10:00:00Z",
    "2023-06-01T10:00Z",
    "2023-13-01T10:00:00Z",
    "yesterday",
])
def test_parse_audit_timestamp_rejects_non_rfc3339(value):
    with pytest.raises(ValueError):
        parse_audit_timestamp(value)


def test_oldest_audit_age(load_report):
    cluster1 = load_report("input-cluster1.json")

    assert oldest_audit_age("cluster1", cluster1, now=NOW) == 600


def test_oldest_audit_age_without_timestamps():
    assert oldest_audit_age("empty", Report(), now=NOW) == -1


def test_oldest_audit_age_with_bad_timestamp(load_report):
    report = load_report("input-cluster1.json")
    rc = report.templates[0].constraints[0]
    rc.metadata = replace(rc.metadata, audit_timestamp="yesterday")

    assert oldest_audit_age("cluster1", report, now=NOW) == 0


def test_violation_counts(cache):
    registry = build_registry(cache, ["type"])

    def raw(cluster, constraint, severity, type_):
        return registry.get_sample_value("violationhub_raw_violations", {
            "cluster": cluster,
            "template_kind": "GkFirstTemplate",
            "constraint_name": constraint,
            "severity": severity,
            "type": type_,
        })

    assert raw("cluster1", "firstconstraint", "warning", "production") == 1
    assert raw("cluster3", "firstconstraint", "warning", "production") == 1
    assert raw("cluster4", "secondconstraint", "critical", "qa") == 1
    assert raw("cluster4", "firstconstraint", "warning", "production") is None

    grouped_labels = {"template_kind": "GkFirstTemplate", "severity": "warning", "type": "production"}
    assert registry.get_sample_value(
        "violationhub_grouped_violations", dict(grouped_labels, constraint_name="firstconstraint")
    ) == 2


def test_audit_age_per_cluster(cache):
    registry = build_registry(cache)

    for cluster in ("cluster1", "cluster2", "cluster3", "cluster4"):
        age = registry.get_sample_value("violationhub_oldest_audit_age_seconds", {"cluster": cluster})
        assert age > 0


def test_refresh_error_yields_empty_metrics(cache):
    cache.get_reports.side_effect = SnapshotRefreshError("storage unreachable")
    registry = build_registry(cache)

    assert registry.get_sample_value("violationhub_oldest_audit_age_seconds", {"cluster": "cluster1"}) is None
