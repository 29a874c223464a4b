from datetime import datetime, timezone
from pathlib import Path

import pytest

from violationhub.cache.snapshot_cache import SnapshotCache, SnapshotRefreshError

REPORTS_DIR = Path(__file__).parent / "fixtures" / "reports"


def read_fixture(name):
    return (REPORTS_DIR / name).read_bytes()


@pytest.fixture
def populated_source(object_source):
    object_source.put("cluster1", read_fixture("input-cluster1.json"))
    object_source.put("cluster2", read_fixture("input-cluster2.json"))
    return object_source


def test_first_call_downloads_everything(populated_source):
    cache = SnapshotCache(populated_source)

    reports = cache.get_reports()

    assert sorted(reports) == ["cluster1", "cluster2"]
    assert sorted(populated_source.downloads) == ["cluster1", "cluster2"]


def test_unchanged_objects_are_not_downloaded_again(populated_source):
    cache = SnapshotCache(populated_source)
    first = cache.get_reports()

    second = cache.get_reports()

    assert len(populated_source.downloads) == 2
    assert second["cluster1"] is first["cluster1"]


@pytest.mark.parametrize("change", ["etag", "size", "mtime"])
def test_changed_objects_are_refreshed(populated_source, change):
    cache = SnapshotCache(populated_source)
    cache.get_reports()

    if change == "etag":
        populated_source.put("cluster1", read_fixture("input-cluster1.json"), etag="v2")
    elif change == "size":
        populated_source.put("cluster1", read_fixture("input-cluster1.json") + b"\n")
    else:
        populated_source.put(
            "cluster1",
            read_fixture("input-cluster1.json"),
            modified=datetime(2023, 6, 2, tzinfo=timezone.utc),
        )

    cache.get_reports()

    assert populated_source.downloads.count("cluster1") == 2
    assert populated_source.downloads.count("cluster2") == 1


def test_reports_are_tagged_with_cluster_name(populated_source):
    reports = SnapshotCache(populated_source).get_reports()

    instance = reports["cluster2"].templates[0].constraints[0].violation_groups[0].instances[0]
    assert instance.cluster_name == "cluster2"


def test_vanished_objects_are_evicted(populated_source):
    cache = SnapshotCache(populated_source)
    cache.get_reports()

    del populated_source.objects["cluster2"]
    reports = cache.get_reports()

    assert sorted(reports) == ["cluster1"]


def test_failed_download_leaves_cache_untouched(populated_source):
    cache = SnapshotCache(populated_source)
    before = cache.get_reports()

    populated_source.put("cluster1", read_fixture("input-cluster1.json"), etag="v2")
    populated_source.put("cluster3", read_fixture("input-cluster3.json"))
    populated_source.failing.add("cluster3")

    with pytest.raises(SnapshotRefreshError, match="cluster3"):
        cache.get_reports()

    # once the failure is gone, cluster1 is pulled again because it was never committed
    populated_source.failing.clear()
    after = cache.get_reports()
    assert populated_source.downloads.count("cluster1") == 3
    assert after["cluster2"] is before["cluster2"]


def test_undecodable_report_raises(object_source):
    object_source.put("cluster1", b"this is not json")

    with pytest.raises(SnapshotRefreshError, match="cannot decode"):
        SnapshotCache(object_source).get_reports()


def test_listing_failure_raises(mocker, object_source):
    mocker.patch.object(object_source, "list_objects", side_effect=ConnectionError("unreachable"))

    with pytest.raises(SnapshotRefreshError, match="cannot list"):
        SnapshotCache(object_source).get_reports()
