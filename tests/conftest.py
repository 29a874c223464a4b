import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import pytest

from violationhub.models.report import Report
from violationhub.rules.engine import RuleEngine
from violationhub.rules.rule import Rule
from violationhub.storage.object_source import ObjectInfo, ObjectSource

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class InMemoryObjectSource(ObjectSource):
    """Blob store double that records how often each object was downloaded."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.etags: Dict[str, str] = {}
        self.modified: Dict[str, datetime] = {}
        self.downloads: List[str] = []
        self.failing: set = set()

    def put(self, name: str, data: bytes, etag: str = "v1", modified: datetime = None):
        self.objects[name] = data
        self.etags[name] = etag
        self.modified[name] = modified or datetime(2023, 6, 1, tzinfo=timezone.utc)

    def list_objects(self) -> List[ObjectInfo]:
        return [
            ObjectInfo(
                name=name,
                size_bytes=len(data),
                etag=self.etags[name],
                last_modified=self.modified[name],
            )
            for name, data in sorted(self.objects.items())
        ]

    def download(self, name: str) -> bytes:
        if name in self.failing:
            raise ConnectionError(f"simulated download failure for {name}")
        self.downloads.append(name)
        return self.objects[name]

    def upload(self, name: str, data: bytes) -> None:
        self.put(name, data, etag=self.etags.get(name, "v0") + "+")


def read_fixture(relative_path: str) -> bytes:
    return (FIXTURES_DIR / relative_path).read_bytes()


@pytest.fixture
def load_report():
    def _load(name: str, cluster_name: str = None) -> Report:
        report = Report.from_json(read_fixture(f"reports/{name}"))
        if cluster_name:
            report.set_cluster_name(cluster_name)
        return report
    return _load


@pytest.fixture
def load_json():
    def _load(name: str) -> dict:
        return json.loads(read_fixture(name))
    return _load


@pytest.fixture
def all_cluster_reports(load_report) -> Dict[str, Report]:
    return {
        f"cluster{idx}": load_report(f"input-cluster{idx}.json", f"cluster{idx}")
        for idx in (1, 2, 3, 4)
    }


@pytest.fixture
def object_source() -> InMemoryObjectSource:
    return InMemoryObjectSource()


@pytest.fixture
def gatekeeper_dir() -> str:
    return str(FIXTURES_DIR / "gatekeeper")


@pytest.fixture
def processing_engine() -> RuleEngine:
    # makes Helm 3 release secrets readable, e.g.
    # Secret "sh.helm.release.v1.foobar.v42" -> Helm 3 release "foobar.v42"
    return RuleEngine([
        Rule.compile(
            match={"kind": "Secret"},
            source="name",
            pattern=r"sh\.helm\.release\.v1\.(.*\.v\d+)",
            target={"kind": "Helm 3 release", "name": "$1"},
        ),
    ])


@pytest.fixture
def merging_engine() -> RuleEngine:
    return RuleEngine([
        # same Helm release across versions
        Rule.compile(
            match={"kind": "Helm 3 release"},
            source="name",
            pattern=r"(.*)\.v\d+",
            target={"name": "$1.<variable>"},
        ),
        # pods of the same ReplicaSet/DaemonSet
        Rule.compile(
            match={"kind": "Pod"},
            source="name",
            pattern=r"(.*)-[a-z0-9]{5}",
            target={"name": "$1-<variable>"},
        ),
    ])
