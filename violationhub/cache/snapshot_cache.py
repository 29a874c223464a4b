import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from violationhub.models.report import Report
from violationhub.storage.object_source import ObjectInfo, ObjectSource

logger = logging.getLogger("violationhub.cache")


class SnapshotRefreshError(Exception):
    """
    A report could not be listed, downloaded or decoded. The refresh that
    raised it did not change the cache.
    """


@dataclass
class CacheEntry:
    size_bytes: int
    etag: str
    last_modified: Optional[datetime]
    payload: Report

    def needs_update(self, info: ObjectInfo) -> bool:
        return (
            self.size_bytes != info.size_bytes
            or self.etag != info.etag
            or self.last_modified != info.last_modified
        )


class SnapshotCache:
    """
    Keeps the last downloaded report of every cluster and only re-downloads
    blobs whose size, etag or modification time changed.

    One lock covers the whole list + diff + refresh pass, so callers never
    observe a partially refreshed set of reports.
    """

    def __init__(self, source: ObjectSource):
        self.source = source
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get_reports(self) -> Dict[str, Report]:
        """
        Returns the most recent report of every cluster, keyed by cluster name.
        Raises SnapshotRefreshError if any changed report cannot be fetched.
        """
        with self._lock:
            try:
                infos = self.source.list_objects()
            except Exception as e:
                raise SnapshotRefreshError(f"cannot list reports: {e}") from e

            # changes are staged and only committed once every blob succeeded
            refreshed: Dict[str, CacheEntry] = {}
            for info in infos:
                entry = self._entries.get(info.name)
                if entry is None or entry.needs_update(info):
                    logger.debug(f"pulling updated report for {info.name}")
                    entry = self._download(info)
                refreshed[info.name] = entry

            evicted = set(self._entries) - set(refreshed)
            if evicted:
                logger.info(f"dropping reports of vanished clusters: {sorted(evicted)}")

            self._entries = refreshed
            return {name: entry.payload for name, entry in refreshed.items()}

    def _download(self, info: ObjectInfo) -> CacheEntry:
        try:
            payload_bytes = self.source.download(info.name)
        except Exception as e:
            raise SnapshotRefreshError(f"cannot download report for {info.name}: {e}") from e

        try:
            payload = Report.from_json(payload_bytes)
        except (ValueError, TypeError, AttributeError) as e:
            raise SnapshotRefreshError(f"cannot decode report for {info.name}: {e}") from e

        payload.set_cluster_name(info.name)
        return CacheEntry(
            size_bytes=info.size_bytes,
            etag=info.etag,
            last_modified=info.last_modified,
            payload=payload,
        )
