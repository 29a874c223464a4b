import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from azure.storage.blob import ContainerClient

logger = logging.getLogger("violationhub.storage")


@dataclass(frozen=True)
class ObjectInfo:
    """
    Latest listing information about one report object.
    The three change-detection fields are size, etag and modification time.
    """
    name: str
    size_bytes: int
    etag: str
    last_modified: Optional[datetime]


class ObjectSource(ABC):
    """
    Blob storage holding one report object per cluster.
    """

    @abstractmethod
    def list_objects(self) -> List[ObjectInfo]:
        pass

    @abstractmethod
    def download(self, name: str) -> bytes:
        pass

    @abstractmethod
    def upload(self, name: str, data: bytes) -> None:
        pass


class AzureBlobObjectSource(ObjectSource):
    """
    Single persistence boundary for cluster reports in Azure Blob Storage.
    Each cluster owns exactly one blob, named after the cluster.
    """

    def __init__(
        self,
        connection_string: str,
        container_name: str,
    ):
        self.connection_string = connection_string
        self.container_name = container_name
        self._container: Optional[ContainerClient] = None

    def _get_container_client(self) -> ContainerClient:
        if self._container is None:
            self._container = ContainerClient.from_connection_string(
                conn_str=self.connection_string,
                container_name=self.container_name,
            )
        return self._container

    def list_objects(self) -> List[ObjectInfo]:
        container = self._get_container_client()
        return [
            ObjectInfo(
                name=blob.name,
                size_bytes=blob.size,
                etag=blob.etag,
                last_modified=blob.last_modified,
            )
            for blob in container.list_blobs()
        ]

    def download(self, name: str) -> bytes:
        container = self._get_container_client()
        return container.download_blob(name).readall()

    def upload(self, name: str, data: bytes) -> None:
        container = self._get_container_client()
        # reports are snapshots: every upload replaces the previous one
        container.upload_blob(name=name, data=data, overwrite=True)
        logger.info(f"uploaded report {name} ({len(data)} bytes) to {self.container_name}")
