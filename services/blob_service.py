# services/blob_service.py
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator, Optional

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContainerClient, ContentSettings

from services.errors import StoreIOError
from services.key_scheme import KeyScheme
from utils.env import env_float


# ────────────────────────────────────────────────────────────
# Config
# ────────────────────────────────────────────────────────────
DEFAULT_STORE_TIMEOUT = 30.0
DEFAULT_TRANSFER_TIMEOUT = 120.0


def get_connection_string() -> str:
    return os.environ.get("AZURE_STORAGE_CONNECTION_STRING", "")


@lru_cache(maxsize=4)
def _service_client(conn_str: str) -> BlobServiceClient:
    return BlobServiceClient.from_connection_string(conn_str)


@dataclass(frozen=True)
class BlobEntry:
    key: str
    size: int = 0
    etag: Optional[str] = None


# ────────────────────────────────────────────────────────────
# Store
# ────────────────────────────────────────────────────────────
class BlobStore:
    """
    The four primitives the image engine is allowed to use: list, read,
    write, delete. Every Azure failure comes out as StoreIOError.

    Timeouts are passed through to the service per call; byte transfers get
    the longer bound.
    """

    def __init__(
        self,
        container_client: ContainerClient,
        timeout: float = DEFAULT_STORE_TIMEOUT,
        transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT,
    ):
        self._client = container_client
        self.timeout = timeout
        self.transfer_timeout = transfer_timeout

    @property
    def container_name(self) -> str:
        return self._client.container_name

    def list_objects(self, prefix: str) -> Iterator[BlobEntry]:
        try:
            for blob in self._client.list_blobs(name_starts_with=prefix, timeout=int(self.timeout)):
                yield BlobEntry(key=blob.name, size=blob.size or 0, etag=blob.etag)
        except AzureError as e:
            raise StoreIOError("list", prefix, e) from e

    def get_object(self, key: str) -> bytes:
        try:
            return self._client.download_blob(key, timeout=int(self.transfer_timeout)).readall()
        except ResourceNotFoundError as e:
            raise StoreIOError("get", key, "blob does not exist") from e
        except AzureError as e:
            raise StoreIOError("get", key, e) from e

    def put_object(self, key: str, data: bytes, content_type: str, overwrite: bool = True) -> None:
        try:
            self._client.upload_blob(
                key,
                data,
                overwrite=overwrite,
                content_settings=ContentSettings(content_type=content_type),
                timeout=int(self.transfer_timeout),
            )
        except ResourceExistsError as e:
            raise StoreIOError("put", key, "blob already exists") from e
        except AzureError as e:
            raise StoreIOError("put", key, e) from e

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_blob(key, delete_snapshots="include", timeout=int(self.timeout))
        except AzureError as e:
            raise StoreIOError("delete", key, e) from e


def get_blob_store(scheme: KeyScheme) -> Optional[BlobStore]:
    """
    Store for the configured container, or None when no connection string is
    set (public read-only deployments fall back to HEAD probing).
    """
    conn = get_connection_string()
    if not conn:
        return None
    client = _service_client(conn).get_container_client(scheme.container)
    return BlobStore(
        client,
        timeout=env_float("STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT),
        transfer_timeout=env_float("TRANSFER_TIMEOUT_SECONDS", DEFAULT_TRANSFER_TIMEOUT),
    )
