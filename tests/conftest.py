from __future__ import annotations

import hashlib
from types import SimpleNamespace

import pytest
from azure.core.exceptions import HttpResponseError, ResourceExistsError, ResourceNotFoundError

from models import content_type_for
from services.blob_service import BlobStore
from services.image_set_service import ImageSetService
from services.key_scheme import KeyScheme

BASE_URL = "https://acct.blob.core.windows.net/invpics/units/"


class FakeContainerClient:
    """In-memory stand-in for azure.storage.blob.ContainerClient."""

    container_name = "invpics"

    def __init__(self):
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: tuple[str, str] | None = None

    def _check(self, op, key):
        self.calls.append((op, key))
        if self.fail_on == (op, key):
            raise HttpResponseError(message=f"injected {op} failure")

    def list_blobs(self, name_starts_with=None, timeout=None):
        self._check("list", name_starts_with or "")
        return [
            SimpleNamespace(name=k, size=len(v[0]), etag=hashlib.md5(v[0]).hexdigest())
            for k, v in sorted(self.blobs.items())
            if k.startswith(name_starts_with or "")
        ]

    def download_blob(self, blob, timeout=None):
        self._check("get", blob)
        if blob not in self.blobs:
            raise ResourceNotFoundError(message=blob)
        data = self.blobs[blob][0]
        return SimpleNamespace(readall=lambda: data)

    def upload_blob(self, name, data, overwrite=False, content_settings=None, timeout=None):
        self._check("put", name)
        if not overwrite and name in self.blobs:
            raise ResourceExistsError(message=name)
        self.blobs[name] = (bytes(data), content_settings.content_type if content_settings else "")

    def delete_blob(self, blob, delete_snapshots=None, timeout=None):
        self._check("delete", blob)
        if blob not in self.blobs:
            raise ResourceNotFoundError(message=blob)
        del self.blobs[blob]

    # test helpers
    def keys(self, prefix=""):
        return sorted(k for k in self.blobs if k.startswith(prefix))

    def data(self, key):
        return self.blobs[key][0]


def seed(container: FakeContainerClient, vin: str, items: dict, prefix: str = "units/") -> None:
    """items: {sequence: bytes} (png) or {"name.ext": bytes} for arbitrary file names."""
    for name, data in items.items():
        fname = f"{name}.png" if isinstance(name, int) else name
        container.blobs[f"{prefix}{vin}/{fname}"] = (data, content_type_for(fname.rsplit(".", 1)[-1]))


@pytest.fixture
def container() -> FakeContainerClient:
    return FakeContainerClient()


@pytest.fixture
def scheme() -> KeyScheme:
    return KeyScheme.from_base_url(BASE_URL)


@pytest.fixture
def service(container, scheme) -> ImageSetService:
    return ImageSetService(BlobStore(container), scheme, lock_timeout=1.0, max_upload_bytes=1024)
