from __future__ import annotations

import pytest

from conftest import seed
from services.errors import InvalidInput, StoreIOError


def test_listing_sorted_and_filtered(service, container) -> None:
    seed(container, "VIN1", {10: b"ten", 2: b"two", 1: b"one"})
    seed(container, "VIN1", {"notes.txt": b"x", ".keep": b"", "3.bmp": b"x", "tmp_5.png": b"five"})
    seed(container, "VIN10", {1: b"other vehicle"})

    result = service.list_images("vin1")

    assert result.sequences == [1, 2, 10]
    assert [img.name for img in result] == ["1.png", "2.png", "10.png"]
    assert result.staged == ("units/VIN1/tmp_5.png",)
    assert result.images[0].size == 3
    assert not result.is_contiguous


def test_listing_lowercases_extension(service, container) -> None:
    seed(container, "V", {"1.JPG": b"a"})
    img = service.list_images("V").images[0]
    assert (img.extension, img.content_type) == ("jpg", "image/jpeg")


def test_duplicates_are_reported(service, container) -> None:
    seed(container, "V", {"1.png": b"a", "2.png": b"b", "2.jpg": b"c"})
    result = service.list_images("V")
    assert result.duplicates == [2]
    assert result.needs_repair
    assert [img.key for img in result.find(2)] == ["units/V/2.jpg", "units/V/2.png"]


def test_next_sequence(service, container) -> None:
    assert service.next_sequence("V") == 1
    seed(container, "V", {1: b"a", 2: b"b", 7: b"g"})
    assert service.next_sequence("V") == 8


def test_upload_appends(service, container) -> None:
    first = service.upload("v-1", b"img1", "front.PNG", "image/png")
    second = service.upload("v-1", b"img2", None, "image/jpeg")

    assert (first.key, first.sequence) == ("units/V1/1.png", 1)
    assert (second.key, second.sequence) == ("units/V1/2.jpg", 2)
    assert container.blobs["units/V1/2.jpg"] == (b"img2", "image/jpeg")
    assert service.list_images("V1").is_contiguous


def test_upload_content_type_falls_back_to_extension(service, container) -> None:
    service.upload("V", b"data", "side.webp", "application/octet-stream")
    assert container.blobs["units/V/1.webp"][1] == "image/webp"


def test_upload_rejects_bad_input(service) -> None:
    with pytest.raises(InvalidInput):
        service.upload("V", b"", "a.png", "image/png")
    with pytest.raises(InvalidInput):
        service.upload("V", b"x" * 2048, "a.png", "image/png")
    with pytest.raises(InvalidInput):
        service.upload("V", b"x", "a.tiff", "image/tiff")


def test_upload_does_not_clobber(service, container, monkeypatch) -> None:
    seed(container, "V", {1: b"a"})
    monkeypatch.setattr(service, "next_sequence", lambda entity_id: 1)
    with pytest.raises(StoreIOError):
        service.upload("V", b"b", "b.png", "image/png")
    assert container.data("units/V/1.png") == b"a"


def test_ensure_folder(service, container) -> None:
    assert service.ensure_folder("v") == {"created": True, "container": "invpics", "path": "units/V/"}
    assert container.keys() == ["units/V/.keep"]
    assert service.ensure_folder("v")["created"] is False
    assert len(service.list_images("V")) == 0


def test_ensure_folder_closes_listing(service, container, monkeypatch) -> None:
    seed(container, "V", {1: b"a", 2: b"b"})
    closed = []
    list_objects = service.store.list_objects

    def tracked(prefix):
        try:
            yield from list_objects(prefix)
        finally:
            closed.append(prefix)

    monkeypatch.setattr(service.store, "list_objects", tracked)
    assert service.ensure_folder("V")["created"] is False
    assert closed == ["units/V/"]
