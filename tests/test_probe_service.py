from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from services.errors import StoreIOError
from services.probe_service import FallbackProber

ROOT = "https://acct.blob.core.windows.net/invpics/units/V"


class FakeSession:
    def __init__(self, existing=(), error_on=None):
        self.existing = set(existing)
        self.error_on = error_on
        self.requested = []

    def head(self, url, timeout=None, allow_redirects=True):
        self.requested.append(url)
        if url == self.error_on:
            raise requests.ConnectionError("unreachable")
        return SimpleNamespace(ok=url in self.existing)


def test_probe_stops_at_first_gap(scheme) -> None:
    session = FakeSession([f"{ROOT}/1.png", f"{ROOT}/2.jpg", f"{ROOT}/4.png"])
    hits = FallbackProber(scheme, session=session).probe("v", 10)

    assert [h.sequence for h in hits] == [1, 2]
    assert hits[1].url == f"{ROOT}/2.jpg"
    assert hits[1].name == "units/V/2.jpg"
    assert f"{ROOT}/4.png" not in session.requested


def test_probe_prefers_extensions_in_order(scheme) -> None:
    session = FakeSession([f"{ROOT}/1.jpeg", f"{ROOT}/1.png"])
    hits = FallbackProber(scheme, session=session).probe("V", 5)
    assert [h.extension for h in hits] == ["png"]
    assert session.requested[:2] == [f"{ROOT}/1.png", f"{ROOT}/2.png"]


def test_probe_respects_cap(scheme) -> None:
    session = FakeSession([f"{ROOT}/{n}.png" for n in range(1, 30)])
    assert len(FallbackProber(scheme, session=session).probe("V", 3)) == 3


def test_single_mode_stops_after_first_hit(scheme) -> None:
    session = FakeSession([f"{ROOT}/1.png", f"{ROOT}/2.png"])
    hits = FallbackProber(scheme, session=session).probe("V", 10, single=True)
    assert [h.sequence for h in hits] == [1]
    assert session.requested == [f"{ROOT}/1.png"]


def test_probe_empty(scheme) -> None:
    assert FallbackProber(scheme, session=FakeSession()).probe("V", 10) == []


def test_transport_error_surfaces(scheme) -> None:
    session = FakeSession([f"{ROOT}/1.png"], error_on=f"{ROOT}/2.png")
    with pytest.raises(StoreIOError):
        FallbackProber(scheme, session=session).probe("V", 10)


def test_default_session_is_shared(scheme) -> None:
    assert FallbackProber(scheme).session is FallbackProber(scheme).session
