from __future__ import annotations

from pathlib import Path

import pytest

from image_toolbox.artifacts import ROLE_DERIVED, ROLE_ORIGINAL, ArtifactStore
from image_toolbox.image_engine.metrics import metrics
from image_toolbox.models import MimeType


def test_install_twice_keeps_one_live_handle_and_releases_first() -> None:
    store = ArtifactStore("t")
    first = store.install(ROLE_DERIVED, b"one", MimeType.JPEG)
    second = store.install(ROLE_DERIVED, b"two", MimeType.JPEG)

    assert first.key != second.key
    assert store.get(ROLE_DERIVED) == second
    assert store.live_count() == 1
    assert store.held_count() == 1
    assert store.read(first.key) is None
    assert store.read(second.key) == (b"two", MimeType.JPEG)
    assert not store.is_live(first)
    assert store.is_live(second)


def test_roles_are_independent() -> None:
    store = ArtifactStore("t")
    orig = store.install(ROLE_ORIGINAL, b"o", MimeType.PNG)
    der = store.install(ROLE_DERIVED, b"d", MimeType.PNG)
    assert store.live_count() == 2

    store.release(ROLE_DERIVED)

    assert store.get(ROLE_ORIGINAL) == orig
    assert store.read(der.key) is None
    assert store.live_count() == 1


def test_release_is_idempotent() -> None:
    store = ArtifactStore("t")
    store.release(ROLE_DERIVED)  # never installed
    store.install(ROLE_DERIVED, b"x", MimeType.PNG)
    store.release(ROLE_DERIVED)
    store.release(ROLE_DERIVED)
    assert store.live_count() == 0
    assert store.held_count() == 0


def test_unknown_role_is_rejected() -> None:
    store = ArtifactStore("t")
    with pytest.raises(ValueError):
        store.install("thumbnail", b"x", MimeType.PNG)


def test_handle_url_uses_provider_scheme() -> None:
    store = ArtifactStore("compress")
    handle = store.install(ROLE_ORIGINAL, b"abc", MimeType.JPEG)
    assert handle.url.startswith("image://artifact/compress/original/")
    assert handle.byte_size == 3


def test_download_writes_bytes_without_releasing(tmp_path: Path) -> None:
    store = ArtifactStore("t")
    handle = store.install(ROLE_DERIVED, b"payload", MimeType.JPEG)

    out = store.download(handle, "compressed_photo.jpg", tmp_path)

    assert out == tmp_path / "compressed_photo.jpg"
    assert out.read_bytes() == b"payload"
    assert store.is_live(handle)
    assert store.read(handle.key) == (b"payload", MimeType.JPEG)


def test_download_never_overwrites(tmp_path: Path) -> None:
    store = ArtifactStore("t")
    handle = store.install(ROLE_DERIVED, b"new", MimeType.PNG)
    (tmp_path / "resized_a.png").write_bytes(b"old")

    out = store.download(handle, "resized_a.png", tmp_path)

    assert out.name == "resized_a (1).png"
    assert (tmp_path / "resized_a.png").read_bytes() == b"old"


def test_download_of_released_handle_fails(tmp_path: Path) -> None:
    store = ArtifactStore("t")
    handle = store.install(ROLE_DERIVED, b"x", MimeType.PNG)
    store.release(ROLE_DERIVED)
    with pytest.raises(LookupError):
        store.download(handle, "x.png", tmp_path)


def test_release_during_download_is_deferred(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = ArtifactStore("t")
    first = store.install(ROLE_DERIVED, b"first", MimeType.JPEG)
    seen: dict[str, object] = {}

    original_write = Path.write_bytes

    def _write_and_supersede(self: Path, data: bytes) -> int:
        # A newer result lands while the download is writing.
        store.install(ROLE_DERIVED, b"second", MimeType.JPEG)
        seen["held_during"] = store.held_count()
        return original_write(self, data)

    monkeypatch.setattr(Path, "write_bytes", _write_and_supersede)
    out = store.download(first, "a.jpg", tmp_path)
    monkeypatch.undo()

    assert out.read_bytes() == b"first"
    assert seen["held_during"] == 2  # pinned bytes survive the superseding install
    assert store.held_count() == 1
    assert store.read(first.key) is None


def test_live_handle_count_after_operation_sequence() -> None:
    metrics.reset()
    store = ArtifactStore("count")
    for i in range(5):
        store.install(ROLE_ORIGINAL, bytes([i]), MimeType.PNG)
        store.install(ROLE_DERIVED, bytes([i]), MimeType.PNG)
        store.install(ROLE_DERIVED, bytes([i, i]), MimeType.PNG)
    assert store.live_count() == 2
    assert store.held_count() == 2

    store.clear()

    assert store.live_count() == 0
    assert store.held_count() == 0
    snap = metrics.snapshot()
    assert snap["counters"]["artifacts.installed"] == 15
    assert snap["counters"]["artifacts.released"] == 15
    assert snap["gauges"]["artifacts.held.count"] == 0
