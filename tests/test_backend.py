from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("PySide6.QtQuick")

from image_toolbox.app.backend import BackendFacade, _get_payload_value  # noqa: E402
from image_toolbox.settings_manager import SettingsManager  # noqa: E402


@pytest.fixture
def backend(tmp_path: Path, make_runner):
    settings = SettingsManager(str(tmp_path / "settings.json"))
    be = BackendFacade(settings=settings, compress_runner=make_runner(), resize_runner=make_runner())
    events: list[dict] = []
    be.event_.connect(events.append)
    be.events = events  # type: ignore[attr-defined]
    yield be
    be.shutdown()


def _write(tmp_path: Path, name: str, data: bytes) -> str:
    p = tmp_path / name
    p.write_bytes(data)
    return str(p)


def _errors(events: list[dict]) -> list[str]:
    return [e["message"] for e in events if e.get("name") == "error"]


def test_payload_value_helper() -> None:
    assert _get_payload_value(None, "x", default=1) == 1
    assert _get_payload_value({"x": 5}, "x", default=1) == 5
    assert _get_payload_value("scalar", "x", default=2) == 2


def test_state_objects_are_exposed(backend) -> None:
    assert backend.compress is backend.compress_session.state
    assert backend.resize is backend.resize_session.state
    assert backend.compress.quality == 80
    assert backend.resize.aspectLocked


def test_compress_open_and_download(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    src = _write(tmp_path, "pic.jpg", image_bytes(120, 80))
    out_dir = tmp_path / "out"
    out_dir.mkdir()

    backend.dispatch("compressOpen", {"path": src})
    deferred_pool.run_all()
    backend.dispatch("compressDownload", {"dir": str(out_dir)})

    downloaded = [e for e in backend.events if e.get("name") == "downloaded"]
    assert downloaded and downloaded[0]["path"] == str(out_dir / "compressed_pic.jpg")
    assert (out_dir / "compressed_pic.jpg").is_file()
    assert Path(backend._settings_mgr.last_open_dir) == tmp_path.resolve()


def test_file_url_payload_is_accepted(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    src = Path(_write(tmp_path, "u.png", image_bytes(10, 10, "png")))

    backend.dispatch("resizeOpen", {"path": src.as_uri()})

    assert backend.resize.hasSource
    assert backend.resize.sourceName == "u.png"


def test_set_quality_runs_compressor(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    backend.dispatch("compressOpen", {"path": _write(tmp_path, "a.png", image_bytes(40, 40, "png"))})
    backend.dispatch("compressSetQuality", {"value": 35})
    deferred_pool.run_all()

    assert backend.compress.quality == 35
    assert backend.compress.derivedUrl


def test_bad_quality_value_is_an_error_event(backend) -> None:
    backend.dispatch("compressSetQuality", {"value": "loud"})
    assert _errors(backend.events) == ["Invalid quality: 'loud'"]


def test_unsupported_file_emits_error_event(backend, tmp_path: Path) -> None:
    backend.dispatch("compressOpen", {"path": _write(tmp_path, "a.gif", b"GIF89a")})

    assert _errors(backend.events) == ["Only JPEG and PNG images are supported"]
    assert not backend.compress.hasSource
    assert backend._settings_mgr.last_open_dir is None


def test_missing_file_is_a_read_error(backend, tmp_path: Path) -> None:
    backend.dispatch("resizeOpen", {"path": str(tmp_path / "nope.jpg")})
    assert _errors(backend.events) == ["The image could not be read"]


def test_resize_commands(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    backend.dispatch("resizeOpen", _write(tmp_path, "w.jpg", image_bytes(1200, 600)))
    backend.dispatch("resizeSetWidth", {"value": 600})
    assert backend.resize.targetHeight == 300

    backend.dispatch("resizeSetLocked", {"value": False})
    backend.dispatch("resizeSetHeight", {"value": "100"})
    assert (backend.resize.targetWidth, backend.resize.targetHeight) == (600, 100)
    assert backend._settings_mgr.get("aspect_locked") is False

    backend.dispatch("resizeApply")
    deferred_pool.run_all()
    derived = backend.resize_session.derived
    assert derived is not None
    assert (derived.pixel_width, derived.pixel_height) == (600, 100)

    backend.dispatch("resizeSetWidth", {"value": 0})
    assert _errors(backend.events) == ["Width and height must be positive whole numbers"]
    assert backend.resize_session.derived is derived


def test_download_before_result_is_an_error(backend, tmp_path: Path) -> None:
    backend.dispatch("resizeDownload", {"dir": str(tmp_path)})
    assert _errors(backend.events) == ["Nothing to download yet"]


def test_close_commands_release_everything(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    backend.dispatch("compressOpen", {"path": _write(tmp_path, "a.jpg", image_bytes(30, 30))})
    backend.dispatch("resizeOpen", {"path": _write(tmp_path, "b.jpg", image_bytes(30, 30))})
    deferred_pool.run_all()

    backend.dispatch("compressClose")
    backend.dispatch("resizeClose")

    assert backend.compress_session.store.live_count() == 0
    assert backend.resize_session.store.live_count() == 0
    assert not backend.compress.hasSource and not backend.resize.hasSource


def test_lookup_artifact_follows_live_handles(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    backend.dispatch("compressOpen", {"path": _write(tmp_path, "a.jpg", image_bytes(30, 30))})
    url = backend.compress.originalUrl
    assert backend.lookup_artifact(url) is not None

    backend.dispatch("compressClose")

    assert backend.lookup_artifact(url) is None


@pytest.mark.parametrize("cmd", ["", "   ", "explode"])
def test_unknown_or_empty_command(backend, cmd: str) -> None:
    backend.dispatch(cmd, None)
    messages = _errors(backend.events)
    assert len(messages) == 1
    assert messages[0] in ("Empty cmd", "Unknown cmd: explode")


@pytest.mark.parametrize("value", ["nan", "inf", "-inf", float("nan"), float("inf")])
def test_non_finite_quality_is_an_error_event(backend, value) -> None:
    backend.dispatch("compressSetQuality", {"value": value})

    assert _errors(backend.events) == [f"Invalid quality: {value!r}"]
    assert backend.compress.quality == 80


def test_quality_bounds_come_from_settings(backend, deferred_pool, image_bytes, tmp_path: Path) -> None:
    backend._settings_mgr.set("min_quality", 40)
    backend._settings_mgr.set("max_quality", 70)
    backend.dispatch("compressOpen", {"path": _write(tmp_path, "a.jpg", image_bytes(30, 30))})

    backend.dispatch("compressSetQuality", {"value": 10})
    assert backend.compress.quality == 40

    backend.dispatch("compressSetQuality", {"value": 95})
    assert backend.compress.quality == 70


def test_session_starts_with_configured_bounds(tmp_path: Path, make_runner) -> None:
    settings = SettingsManager(str(tmp_path / "settings.json"))
    settings.set("min_quality", 50)
    be = BackendFacade(settings=settings, compress_runner=make_runner(), resize_runner=make_runner())
    try:
        assert be.compress_session.quality_bounds == (50, 100)
        assert be.compress.quality == 80
    finally:
        be.shutdown()


def test_register_providers_installs_artifact_provider(backend) -> None:
    from image_toolbox.app.providers import PROVIDER_ID, register_providers

    class DummyQmlEngine:
        def __init__(self):
            self.providers = {}

        def addImageProvider(self, provider_id, provider):
            self.providers[provider_id] = provider

    engine = DummyQmlEngine()
    register_providers(engine, backend)

    assert engine.providers == {PROVIDER_ID: backend.artifact_provider}
