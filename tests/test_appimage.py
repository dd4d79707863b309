"""Tests for cursor_shadow_patch.appimage."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest import mock

import pytest

from cursor_shadow_patch.appimage import EXTRACT_DIR_NAME, SEALED, UNSEALED, AppImage
from cursor_shadow_patch.errors import InputNotFound, ShadowPatchError, SubprocessFailed

PAYLOAD = "resources/app/out/main.js"


class FakeAppImageTools:
    """
    Stands in for ``<appimage> --appimage-extract`` and appimagetool.

    An "AppImage" here is a text file holding main.js; extraction writes
    it into squashfs-root and repacking writes it back.
    """

    def __init__(self, payload_relpath: str = PAYLOAD, extract_rc: int = 0):
        self.payload_relpath = payload_relpath
        self.extract_rc = extract_rc
        self.calls = []

    def __call__(self, args, cwd=None, env=None, **kwargs):
        self.calls.append((list(args), cwd, env))
        if args[1] == "--appimage-extract":
            if self.extract_rc:
                return subprocess.CompletedProcess(args, self.extract_rc, "", "corrupt image")
            target = Path(cwd) / EXTRACT_DIR_NAME / self.payload_relpath
            target.parent.mkdir(parents=True)
            target.write_bytes(Path(args[0]).read_bytes())
        else:
            tree, out = Path(args[1]), Path(args[2])
            out.write_bytes((tree / PAYLOAD).read_bytes())
        return subprocess.CompletedProcess(args, 0, "", "")


def _make_appimage(tmp_path: Path, content: bytes = b"main-js") -> Path:
    d = tmp_path / "apps"
    d.mkdir()
    p = d / "Cursor-1.0.0-x86_64.AppImage"
    p.write_bytes(content)
    return p


class TestAppImage:
    def test_unseal_and_reseal(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        work = tmp_path / "work"
        tools = FakeAppImageTools()
        app = AppImage(image, work)

        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=tools):
            tree = app.unseal()
            assert tree == work / EXTRACT_DIR_NAME
            assert app.state == UNSEALED
            # The temporary copy used for extraction is gone
            assert not (work / image.name).exists()

            payload = app.locate_payload()
            assert payload == tree / PAYLOAD
            payload.write_bytes(b"patched-js")

            app.reseal(tmp_path / "appimagetool")

        assert image.read_bytes() == b"patched-js"
        assert not tree.exists()
        assert app.state == SEALED

        extract_args, extract_cwd, _ = tools.calls[0]
        assert extract_args == [str((work / image.name).absolute()), "--appimage-extract"]
        assert extract_cwd == str(work)
        repack_args, _, repack_env = tools.calls[1]
        assert repack_args == [str((tmp_path / "appimagetool").absolute()), str(tree), str(image.absolute())]
        assert repack_env["ARCH"]

    def test_nested_payload_location(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        tools = FakeAppImageTools(payload_relpath="usr/share/cursor/resources/app/out/main.js")
        app = AppImage(image, tmp_path / "work")
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=tools):
            app.unseal()
        assert app.locate_payload() == app.tree / "usr/share/cursor/resources/app/out/main.js"

    def test_missing_payload(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        tools = FakeAppImageTools(payload_relpath="resources/app/out/other.js")
        app = AppImage(image, tmp_path / "work")
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=tools):
            app.unseal()
        with pytest.raises(InputNotFound):
            app.locate_payload()

    def test_extraction_failure_removes_copy(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        work = tmp_path / "work"
        app = AppImage(image, work)
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=FakeAppImageTools(extract_rc=1)):
            with pytest.raises(SubprocessFailed) as ex:
                app.unseal()
        assert ex.value.step == "extract AppImage"
        assert "corrupt image" in str(ex.value)
        assert not (work / image.name).exists()
        assert image.read_bytes() == b"main-js"
        assert app.state == SEALED

    def test_stale_tree_is_replaced(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        work = tmp_path / "work"
        (work / EXTRACT_DIR_NAME).mkdir(parents=True)
        (work / EXTRACT_DIR_NAME / "stale").write_text("x")
        app = AppImage(image, work)
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=FakeAppImageTools()):
            app.unseal()
        assert not (app.tree / "stale").exists()

    def test_missing_appimage(self, tmp_path: Path):
        with pytest.raises(InputNotFound):
            AppImage(tmp_path / "nope.AppImage", tmp_path).unseal()

    def test_reseal_requires_unseal(self, tmp_path: Path):
        app = AppImage(_make_appimage(tmp_path), tmp_path / "work")
        with pytest.raises(ShadowPatchError):
            app.reseal(tmp_path / "appimagetool")

    def test_discard(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        app = AppImage(image, tmp_path / "work")
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=FakeAppImageTools()):
            app.unseal()
        app.discard()
        assert not app.tree.exists()
        assert image.read_bytes() == b"main-js"

    def test_round_trip_keeps_payload(self, tmp_path: Path):
        image = _make_appimage(tmp_path, b"\x00original\r\nbytes\xff")
        tools = FakeAppImageTools()
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=tools):
            app = AppImage(image, tmp_path / "work")
            app.unseal()
            app.reseal(tmp_path / "appimagetool")

            again = AppImage(image, tmp_path / "work")
            again.unseal()
            assert again.locate_payload().read_bytes() == b"\x00original\r\nbytes\xff"

    def test_repack_failure_keeps_tree(self, tmp_path: Path):
        image = _make_appimage(tmp_path)
        tools = FakeAppImageTools()
        app = AppImage(image, tmp_path / "work")
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", side_effect=tools):
            app.unseal()
        fail = subprocess.CompletedProcess(args=["appimagetool"], returncode=1, stdout="", stderr="mksquashfs failed")
        with mock.patch("cursor_shadow_patch.tools.subprocess.run", return_value=fail):
            with pytest.raises(SubprocessFailed) as ex:
                app.reseal(tmp_path / "appimagetool")
        assert ex.value.step == "repack AppImage"
        assert app.state == UNSEALED
        assert app.tree.is_dir()
