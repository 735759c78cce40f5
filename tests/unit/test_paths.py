from __future__ import annotations

import os

import pytest

from netverdict.system.paths import expand_env_tokens, paths_equal, resolve_path


pytestmark = pytest.mark.unit

DEVICES = {"\\device\\harddiskvolume3": "C:"}


def test_device_path_is_mapped_to_drive_letter() -> None:
    """NT device paths from audit records map back to their drive letter."""
    resolved = resolve_path(r"\Device\HarddiskVolume3\Program Files\App\app.exe", device_map=DEVICES)
    assert resolved == r"C:\Program Files\App\app.exe"


def test_unknown_device_is_left_unchanged() -> None:
    path = r"\Device\HarddiskVolume9\tool.exe"
    assert resolve_path(path, device_map=DEVICES) == path


def test_blank_and_missing_paths_pass_through() -> None:
    assert resolve_path(None) is None
    assert resolve_path("") == ""
    assert resolve_path("   ") == "   "


def test_env_tokens_expand_and_unknown_tokens_survive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NETVERDICT_TEST_ROOT", r"D:\Tools")
    assert expand_env_tokens(r"%NETVERDICT_TEST_ROOT%\bin\app.exe") == r"D:\Tools\bin\app.exe"
    assert expand_env_tokens(r"%NETVERDICT_NOT_SET_ANYWHERE%\app.exe") == r"%NETVERDICT_NOT_SET_ANYWHERE%\app.exe"


def test_paths_compare_case_insensitively() -> None:
    assert paths_equal(r"C:\Apps\Tool.EXE", r"c:\apps\tool.exe")
    assert not paths_equal(r"C:\Apps\tool.exe", r"C:\Apps\other.exe")


def test_existing_links_resolve_to_their_target(tmp_path) -> None:
    real_dir = tmp_path / "real"
    real_dir.mkdir()
    (real_dir / "app.exe").write_bytes(b"")
    link_dir = tmp_path / "link"
    try:
        os.symlink(real_dir, link_dir, target_is_directory=True)
    except (OSError, NotImplementedError) as exc:
        pytest.skip(f"symlinks unavailable: {exc}")

    assert paths_equal(str(link_dir / "app.exe"), str(real_dir / "app.exe"))
    assert resolve_path(str(link_dir / "app.exe")) == os.path.realpath(real_dir / "app.exe")
