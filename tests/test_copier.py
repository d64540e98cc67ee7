"""Tests pour la copie conditionnelle et l'horodatage."""

import subprocess
from datetime import datetime, timezone

import pytest

from photostream_backup.copier import (
    CopyError,
    CopyStatus,
    check_rsync_available,
    copy_if_changed,
    set_modification_time,
    touch_stamp,
)


def test_copy_then_unchanged(tmp_path):
    source = tmp_path / "a.jpg"
    source.write_bytes(b"image")
    dest = tmp_path / "out" / "a.jpg"
    dest.parent.mkdir()

    assert copy_if_changed(source, dest) is CopyStatus.COPIED
    assert dest.read_bytes() == b"image"
    assert copy_if_changed(source, dest) is CopyStatus.UNCHANGED


def test_changed_destination_is_replaced(tmp_path):
    source = tmp_path / "a.jpg"
    source.write_bytes(b"image")
    dest = tmp_path / "b.jpg"
    dest.write_bytes(b"other")

    assert copy_if_changed(source, dest) is CopyStatus.COPIED
    assert dest.read_bytes() == b"image"


def test_missing_source(tmp_path):
    with pytest.raises(CopyError):
        copy_if_changed(tmp_path / "nope.jpg", tmp_path / "out.jpg")


def test_unwritable_destination(tmp_path):
    source = tmp_path / "a.jpg"
    source.write_bytes(b"image")
    with pytest.raises(CopyError):
        copy_if_changed(source, tmp_path / "missing_dir" / "a.jpg")


def test_rsync_invocation(tmp_path, monkeypatch):
    """rsync est appelé avec un vecteur d'arguments, jamais via le shell."""
    source = tmp_path / "with space's.jpg"
    source.write_bytes(b"image")
    dest = tmp_path / "dest.jpg"
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, 0, stdout=">f+++++++++ with space's.jpg\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert copy_if_changed(source, dest, use_rsync=True) is CopyStatus.COPIED
    cmd, kwargs = calls[0]
    assert cmd[0] == "rsync" and "--update" in cmd
    assert cmd[-2:] == [str(source), str(dest)]
    assert not kwargs.get("shell")


def test_rsync_unchanged_and_failure(tmp_path, monkeypatch):
    source = tmp_path / "a.jpg"
    source.write_bytes(b"image")

    monkeypatch.setattr(subprocess, "run",
                        lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout="", stderr=""))
    assert copy_if_changed(source, tmp_path / "b.jpg", use_rsync=True) is CopyStatus.UNCHANGED

    monkeypatch.setattr(subprocess, "run",
                        lambda cmd, **kw: subprocess.CompletedProcess(cmd, 23, stdout="", stderr="denied"))
    with pytest.raises(CopyError, match="denied"):
        copy_if_changed(source, tmp_path / "b.jpg", use_rsync=True)


def test_check_rsync_available(monkeypatch):
    monkeypatch.setattr(subprocess, "run",
                        lambda cmd, **kw: subprocess.CompletedProcess(cmd, 0, stdout="rsync  version 3.2.7", stderr=""))
    assert check_rsync_available()

    def missing(cmd, **kw):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", missing)
    assert not check_rsync_available()


def test_touch_stamp_and_modification_time(tmp_path):
    when = datetime(2001, 1, 1, 0, 1, 40, tzinfo=timezone.utc)
    path = tmp_path / "a.jpg"
    path.write_bytes(b"x")

    set_modification_time(path, when)

    assert touch_stamp(when) == "200101010001.40"
    assert path.stat().st_mtime == when.timestamp()
