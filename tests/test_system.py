from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from dotdeploy.system import CommandError, build_from_source, fetch_or_update, refresh_font_cache, run_command


class _Recorder:
    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.calls: list[tuple[list[str], Path | None]] = []

    def __call__(self, args, *, cwd=None, check=False):  # noqa: ANN001
        self.calls.append((list(args), cwd))
        return subprocess.CompletedProcess(args, self.returncode)


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch) -> _Recorder:
    recorder = _Recorder()
    monkeypatch.setattr("dotdeploy.system.subprocess.run", recorder)
    return recorder


def test_run_command_raises_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("dotdeploy.system.subprocess.run", _Recorder(returncode=2))

    with pytest.raises(CommandError, match="status 2"):
        run_command(["false"])


def test_run_command_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    def missing(*_args, **_kwargs):
        raise FileNotFoundError("nope")

    monkeypatch.setattr("dotdeploy.system.subprocess.run", missing)

    with pytest.raises(CommandError, match="not found"):
        run_command(["git", "status"])


def test_fetch_clones_when_absent(tmp_path: Path, recorder: _Recorder) -> None:
    destination = tmp_path / "dotfiles"

    fetch_or_update("https://example.com/dotfiles.git", destination)

    assert recorder.calls == [(["git", "clone", "https://example.com/dotfiles.git", str(destination)], None)]


def test_fetch_pulls_existing_checkout(tmp_path: Path, recorder: _Recorder) -> None:
    destination = tmp_path / "dotfiles"
    (destination / ".git").mkdir(parents=True)

    fetch_or_update("https://example.com/dotfiles.git", destination)

    assert recorder.calls == [(["git", "-C", str(destination), "pull", "--ff-only"], None)]


def test_fetch_refuses_foreign_directory(tmp_path: Path, recorder: _Recorder) -> None:
    destination = tmp_path / "dotfiles"
    destination.mkdir()
    (destination / "notes.txt").write_text("mine\n")

    with pytest.raises(CommandError):
        fetch_or_update("https://example.com/dotfiles.git", destination)
    assert recorder.calls == []


def test_build_from_source(tmp_path: Path, recorder: _Recorder) -> None:
    checkout = tmp_path / "dwm"
    checkout.mkdir()
    (checkout / "Makefile").write_text("install:\n")

    build_from_source(checkout)
    build_from_source(checkout, sudo=False)

    assert recorder.calls == [
        (["sudo", "make", "clean", "install"], checkout),
        (["make", "clean", "install"], checkout),
    ]


def test_build_requires_makefile(tmp_path: Path, recorder: _Recorder) -> None:
    with pytest.raises(CommandError):
        build_from_source(tmp_path)
    assert recorder.calls == []


def test_refresh_font_cache_only_with_fonts(fake_home: Path, recorder: _Recorder) -> None:
    assert refresh_font_cache(fake_home) is False
    assert recorder.calls == []

    fonts = fake_home / ".local" / "share" / "fonts"
    fonts.mkdir(parents=True)
    assert refresh_font_cache(fake_home) is True
    assert recorder.calls == [(["fc-cache", "-f", str(fonts)], None)]
