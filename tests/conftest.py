from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture
def dotfiles(tmp_path: Path) -> Path:
    """A configuration source with ``shell`` and ``editor`` packages."""

    source = tmp_path / "dotfiles"
    (source / "shell").mkdir(parents=True)
    (source / "shell" / ".bashrc").write_text("alias ll='ls -al'\n")
    nvim = source / "editor" / ".config" / "nvim"
    nvim.mkdir(parents=True)
    (nvim / "init.lua").write_text("vim.o.number = true\n")
    return source
