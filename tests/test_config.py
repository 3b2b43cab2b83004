from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from dotdeploy.config import DEFAULT_CONFIG_FILENAME, ConfigError, default_config, load_config
from dotdeploy.filesystem import DEFAULT_IGNORE
from dotdeploy.models import ConflictPolicy, DesktopEnvironment
from dotdeploy.session import DEFAULT_EXEC_DIRS, DEFAULT_XSESSIONS_DIR


def _write_config(tmp_path: Path, body: str) -> Path:
    config_path = tmp_path / DEFAULT_CONFIG_FILENAME
    config_path.write_text(dedent(body))
    return config_path


def test_load_config_happy_path(tmp_path: Path, fake_home: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [source]
        path = "~/.dotfiles"
        repository = "https://example.com/dotfiles.git"

        [deploy]
        target = "~"
        packages = ["shell", "editor"]
        policy = "adopt"

        [build]
        sources = ["dmenu"]
        sudo = false

        [session]
        environments = ["dwm", "Hyprland"]
        search_roots = ["bin"]
        descriptors_dir = "desktop"

        [session.executables]
        dwm = "~/.local/bin/dwm"
        """,
    )

    config = load_config(config_path)

    assert config.config_path == config_path.resolve(strict=False)
    assert config.source.path == fake_home / ".dotfiles"
    assert config.source.repository == "https://example.com/dotfiles.git"
    assert config.deploy.target == fake_home
    assert config.deploy.packages == ("shell", "editor")
    assert config.deploy.policy is ConflictPolicy.ADOPT
    assert config.deploy.non_interactive_policy is ConflictPolicy.SKIP
    assert config.build.sources == ("dmenu",)
    assert config.build.sudo is False

    session = config.session
    assert session.environments == (DesktopEnvironment.DWM, DesktopEnvironment.HYPRLAND)
    assert session.search_roots == (fake_home / ".dotfiles" / "bin",)
    assert session.descriptors_dir == fake_home / ".dotfiles" / "desktop"
    assert session.lookup_table() == {"dwm": fake_home / ".local" / "bin" / "dwm"}
    assert session.directories().xsessions == DEFAULT_XSESSIONS_DIR.resolve()


def test_defaults_when_sections_missing(tmp_path: Path, fake_home: Path) -> None:
    config = load_config(_write_config(tmp_path, "\n"))

    assert config.source.path == fake_home / ".dotfiles"
    assert config.deploy.policy is ConflictPolicy.ASK
    assert config.deploy.ignore == DEFAULT_IGNORE
    assert config.deploy.relative_links is True
    assert config.session.environments == ()
    assert len(config.session.exec_dirs) == len(DEFAULT_EXEC_DIRS)
    assert config.session.descriptors_dir is None


def test_relative_paths_resolve_against_config_directory(tmp_path: Path, fake_home: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [source]
        path = "./dotfiles"

        [deploy]
        target = "./home"
        """,
    )

    config = load_config(config_path)

    assert config.source.path == (tmp_path / "dotfiles").resolve()
    assert config.deploy.target == (tmp_path / "home").resolve()


def test_unknown_environment_rejected(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [session]
        environments = ["gnome-flashback"]
        """,
    )

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_invalid_policy_rejected(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [deploy]
        policy = "overwrite"
        """,
    )

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_non_interactive_policy_cannot_ask(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [deploy]
        non_interactive_policy = "ask"
        """,
    )

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_nested_package_name_rejected(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path,
        """
        [deploy]
        packages = ["shell/zsh"]
        """,
    )

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_invalid_toml_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, "[deploy\n")

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_missing_file_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.toml")


def test_directory_argument_resolves_default_file(tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    _write_config(
        config_dir,
        """
        [source]
        path = "./base"
        """,
    )

    config = load_config(config_dir)

    assert config.config_path == (config_dir / DEFAULT_CONFIG_FILENAME).resolve(strict=False)


def test_default_config(fake_home: Path) -> None:
    config = default_config()

    assert config.config_path is None
    assert config.source.path == fake_home / ".dotfiles"
    assert config.deploy.target == fake_home
