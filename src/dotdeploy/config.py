"""TOML configuration loading for dotdeploy."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .filesystem import DEFAULT_IGNORE
from .models import ConflictPolicy, DesktopEnvironment
from .session import (
    DEFAULT_EXEC_DIRS,
    DEFAULT_WAYLAND_SESSIONS_DIR,
    DEFAULT_XSESSIONS_DIR,
    SessionDirectories,
)

DEFAULT_CONFIG_FILENAME = "dotdeploy.toml"
DEFAULT_SOURCE = "~/.dotfiles"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class SourceConfig(BaseModel):
    """Where the configuration repository lives and where it comes from."""

    model_config = ConfigDict(frozen=True)

    path: Path
    repository: str | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "SourceConfig":
        path = _expand_path(raw.get("path", DEFAULT_SOURCE), base_dir=base_dir)
        return cls(path=path, repository=raw.get("repository"))


class DeployConfig(BaseModel):
    """Options for symlinking packages into the target directory."""

    model_config = ConfigDict(frozen=True)

    target: Path
    packages: tuple[str, ...] = ()
    policy: ConflictPolicy = ConflictPolicy.ASK
    non_interactive_policy: ConflictPolicy = ConflictPolicy.SKIP
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    relative_links: bool = True

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "DeployConfig":
        target = _expand_path(raw.get("target", "~"), base_dir=base_dir)
        packages = tuple(str(name) for name in raw.get("packages", ()))
        for name in packages:
            if "/" in name or name in {"", ".", ".."}:
                raise ConfigError(f"Package name '{name}' must be a single directory name")

        non_interactive = ConflictPolicy(raw.get("non_interactive_policy", ConflictPolicy.SKIP.value))
        if non_interactive is ConflictPolicy.ASK:
            raise ConfigError("'non_interactive_policy' cannot be 'ask'")

        return cls(
            target=target,
            packages=packages,
            policy=ConflictPolicy(raw.get("policy", ConflictPolicy.ASK.value)),
            non_interactive_policy=non_interactive,
            ignore=tuple(raw.get("ignore", DEFAULT_IGNORE)),
            relative_links=bool(raw.get("relative_links", True)),
        )


class BuildConfig(BaseModel):
    """Source checkouts compiled with ``make clean install`` after deployment."""

    model_config = ConfigDict(frozen=True)

    sources: tuple[str, ...] = ()
    sudo: bool = True


class SessionConfig(BaseModel):
    """Session registration settings."""

    model_config = ConfigDict(frozen=True)

    environments: tuple[DesktopEnvironment, ...] = ()
    executables: Dict[DesktopEnvironment, Path] = Field(default_factory=dict)
    search_roots: tuple[Path, ...] = ()
    exec_dirs: tuple[Path, ...] = DEFAULT_EXEC_DIRS
    xsessions_dir: Path = DEFAULT_XSESSIONS_DIR
    wayland_sessions_dir: Path = DEFAULT_WAYLAND_SESSIONS_DIR
    descriptors_dir: Path | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path, source: Path) -> "SessionConfig":
        environments = tuple(_parse_environment(name) for name in raw.get("environments", ()))

        executables: Dict[DesktopEnvironment, Path] = {}
        for name, value in (raw.get("executables") or {}).items():
            executables[_parse_environment(name)] = _expand_path(value, base_dir=base_dir)

        # Search roots and shipped descriptors live inside the configuration repository.
        search_roots = tuple(_expand_path(root, base_dir=source) for root in raw.get("search_roots", ()))
        descriptors_raw = raw.get("descriptors_dir")
        descriptors = _expand_path(descriptors_raw, base_dir=source) if descriptors_raw else None

        return cls(
            environments=environments,
            executables=executables,
            search_roots=search_roots,
            exec_dirs=tuple(
                _expand_path(directory, base_dir=base_dir) for directory in raw.get("exec_dirs", DEFAULT_EXEC_DIRS)
            ),
            xsessions_dir=_expand_path(raw.get("xsessions_dir", DEFAULT_XSESSIONS_DIR), base_dir=base_dir),
            wayland_sessions_dir=_expand_path(
                raw.get("wayland_sessions_dir", DEFAULT_WAYLAND_SESSIONS_DIR), base_dir=base_dir
            ),
            descriptors_dir=descriptors,
        )

    def lookup_table(self) -> dict[str, Path]:
        return {environment.value: path for environment, path in self.executables.items()}

    def directories(self) -> SessionDirectories:
        return SessionDirectories(xsessions=self.xsessions_dir, wayland_sessions=self.wayland_sessions_dir)


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None
    source: SourceConfig
    deploy: DeployConfig
    build: BuildConfig
    session: SessionConfig


def _parse_environment(name: str) -> DesktopEnvironment:
    try:
        return DesktopEnvironment(str(name).lower())
    except ValueError as exc:
        known = ", ".join(environment.value for environment in DesktopEnvironment)
        raise ConfigError(f"Unknown desktop environment '{name}'. Known environments: {known}") from exc


def build_config(data: Mapping[str, Any], *, base_dir: Path, config_path: Path | None = None) -> Config:
    """Validate raw TOML data into a ``Config``."""

    try:
        source = SourceConfig.from_raw(data.get("source") or {}, base_dir=base_dir)
        deploy = DeployConfig.from_raw(data.get("deploy") or {}, base_dir=base_dir)
        build = BuildConfig(**(data.get("build") or {}))
        session = SessionConfig.from_raw(data.get("session") or {}, base_dir=base_dir, source=source.path)
    except (ValidationError, ValueError, TypeError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    return Config(config_path=config_path, source=source, deploy=deploy, build=build, session=session)


def default_config() -> Config:
    """Return the configuration used when no file is present."""

    return build_config({}, base_dir=Path.cwd())


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. Defaults to
            ``dotdeploy.toml`` in the current working directory.
    """

    config_path = _resolve_config_path(path)

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    return build_config(data, base_dir=config_path.parent, config_path=config_path)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
