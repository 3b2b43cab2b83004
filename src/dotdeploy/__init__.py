"""Core package for the dotdeploy project."""

from .cli import app, run
from .config import Config, ConfigError, DeployConfig, SessionConfig, SourceConfig, load_config
from .deploy import DeployError, DeploymentEngine, discover_packages
from .models import (
    Conflict,
    ConflictChoice,
    ConflictKind,
    ConflictPolicy,
    DeployAction,
    DeployResult,
    DesktopEnvironment,
    PackageResult,
    SelectionSet,
    SessionAction,
    SessionClass,
    SessionDescriptor,
    SessionResult,
)
from .session import DescriptorInstall, SessionDirectories, SessionError, register_session, resolve_executable

__all__ = [
    "Config",
    "ConfigError",
    "DeployConfig",
    "SessionConfig",
    "SourceConfig",
    "load_config",
    "DeployError",
    "DeploymentEngine",
    "discover_packages",
    "Conflict",
    "ConflictChoice",
    "ConflictKind",
    "ConflictPolicy",
    "DeployAction",
    "DeployResult",
    "DesktopEnvironment",
    "PackageResult",
    "SelectionSet",
    "SessionAction",
    "SessionClass",
    "SessionDescriptor",
    "SessionResult",
    "DescriptorInstall",
    "SessionDirectories",
    "SessionError",
    "register_session",
    "resolve_executable",
    "app",
    "run",
]
