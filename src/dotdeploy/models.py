"""Shared models and enums for dotdeploy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ConflictPolicy(str, Enum):
    """How the deployment engine reacts to pre-existing target entries."""

    ASK = "ask"
    ADOPT = "adopt"
    SKIP = "skip"
    ABORT = "abort"


class ConflictChoice(str, Enum):
    """Decision returned by an interactive conflict resolver."""

    ADOPT = "adopt"
    SKIP = "skip"
    ABORT = "abort"


class ConflictKind(str, Enum):
    """What currently occupies a conflicting target path."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class Conflict:
    """A package file whose target location is already taken."""

    package: str
    relative_path: Path
    source: Path
    target: Path
    kind: ConflictKind
    details: str | None = None


class DeployAction(str, Enum):
    """Outcome of deploying a single package."""

    APPLIED = "applied"
    ADOPTED = "adopted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PackageResult:
    """Result emitted for each requested package."""

    package: str
    action: DeployAction
    conflicts: tuple[Conflict, ...] = ()
    linked: tuple[Path, ...] = ()
    adopted: tuple[Path, ...] = ()
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class DeployResult:
    """Collection of package results for one deployment run."""

    packages: tuple[PackageResult, ...]
    aborted: bool = False

    @property
    def failed(self) -> bool:
        return self.aborted or any(result.action is DeployAction.FAILED for result in self.packages)

    def with_action(self, action: DeployAction) -> tuple[PackageResult, ...]:
        return tuple(result for result in self.packages if result.action is action)


class SessionClass(str, Enum):
    """Display server family a session runs under."""

    X11 = "x11"
    WAYLAND = "wayland"


class DesktopEnvironment(str, Enum):
    """Window managers and compositors that can be registered as sessions."""

    DWM = "dwm"
    I3 = "i3"
    OPENBOX = "openbox"
    BSPWM = "bspwm"
    AWESOME = "awesome"
    QTILE = "qtile"
    XMONAD = "xmonad"
    HERBSTLUFTWM = "herbstluftwm"
    SWAY = "sway"
    HYPRLAND = "hyprland"
    RIVER = "river"
    WAYFIRE = "wayfire"
    NIRI = "niri"

    @property
    def session_class(self) -> SessionClass:
        return _ENVIRONMENT_TRAITS[self].session_class

    @property
    def label(self) -> str:
        return _ENVIRONMENT_TRAITS[self].label

    @property
    def comment(self) -> str:
        return _ENVIRONMENT_TRAITS[self].comment

    @property
    def desktop_name(self) -> str:
        return _ENVIRONMENT_TRAITS[self].desktop_name

    @property
    def built_from_source(self) -> bool:
        return _ENVIRONMENT_TRAITS[self].built_from_source

    def launcher_names(self) -> tuple[str, ...]:
        """Filenames a custom launcher script for this environment may use."""

        name = self.value
        return (
            f"start{name}",
            f"start-{name}",
            f"{name}-start",
            f"{name}-session",
            f"{name}.sh",
            name,
        )

    def build_directory(self, source: Path) -> Path | None:
        """Return the checkout to build for this environment, if it ships one."""

        if not self.built_from_source:
            return None
        candidate = source / self.value
        if (candidate / "Makefile").is_file():
            return candidate
        return None


@dataclass(frozen=True, slots=True)
class _EnvironmentTraits:
    session_class: SessionClass
    label: str
    comment: str
    desktop_name: str
    built_from_source: bool = False


_ENVIRONMENT_TRAITS: dict[DesktopEnvironment, _EnvironmentTraits] = {
    DesktopEnvironment.DWM: _EnvironmentTraits(SessionClass.X11, "dwm", "Dynamic window manager", "dwm", True),
    DesktopEnvironment.I3: _EnvironmentTraits(SessionClass.X11, "i3", "Improved tiling window manager", "i3"),
    DesktopEnvironment.OPENBOX: _EnvironmentTraits(
        SessionClass.X11, "Openbox", "Stacking window manager", "Openbox"
    ),
    DesktopEnvironment.BSPWM: _EnvironmentTraits(
        SessionClass.X11, "bspwm", "Binary space partitioning window manager", "bspwm"
    ),
    DesktopEnvironment.AWESOME: _EnvironmentTraits(
        SessionClass.X11, "awesome", "Highly configurable window manager", "awesome"
    ),
    DesktopEnvironment.QTILE: _EnvironmentTraits(
        SessionClass.X11, "Qtile", "Tiling window manager written in Python", "qtile"
    ),
    DesktopEnvironment.XMONAD: _EnvironmentTraits(
        SessionClass.X11, "xmonad", "Tiling window manager written in Haskell", "xmonad"
    ),
    DesktopEnvironment.HERBSTLUFTWM: _EnvironmentTraits(
        SessionClass.X11, "herbstluftwm", "Manual tiling window manager", "herbstluftwm"
    ),
    DesktopEnvironment.SWAY: _EnvironmentTraits(
        SessionClass.WAYLAND, "Sway", "i3-compatible Wayland compositor", "sway"
    ),
    DesktopEnvironment.HYPRLAND: _EnvironmentTraits(
        SessionClass.WAYLAND, "Hyprland", "Dynamic tiling Wayland compositor", "Hyprland"
    ),
    DesktopEnvironment.RIVER: _EnvironmentTraits(
        SessionClass.WAYLAND, "River", "Dynamic tiling Wayland compositor", "river"
    ),
    DesktopEnvironment.WAYFIRE: _EnvironmentTraits(
        SessionClass.WAYLAND, "Wayfire", "3D Wayland compositor", "Wayfire"
    ),
    DesktopEnvironment.NIRI: _EnvironmentTraits(
        SessionClass.WAYLAND, "Niri", "Scrollable-tiling Wayland compositor", "niri"
    ),
}


@dataclass(frozen=True, slots=True)
class SessionDescriptor:
    """Session entry advertised to display managers."""

    environment: DesktopEnvironment
    executable: Path
    session_class: SessionClass

    @property
    def filename(self) -> str:
        return f"{self.environment.value}.desktop"

    def render(self) -> str:
        executable = self.executable.as_posix()
        lines = [
            "[Desktop Entry]",
            f"Name={self.environment.label}",
            f"Comment={self.environment.comment}",
            f"Exec={executable}",
            f"TryExec={executable}",
            "Type=Application",
            f"DesktopNames={self.environment.desktop_name}",
        ]
        return "\n".join(lines) + "\n"


class ResolutionSource(str, Enum):
    """Where a session executable was found."""

    LOOKUP = "lookup"
    PATH = "path"
    SEARCH_ROOT = "search_root"
    MANUAL = "manual"


class SessionAction(str, Enum):
    """Outcome of registering a session."""

    REGISTERED = "registered"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SessionResult:
    """Result emitted for each requested desktop environment."""

    environment: DesktopEnvironment
    action: SessionAction
    descriptor: SessionDescriptor | None = None
    path: Path | None = None
    resolved_from: ResolutionSource | None = None
    details: str | None = None


@dataclass(frozen=True, slots=True)
class SelectionSet:
    """Everything the operator chose for one run, built once up front."""

    packages: tuple[str, ...] = ()
    environments: tuple[DesktopEnvironment, ...] = ()
    policy: ConflictPolicy = ConflictPolicy.ASK
    interactive: bool = True
    extra_builds: tuple[str, ...] = ()
