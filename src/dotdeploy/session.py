"""Desktop session discovery and registration for display managers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .filesystem import is_executable, write_text_atomic
from .models import (
    DesktopEnvironment,
    ResolutionSource,
    SessionAction,
    SessionClass,
    SessionDescriptor,
    SessionResult,
)

logger = logging.getLogger(__name__)

DEFAULT_EXEC_DIRS = (Path("/usr/local/bin"), Path("/usr/bin"), Path("/bin"))
DEFAULT_XSESSIONS_DIR = Path("/usr/share/xsessions")
DEFAULT_WAYLAND_SESSIONS_DIR = Path("/usr/share/wayland-sessions")
DESCRIPTOR_MODE = 0o644

ManualPrompt = Callable[[DesktopEnvironment], "str | Path | None"]


class SessionError(RuntimeError):
    """Raised when a session request names an unknown desktop environment."""


@dataclass(frozen=True, slots=True)
class SessionDirectories:
    """Where descriptors for each session class are written."""

    xsessions: Path = DEFAULT_XSESSIONS_DIR
    wayland_sessions: Path = DEFAULT_WAYLAND_SESSIONS_DIR

    def for_class(self, session_class: SessionClass) -> Path:
        if session_class is SessionClass.WAYLAND:
            return self.wayland_sessions
        return self.xsessions


def parse_environment(name: str | DesktopEnvironment) -> DesktopEnvironment:
    if isinstance(name, DesktopEnvironment):
        return name
    try:
        return DesktopEnvironment(name.strip().lower())
    except ValueError as exc:
        known = ", ".join(environment.value for environment in DesktopEnvironment)
        raise SessionError(f"Unknown desktop environment '{name}'. Known environments: {known}") from exc


def resolve_executable(
    environment: DesktopEnvironment,
    lookup: Mapping[str, str | Path],
    search_roots: Iterable[Path],
    *,
    exec_dirs: Iterable[Path] = DEFAULT_EXEC_DIRS,
    prompt: ManualPrompt | None = None,
) -> tuple[Path, ResolutionSource] | None:
    """Find a runnable entry point for ``environment``.

    The fixed lookup table is consulted first, then the standard executable
    directories, then launcher scripts shipped in the configuration tree, and
    finally the optional ``prompt`` callback. Returns ``None`` when nothing
    usable turns up.
    """

    name = environment.value

    fixed = lookup.get(name)
    if fixed is not None:
        candidate = Path(fixed).expanduser()
        if is_executable(candidate):
            return candidate, ResolutionSource.LOOKUP
        logger.debug("Lookup entry '%s' for %s is not executable", candidate, name)

    for directory in exec_dirs:
        candidate = Path(directory) / name
        if is_executable(candidate):
            return candidate, ResolutionSource.PATH

    for root in search_roots:
        root = Path(root)
        for folder in (root, root / name):
            for launcher in environment.launcher_names():
                candidate = folder / launcher
                if is_executable(candidate):
                    return candidate.resolve(strict=False), ResolutionSource.SEARCH_ROOT

    if prompt is None:
        return None

    answer = prompt(environment)
    if not answer:
        return None
    candidate = Path(answer).expanduser()
    if not is_executable(candidate):
        logger.warning("'%s' is not an executable file; skipping %s", candidate, name)
        return None
    return candidate, ResolutionSource.MANUAL


def write_descriptor(descriptor: SessionDescriptor, directories: SessionDirectories) -> Path:
    """Write ``descriptor`` into the directory for its session class, replacing any previous one."""

    directory = directories.for_class(descriptor.session_class)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / descriptor.filename
    write_text_atomic(path, descriptor.render(), mode=DESCRIPTOR_MODE)
    return path


def register_session(
    name: str | DesktopEnvironment,
    lookup: Mapping[str, str | Path],
    search_roots: Iterable[Path],
    *,
    exec_dirs: Iterable[Path] = DEFAULT_EXEC_DIRS,
    prompt: ManualPrompt | None = None,
    directories: SessionDirectories | None = None,
) -> SessionResult:
    """Resolve an executable for ``name`` and register it as a session."""

    environment = parse_environment(name)
    directories = directories or SessionDirectories()

    resolved = resolve_executable(
        environment,
        lookup,
        search_roots,
        exec_dirs=exec_dirs,
        prompt=prompt,
    )
    if resolved is None:
        logger.warning("No executable found for %s; session not registered", environment.value)
        return SessionResult(
            environment=environment,
            action=SessionAction.NOT_FOUND,
            details="No executable found",
        )

    executable, origin = resolved
    descriptor = SessionDescriptor(
        environment=environment,
        executable=executable,
        session_class=environment.session_class,
    )

    try:
        path = write_descriptor(descriptor, directories)
    except OSError as exc:
        logger.error("Unable to register %s session: %s", environment.value, exc)
        return SessionResult(
            environment=environment,
            action=SessionAction.FAILED,
            descriptor=descriptor,
            resolved_from=origin,
            details=str(exc),
        )

    logger.info("Registered %s session at '%s' (exec '%s')", environment.value, path, executable)
    return SessionResult(
        environment=environment,
        action=SessionAction.REGISTERED,
        descriptor=descriptor,
        path=path,
        resolved_from=origin,
    )


@dataclass(frozen=True, slots=True)
class DescriptorInstall:
    """Pre-made descriptors copied into the X session directory."""

    installed: tuple[Path, ...] = ()
    failed: tuple[tuple[Path, str], ...] = ()


def install_descriptors(directory: Path, directories: SessionDirectories | None = None) -> DescriptorInstall:
    """Copy pre-made ``*.desktop`` files from ``directory`` into the X session directory.

    A file that cannot be written is logged and reported in ``failed``; the
    remaining files are still installed.
    """

    directories = directories or SessionDirectories()
    if not directory.is_dir():
        return DescriptorInstall()

    installed: list[Path] = []
    failed: list[tuple[Path, str]] = []
    destination_dir = directories.for_class(SessionClass.X11)
    for descriptor in sorted(directory.glob("*.desktop")):
        if not descriptor.is_file():
            continue
        destination = destination_dir / descriptor.name
        try:
            destination_dir.mkdir(parents=True, exist_ok=True)
            write_text_atomic(destination, descriptor.read_text(encoding="utf-8"), mode=DESCRIPTOR_MODE)
        except OSError as exc:
            logger.error("Unable to install session descriptor '%s': %s", destination, exc)
            failed.append((destination, str(exc)))
            continue
        logger.info("Installed session descriptor '%s'", destination)
        installed.append(destination)
    return DescriptorInstall(installed=tuple(installed), failed=tuple(failed))
