"""Command-line interface for dotdeploy."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterable, Sequence

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Prompt
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, Config, ConfigError, default_config, load_config
from .deploy import DeployError, discover_packages
from .deploy import deploy as deploy_packages
from .filesystem import iter_package_files
from .models import (
    Conflict,
    ConflictChoice,
    ConflictPolicy,
    DeployAction,
    DeployResult,
    DesktopEnvironment,
    SelectionSet,
    SessionAction,
    SessionResult,
)
from .session import (
    DescriptorInstall,
    SessionError,
    install_descriptors,
    parse_environment,
    register_session,
)
from .system import CommandError, build_from_source, fetch_or_update, refresh_font_cache

app = typer.Typer(help="Deploy dotfiles as symlinks and register desktop sessions")
console = Console()
err_console = Console(stderr=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_config(config: Path | None) -> Config:
    if config is None and not (Path.cwd() / DEFAULT_CONFIG_FILENAME).exists():
        return default_config()
    return load_config(config)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges (e.g. `sudo`).")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'dotdeploy init --config <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, (DeployError, SessionError, CommandError)):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _format_conflicts(conflicts: Iterable[Conflict]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Path")
    table.add_column("Existing")
    table.add_column("Details", overflow="fold")

    for conflict in conflicts:
        table.add_row(conflict.relative_path.as_posix(), conflict.kind.value, conflict.details or "")

    console.print(table)


def _format_deploy_result(result: DeployResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Package")
    table.add_column("Action")
    table.add_column("Links")
    table.add_column("Details", overflow="fold")

    action_styles = {
        DeployAction.APPLIED: "green",
        DeployAction.ADOPTED: "cyan",
        DeployAction.SKIPPED: "yellow",
        DeployAction.FAILED: "red",
    }

    for package in result.packages:
        style = action_styles[package.action]
        details = package.reason or ""
        if package.adopted:
            details = "adopted " + ", ".join(path.as_posix() for path in package.adopted)
        table.add_row(
            package.package,
            f"[{style}]{package.action.value}[/{style}]",
            str(len(package.linked)),
            details,
        )

    console.print(table)

    skipped = result.with_action(DeployAction.SKIPPED)
    if skipped:
        names = ", ".join(package.package for package in skipped)
        console.print(f"[yellow]Skipped packages with conflicts: {names}[/yellow]")
    failed = result.with_action(DeployAction.FAILED)
    if failed:
        names = ", ".join(package.package for package in failed)
        console.print(f"[red]Failed packages: {names}[/red]")
    if result.aborted:
        console.print("[red]Deployment aborted; packages applied before the conflict were kept.[/red]")


def _format_session_results(results: Iterable[SessionResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Session")
    table.add_column("Action")
    table.add_column("Exec", overflow="fold")
    table.add_column("Descriptor", overflow="fold")

    action_styles = {
        SessionAction.REGISTERED: "green",
        SessionAction.NOT_FOUND: "yellow",
        SessionAction.FAILED: "red",
    }

    for result in results:
        style = action_styles[result.action]
        table.add_row(
            result.environment.value,
            f"[{style}]{result.action.value}[/{style}]",
            result.descriptor.executable.as_posix() if result.descriptor else "",
            result.path.as_posix() if result.path else (result.details or ""),
        )

    console.print(table)


def _ask_conflict(package: str, conflicts: Sequence[Conflict]) -> ConflictChoice:
    console.print(f"[yellow]Package '{package}' conflicts with existing files:[/yellow]")
    _format_conflicts(conflicts)
    answer = Prompt.ask(
        "Adopt the existing files, skip this package, or abort?",
        choices=[choice.value for choice in ConflictChoice],
        default=ConflictChoice.SKIP.value,
        console=console,
    )
    return ConflictChoice(answer)


def _ask_executable(environment: DesktopEnvironment) -> str | None:
    answer = Prompt.ask(
        f"No executable found for {environment.label}. Enter its path (empty to skip)",
        default="",
        show_default=False,
        console=console,
    )
    return answer.strip() or None


def _choose_packages(config: Config, requested: Sequence[str] | None, interactive: bool) -> tuple[str, ...]:
    if requested:
        return tuple(requested)
    if config.deploy.packages:
        return config.deploy.packages

    available = discover_packages(config.source.path, ignore=config.deploy.ignore)
    if not interactive or not available:
        return tuple(available)

    console.print(f"Available packages: {', '.join(available)}")
    while True:
        answer = Prompt.ask("Packages to deploy (comma separated, empty for all)", default="", console=console)
        chosen = tuple(name.strip() for name in answer.split(",") if name.strip())
        unknown = [name for name in chosen if name not in available]
        if not unknown:
            return chosen or tuple(available)
        console.print(f"[red]Unknown package(s): {', '.join(unknown)}[/red]")


def _choose_environments(
    config: Config, requested: Sequence[str] | None, interactive: bool
) -> tuple[DesktopEnvironment, ...]:
    if requested:
        return tuple(parse_environment(name) for name in requested)
    if config.session.environments or not interactive:
        return config.session.environments

    shipped = [environment for environment in DesktopEnvironment if (config.source.path / environment.value).is_dir()]
    offered = shipped or list(DesktopEnvironment)
    answer = Prompt.ask(
        "Desktop environment to register",
        choices=[environment.value for environment in offered] + ["none"],
        default=offered[0].value,
        console=console,
    )
    if answer == "none":
        return ()
    return (DesktopEnvironment(answer),)


def _build_selection(
    config: Config,
    *,
    packages: Sequence[str] | None = None,
    environments: Sequence[str] | None = None,
    policy: ConflictPolicy | None = None,
    yes: bool = False,
    with_packages: bool = True,
    with_environments: bool = True,
) -> SelectionSet:
    interactive = not yes
    chosen_policy = policy or config.deploy.policy
    if not interactive and chosen_policy is ConflictPolicy.ASK:
        chosen_policy = config.deploy.non_interactive_policy

    return SelectionSet(
        packages=_choose_packages(config, packages, interactive) if with_packages else (),
        environments=_choose_environments(config, environments, interactive) if with_environments else (),
        policy=chosen_policy,
        interactive=interactive,
        extra_builds=config.build.sources,
    )


def _run_deploy(config: Config, selection: SelectionSet) -> DeployResult:
    result = deploy_packages(
        config.source.path,
        config.deploy.target,
        selection.packages,
        selection.policy,
        resolver=_ask_conflict if selection.interactive else None,
        ignore=config.deploy.ignore,
        relative_links=config.deploy.relative_links,
    )
    _format_deploy_result(result)
    return result


def _run_register(config: Config, selection: SelectionSet) -> list[SessionResult]:
    results = [
        register_session(
            environment,
            config.session.lookup_table(),
            config.session.search_roots,
            exec_dirs=config.session.exec_dirs,
            prompt=_ask_executable if selection.interactive else None,
            directories=config.session.directories(),
        )
        for environment in selection.environments
    ]
    if results:
        _format_session_results(results)
    else:
        console.print("[yellow]No desktop environment selected; nothing to register.[/yellow]")
    return results


def _run_builds(config: Config, selection: SelectionSet) -> None:
    directories: list[Path] = []
    for environment in selection.environments:
        directory = environment.build_directory(config.source.path)
        if directory is not None:
            directories.append(directory)
    for name in selection.extra_builds:
        directory = config.source.path / name
        if (directory / "Makefile").is_file() and directory not in directories:
            directories.append(directory)

    for directory in directories:
        console.print(f"[green]Building '{directory.name}'...[/green]")
        build_from_source(directory, sudo=config.build.sudo)


def _render_init_config(
    *,
    source: str,
    repository: str | None,
    target: str,
    environments: list[str],
) -> str:
    source_section: dict[str, str] = {"path": source}
    if repository:
        source_section["repository"] = repository

    data = {
        "source": source_section,
        "deploy": {
            "target": target,
            "packages": [],
            "policy": ConflictPolicy.ASK.value,
            "non_interactive_policy": ConflictPolicy.SKIP.value,
        },
        "build": {"sources": ["dmenu", "dwmblocks-async"], "sudo": True},
        "session": {
            "environments": environments,
            "search_roots": ["bin", "scripts"],
            "descriptors_dir": "desktop",
        },
    }

    buffer = io.StringIO()
    buffer.write("# dotdeploy configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Deploy dotfiles as symlinks and register desktop sessions."""

    _configure_logging(verbose)


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    source: str = typer.Option("~/.dotfiles", "--source", help="Location of the configuration repository"),
    repository: str | None = typer.Option(None, "--repository", help="Git URL to clone the repository from"),
    target: str = typer.Option("~", "--target", help="Directory packages are linked into"),
    environment: list[str] = typer.Option(None, "--environment", "-e", help="Desktop environment(s) to register"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotdeploy configuration file."""

    try:
        environments = [parse_environment(name).value for name in environment or []]
    except SessionError as exc:
        _handle_error(exc)
        return

    config_path = config
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        _render_init_config(source=source, repository=repository, target=target, environments=environments)
    )
    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def packages(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotdeploy.toml"),
) -> None:
    """List the packages available in the configuration source."""

    try:
        config_obj = _load_config(config)
        names = discover_packages(config_obj.source.path, ignore=config_obj.deploy.ignore)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Package")
    table.add_column("Files")
    for name in names:
        count = sum(1 for _ in iter_package_files(config_obj.source.path / name, ignore=config_obj.deploy.ignore))
        table.add_row(name, str(count))
    console.print(table)


@app.command()
def deploy(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotdeploy.toml"),
    package: list[str] = typer.Option(None, "--package", "-p", help="Limit to specific package(s)"),
    policy: ConflictPolicy | None = typer.Option(None, "--policy", help="How to handle existing files"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Never prompt; use the non-interactive policy"),
) -> None:
    """Link packages into the target directory."""

    try:
        config_obj = _load_config(config)
        selection = _build_selection(
            config_obj,
            packages=package,
            policy=policy,
            yes=yes,
            with_environments=False,
        )
        result = _run_deploy(config_obj, selection)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if result.failed:
        raise typer.Exit(code=1)


@app.command()
def register(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotdeploy.toml"),
    environment: list[str] = typer.Option(None, "--environment", "-e", help="Desktop environment(s) to register"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Never prompt for executable paths"),
) -> None:
    """Write session descriptors for the selected desktop environments."""

    try:
        config_obj = _load_config(config)
        selection = _build_selection(config_obj, environments=environment, yes=yes, with_packages=False)
        results = _run_register(config_obj, selection)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    if any(result.action is SessionAction.FAILED for result in results):
        raise typer.Exit(code=1)


@app.command()
def setup(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotdeploy.toml"),
    package: list[str] = typer.Option(None, "--package", "-p", help="Limit to specific package(s)"),
    environment: list[str] = typer.Option(None, "--environment", "-e", help="Desktop environment(s) to register"),
    policy: ConflictPolicy | None = typer.Option(None, "--policy", help="How to handle existing files"),
    fetch: bool = typer.Option(True, "--fetch/--no-fetch", help="Clone or update the configuration repository"),
    build: bool = typer.Option(True, "--build/--no-build", help="Build source-based window managers"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Never prompt; use configured defaults"),
) -> None:
    """Fetch, deploy, build, and register sessions in one run."""

    try:
        config_obj = _load_config(config)
        if fetch and config_obj.source.repository:
            fetch_or_update(config_obj.source.repository, config_obj.source.path)

        selection = _build_selection(
            config_obj,
            packages=package,
            environments=environment,
            policy=policy,
            yes=yes,
        )

        deploy_result = _run_deploy(config_obj, selection)
        if deploy_result.aborted:
            raise typer.Exit(code=1)

        if refresh_font_cache(config_obj.deploy.target):
            console.print("[green]Font cache refreshed.[/green]")

        if build:
            _run_builds(config_obj, selection)

        descriptors = DescriptorInstall()
        if config_obj.session.descriptors_dir is not None:
            descriptors = install_descriptors(config_obj.session.descriptors_dir, config_obj.session.directories())
            for path in descriptors.installed:
                console.print(f"[green]Installed '{path}'.[/green]")
            for path, reason in descriptors.failed:
                console.print(f"[red]Could not install '{path}': {reason}[/red]")

        session_results = _run_register(config_obj, selection)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    registration_failed = any(result.action is SessionAction.FAILED for result in session_results)
    if deploy_result.failed or descriptors.failed or registration_failed:
        console.print("[red]Setup finished with errors.[/red]")
        raise typer.Exit(code=1)

    console.print("[green]Setup complete.[/green]")


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
