"""Thin wrappers around the external tools a setup run relies on."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

FONT_DIRECTORY = Path(".local/share/fonts")


class CommandError(RuntimeError):
    """Raised when an external command is missing or exits with an error."""


def run_command(args: Sequence[str], *, cwd: Path | None = None) -> None:
    """Run ``args`` and raise ``CommandError`` unless it succeeds."""

    command = list(args)
    logger.info("Running: %s", " ".join(command))
    try:
        result = subprocess.run(command, cwd=cwd, check=False)
    except FileNotFoundError as exc:
        raise CommandError(f"Command '{command[0]}' not found") from exc

    if result.returncode != 0:
        raise CommandError(f"Command '{' '.join(command)}' exited with status {result.returncode}")


def fetch_or_update(url: str, destination: Path) -> None:
    """Clone ``url`` into ``destination``, or fast-forward an existing checkout."""

    if (destination / ".git").exists():
        logger.info("Updating '%s'", destination)
        run_command(["git", "-C", str(destination), "pull", "--ff-only"])
        return
    if destination.exists() and any(destination.iterdir()):
        raise CommandError(f"'{destination}' exists and is not a git checkout")

    destination.parent.mkdir(parents=True, exist_ok=True)
    run_command(["git", "clone", url, str(destination)])


def build_from_source(directory: Path, *, sudo: bool = True) -> None:
    """Compile and install a Makefile-based checkout such as dwm or dmenu."""

    if not (directory / "Makefile").is_file():
        raise CommandError(f"No Makefile found in '{directory}'")
    prefix = ["sudo"] if sudo else []
    run_command([*prefix, "make", "clean", "install"], cwd=directory)


def refresh_font_cache(target: Path) -> bool:
    """Rebuild the fontconfig cache when ``target`` has user fonts installed."""

    fonts = target / FONT_DIRECTORY
    if not fonts.is_dir():
        return False
    run_command(["fc-cache", "-f", str(fonts)])
    return True
