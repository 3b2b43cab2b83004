"""Symlink deployment of configuration packages into a target directory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .filesystem import (
    DEFAULT_IGNORE,
    blocking_ancestor,
    create_symlink,
    is_ignored,
    iter_package_files,
    lexists,
    replace_file,
    symlink_points_to,
)
from .models import (
    Conflict,
    ConflictChoice,
    ConflictKind,
    ConflictPolicy,
    DeployAction,
    DeployResult,
    PackageResult,
)

logger = logging.getLogger(__name__)

ConflictResolver = Callable[[str, Sequence[Conflict]], ConflictChoice]

_POLICY_CHOICES = {
    ConflictPolicy.ADOPT: ConflictChoice.ADOPT,
    ConflictPolicy.SKIP: ConflictChoice.SKIP,
    ConflictPolicy.ABORT: ConflictChoice.ABORT,
}


class DeployError(RuntimeError):
    """Raised when a deployment request is invalid."""


class _PolicyAbort(Exception):
    def __init__(self, result: PackageResult) -> None:
        super().__init__(result.reason)
        self.result = result


@dataclass(frozen=True, slots=True)
class _Plan:
    links: tuple[tuple[Path, Path], ...]
    conflicts: tuple[Conflict, ...]
    unchanged: int


def discover_packages(source: Path, *, ignore: Iterable[str] = DEFAULT_IGNORE) -> list[str]:
    """Return the package names available in ``source``, sorted."""

    if not source.is_dir():
        raise DeployError(f"Configuration source '{source}' does not exist")

    patterns = tuple(ignore)
    names: list[str] = []
    for child in source.iterdir():
        if not child.is_dir() or child.name.startswith("."):
            continue
        if is_ignored(Path(child.name), patterns):
            continue
        names.append(child.name)
    return sorted(names)


def deploy(
    source: Path,
    target: Path,
    packages: Iterable[str],
    policy: ConflictPolicy,
    *,
    resolver: ConflictResolver | None = None,
    ignore: Iterable[str] = DEFAULT_IGNORE,
    relative_links: bool = True,
) -> DeployResult:
    """Link every file of ``packages`` from ``source`` into ``target``."""

    engine = DeploymentEngine(
        source,
        target,
        resolver=resolver,
        ignore=ignore,
        relative_links=relative_links,
    )
    return engine.deploy(packages, policy)


class DeploymentEngine:
    """Applies packages as symlinks and resolves conflicts per policy."""

    def __init__(
        self,
        source: Path,
        target: Path,
        *,
        resolver: ConflictResolver | None = None,
        ignore: Iterable[str] = DEFAULT_IGNORE,
        relative_links: bool = True,
    ) -> None:
        self.source = Path(source)
        self.target = Path(target)
        self.resolver = resolver
        self.ignore = tuple(ignore)
        self.relative_links = relative_links

    def deploy(self, packages: Iterable[str], policy: ConflictPolicy) -> DeployResult:
        names = list(packages)
        self._validate(names, policy)
        self.target.mkdir(parents=True, exist_ok=True)

        results: list[PackageResult] = []
        for name in names:
            try:
                results.append(self._deploy_package(name, policy))
            except _PolicyAbort as abort:
                results.append(abort.result)
                logger.error("Deployment aborted at package '%s'", name)
                return DeployResult(packages=tuple(results), aborted=True)

        return DeployResult(packages=tuple(results))

    # ------------------------------------------------------------------
    # Internal helpers

    def _validate(self, names: Sequence[str], policy: ConflictPolicy) -> None:
        if not self.source.is_dir():
            raise DeployError(f"Configuration source '{self.source}' does not exist")
        if self.target.exists() and not self.target.is_dir():
            raise DeployError(f"Target '{self.target}' is not a directory")
        if policy is ConflictPolicy.ASK and self.resolver is None:
            raise DeployError("Conflict policy 'ask' requires an interactive resolver")

        for name in names:
            if Path(name).name != name or name in {"", ".", ".."}:
                raise DeployError(f"Package name '{name}' must be a single directory name")
            if not (self.source / name).is_dir():
                raise DeployError(f"Unknown package '{name}' in '{self.source}'")

    def _deploy_package(self, name: str, policy: ConflictPolicy) -> PackageResult:
        try:
            plan = self._plan(name)
        except OSError as exc:
            return self._failed(name, f"Unable to read package: {exc}")

        if not plan.conflicts:
            return self._link(name, plan, DeployAction.APPLIED)

        for conflict in plan.conflicts:
            logger.warning(
                "Conflict in package '%s': '%s' already exists (%s)%s",
                name,
                conflict.target,
                conflict.kind.value,
                f": {conflict.details}" if conflict.details else "",
            )

        choice = self._choose(name, plan.conflicts, policy)

        if choice is ConflictChoice.SKIP:
            logger.info("Skipping package '%s'; existing files left in place", name)
            return PackageResult(package=name, action=DeployAction.SKIPPED, conflicts=plan.conflicts)

        if choice is ConflictChoice.ABORT:
            raise _PolicyAbort(
                PackageResult(
                    package=name,
                    action=DeployAction.FAILED,
                    conflicts=plan.conflicts,
                    reason="aborted on conflict",
                )
            )

        problems = self._adoption_problems(plan.conflicts)
        if problems:
            for problem in problems:
                logger.error("Cannot adopt into package '%s': %s", name, problem)
            return self._failed(name, "; ".join(problems), conflicts=plan.conflicts)

        conflicts = plan.conflicts
        adopted: list[Path] = []
        try:
            for conflict in conflicts:
                logger.info("Adopting '%s' into '%s'", conflict.target, conflict.source)
                replace_file(conflict.target, conflict.source)
                adopted.append(conflict.relative_path)
            plan = self._plan(name)
        except OSError as exc:
            return self._failed(
                name,
                f"Adoption failed: {exc}",
                conflicts=conflicts,
                adopted=tuple(adopted),
            )

        if plan.conflicts:
            remaining = ", ".join(conflict.relative_path.as_posix() for conflict in plan.conflicts)
            return self._failed(
                name,
                f"Conflicts remain after adoption: {remaining}",
                conflicts=conflicts,
                adopted=tuple(adopted),
            )

        return self._link(name, plan, DeployAction.ADOPTED, conflicts=conflicts, adopted=tuple(adopted))

    def _plan(self, name: str) -> _Plan:
        root = self.source / name
        links: list[tuple[Path, Path]] = []
        conflicts: list[Conflict] = []
        unchanged = 0

        for relative in iter_package_files(root, ignore=self.ignore):
            source_file = root / relative
            link = self.target / relative

            blocker = blocking_ancestor(link, stop=self.target)
            if blocker is not None:
                conflicts.append(
                    Conflict(
                        package=name,
                        relative_path=relative,
                        source=source_file,
                        target=link,
                        kind=ConflictKind.BLOCKED,
                        details=f"'{blocker}' is not a directory",
                    )
                )
                continue

            if not lexists(link):
                links.append((link, source_file))
                continue

            if symlink_points_to(link, source_file) or _same_file(link, source_file):
                unchanged += 1
                continue

            if link.is_symlink():
                kind = ConflictKind.SYMLINK
                details = f"points to '{os.readlink(link)}'"
            elif link.is_dir():
                kind = ConflictKind.DIRECTORY
                details = None
            else:
                kind = ConflictKind.FILE
                details = None

            conflicts.append(
                Conflict(
                    package=name,
                    relative_path=relative,
                    source=source_file,
                    target=link,
                    kind=kind,
                    details=details,
                )
            )

        return _Plan(links=tuple(links), conflicts=tuple(conflicts), unchanged=unchanged)

    def _choose(self, name: str, conflicts: Sequence[Conflict], policy: ConflictPolicy) -> ConflictChoice:
        if policy is not ConflictPolicy.ASK:
            return _POLICY_CHOICES[policy]

        if self.resolver is None:
            raise DeployError("Conflict policy 'ask' requires an interactive resolver")
        choice = ConflictChoice(self.resolver(name, conflicts))
        logger.info("Resolution for package '%s': %s", name, choice.value)
        return choice

    def _adoption_problems(self, conflicts: Sequence[Conflict]) -> list[str]:
        problems: list[str] = []
        for conflict in conflicts:
            relative = conflict.relative_path.as_posix()
            if conflict.kind is ConflictKind.BLOCKED:
                problems.append(f"{relative}: {conflict.details}, adopting it would overwrite a package directory")
            elif conflict.kind is ConflictKind.DIRECTORY:
                problems.append(f"{relative}: target is a directory, adopting it would overwrite a package file")
            elif conflict.kind is ConflictKind.SYMLINK:
                problems.append(f"{relative}: target is a symlink that {conflict.details}")
            elif conflict.source.is_symlink() or not conflict.source.is_file():
                problems.append(f"{relative}: package entry is not a regular file")
        return problems

    def _link(
        self,
        name: str,
        plan: _Plan,
        action: DeployAction,
        *,
        conflicts: tuple[Conflict, ...] = (),
        adopted: tuple[Path, ...] = (),
    ) -> PackageResult:
        created: list[Path] = []
        try:
            for link, source_file in plan.links:
                create_symlink(link, source_file, relative=self.relative_links)
                logger.debug("Linked '%s' -> '%s'", link, source_file)
                created.append(link)
        except OSError as exc:
            return self._failed(
                name,
                f"Unable to create symlink: {exc}",
                conflicts=conflicts,
                linked=tuple(created),
                adopted=adopted,
            )

        if created:
            logger.info("Package '%s': %d link(s) created", name, len(created))
        else:
            logger.info("Package '%s' already deployed", name)

        return PackageResult(
            package=name,
            action=action,
            conflicts=conflicts,
            linked=tuple(created),
            adopted=adopted,
        )

    def _failed(
        self,
        name: str,
        reason: str,
        *,
        conflicts: tuple[Conflict, ...] = (),
        linked: tuple[Path, ...] = (),
        adopted: tuple[Path, ...] = (),
    ) -> PackageResult:
        logger.error("Package '%s' failed: %s", name, reason)
        return PackageResult(
            package=name,
            action=DeployAction.FAILED,
            conflicts=conflicts,
            linked=linked,
            adopted=adopted,
            reason=reason,
        )


def _same_file(link: Path, source_file: Path) -> bool:
    # A parent directory may already be a symlink into the package.
    return link.resolve(strict=False) == source_file.resolve(strict=False)
