"""Dependency graph utilities.

Builds the content-addressed dependency closure of a workspace and answers
the two questions an update needs:

- impact_list(): which packages transitively depend on the updated ones,
  in dependency-first order.
- republish_order(): in which order a batch of packages must be republished
  so no package is rewritten before its own dependencies are final, rewriting
  dependency records in memory as new versions are published.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from .errors import (
    CircularDependencyError,
    GraphLoadError,
    ManifestError,
    NotAffectedError,
    PackageNotFoundError,
)
from .models import Package


class PackageLoader(Protocol):
    """Anything that can load packages by content identifier."""

    def load_package(self, hash: str) -> Package: ...

    def package_dir(self, hash: str) -> Path: ...


class WorkspaceGraph:
    """The dependency closure of a root package.

    Nodes are keyed by content identifier. The root is held separately since
    the workspace's own package is usually unpublished and has no identifier.
    Every identifier referenced by any package in the graph is a key of
    `nodes`.
    """

    def __init__(
        self, root: Package, nodes: dict[str, Package], dirs: dict[str, Path]
    ) -> None:
        self.root = root
        self.nodes = nodes
        self.dirs = dirs
        self._dependents: dict[str, list[Package]] = {h: [] for h in nodes}
        for pkg in [root, *nodes.values()]:
            for dep_hash in dict.fromkeys(d.hash for d in pkg.dependencies):
                self._dependents.setdefault(dep_hash, []).append(pkg)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, hash: object) -> bool:
        return hash in self.nodes

    def get(self, hash: str) -> Package:
        return self.nodes[hash]

    def dependents(self, hash: str) -> list[Package]:
        """Packages that list `hash` as a direct dependency."""
        return list(self._dependents.get(hash, []))

    def by_name(self, name: str) -> list[Package]:
        return [pkg for pkg in self.nodes.values() if pkg.name == name]

    def find(self, name: str) -> Package | None:
        """Root-relative lookup: the root itself, else the first loaded match."""
        if self.root.name == name:
            return self.root
        matches = self.by_name(name)
        return matches[0] if matches else None

    def names(self) -> list[str]:
        return sorted({self.root.name, *(pkg.name for pkg in self.nodes.values())})

    def duplicates(self) -> dict[str, list[str]]:
        """Names present in the closure under more than one identifier."""
        hashes: dict[str, list[str]] = {}
        for hash, pkg in self.nodes.items():
            hashes.setdefault(pkg.name, []).append(hash)
        return {name: hs for name, hs in hashes.items() if len(hs) > 1}

    def name_view(self) -> dict[str, Package]:
        """Map each package name to one Package, the root included."""
        view = {self.root.name: self.root}
        for pkg in self.nodes.values():
            view.setdefault(pkg.name, pkg)
        return view


def build_graph(root: Package, loader: PackageLoader) -> WorkspaceGraph:
    """Load the full transitive dependency closure of `root`.

    Depth-first, loading each content identifier at most once so diamond
    shaped graphs cost O(distinct packages).

    Raises:
        GraphLoadError: If any referenced package cannot be loaded. No
            partial graph is returned.
    """
    nodes: dict[str, Package] = {}
    dirs: dict[str, Path] = {}

    def visit(pkg: Package) -> None:
        for dep in pkg.dependencies:
            if dep.hash in nodes:
                continue
            try:
                child = loader.load_package(dep.hash)
            except PackageNotFoundError as exc:
                raise GraphLoadError(
                    f"package {dep.name} @ {dep.hash} not found "
                    f"(required by {pkg.name})"
                ) from exc
            except ManifestError as exc:
                raise GraphLoadError(
                    f"package {dep.name} @ {dep.hash} is unreadable "
                    f"(required by {pkg.name}): {exc}"
                ) from exc
            nodes[dep.hash] = child
            dirs[dep.hash] = loader.package_dir(dep.hash)
            visit(child)

    visit(root)
    return WorkspaceGraph(root, nodes, dirs)


def impact_list(
    graph: WorkspaceGraph, targets: Iterable[str], *, memoize: bool = True
) -> list[str]:
    """List every package affected by updating the named packages.

    Walks the graph in post-order from the root. A package is affected if
    one of its dependencies is a target or is itself affected. Verdicts are
    cached per content identifier; the cache never changes the result.

    Returns:
        Affected package names, each after every affected package it
        depends on. The root comes last.

    Raises:
        NotAffectedError: If the root does not depend on any target.

    Example:
        app → lib-b → lib-c; impact_list(graph, ["lib-c"]) → ["lib-b", "app"]
    """
    wanted = set(targets)
    if not wanted:
        raise ValueError("at least one package name is required")

    touched: list[str] = []
    seen: set[str] = set()
    memo: dict[str, bool] = {}

    def check(pkg: Package) -> bool:
        # The root may itself be a target; other targets are matched by name
        # from their dependents and never descended into.
        needs = pkg.name in wanted
        for dep in pkg.dependencies:
            if dep.name in wanted:
                needs = True
                continue
            if memoize and dep.hash in memo:
                verdict = memo[dep.hash]
            else:
                verdict = check(graph.get(dep.hash))
                memo[dep.hash] = verdict
            needs = needs or verdict
        if needs and pkg.name not in seen:
            seen.add(pkg.name)
            touched.append(pkg.name)
        return needs

    if not check(graph.root):
        raise NotAffectedError(
            f"named package not in dependency tree: {', '.join(sorted(wanted))}"
        )
    return touched


def reverse_dependencies(packages: Mapping[str, Package]) -> dict[str, set[str]]:
    """Map each package name to the names of packages depending on it.

    Only dependencies on packages in `packages` are tracked; self references
    are ignored.
    """
    dependents: dict[str, set[str]] = {name: set() for name in packages}
    for name, pkg in packages.items():
        for dep in pkg.dependency_names():
            if dep in dependents and dep != name:
                dependents[dep].add(name)
    return dependents


class RepublishPlan(BaseModel):
    """Result of republish_order().

    Attributes:
        order: Package names, dependencies first.
        packages: The package view after in-memory dependency rewrites.
        published: Name → newly published package, for packages that got
            a new identifier.
    """

    order: list[str] = Field(default_factory=list)
    packages: dict[str, Package] = Field(default_factory=dict)
    published: dict[str, Package] = Field(default_factory=dict)


def republish_order(
    packages: Mapping[str, Package],
    stack: Iterable[str],
    *,
    publish: Callable[[Package], Package | None] | None = None,
    max_iterations: int | None = None,
) -> RepublishPlan:
    """Order the republishing of `stack` and everything depending on it.

    Keeps a frontier, seeded with `stack`. Each round takes a frontier
    member none of whose dependencies is still waiting to be republished,
    appends it to the order, and adds the packages depending on it to the
    frontier. Among ready members the alphabetically first is taken.

    If `publish` is given it is called with each package as it is reached;
    when it returns a package with a new identifier, every other package in
    the view depending on that name is rewritten to point at the new
    identifier and version before it is processed itself.

    Args:
        packages: Map of package name → Package for the whole workspace.
        stack: Names of the packages updated first.
        publish: Optional callback republishing one package.
        max_iterations: Bound on rounds; defaults to max(1000, n²).

    Raises:
        NotAffectedError: If a stack name is not in `packages`.
        CircularDependencyError: If the frontier stops making progress or
            the round bound is exceeded.

    Example:
        app → lib-b → lib-c; stack ["lib-c"] → ["lib-c", "lib-b", "app"]
    """
    view = dict(packages)
    seeds = list(dict.fromkeys(stack))
    unknown = [name for name in seeds if name not in view]
    if unknown:
        raise NotAffectedError(f"not in workspace: {', '.join(unknown)}")

    dependents = reverse_dependencies(view)

    # Everything that will be republished, so readiness can look ahead of
    # the frontier.
    affected = set(seeds)
    queue = list(seeds)
    while queue:
        for dependent in dependents[queue.pop()]:
            if dependent not in affected:
                affected.add(dependent)
                queue.append(dependent)

    frontier = set(seeds)
    emitted: set[str] = set()
    plan = RepublishPlan()
    limit = max_iterations if max_iterations is not None else max(1000, len(view) ** 2)
    rounds = 0

    def is_ready(name: str) -> bool:
        return not any(
            dep != name and dep in affected and dep not in emitted
            for dep in view[name].dependency_names()
        )

    while frontier:
        rounds += 1
        if rounds > limit:
            raise CircularDependencyError(
                f"circular dependency detected: no progress after {limit} rounds "
                f"(pending: {', '.join(sorted(frontier))})"
            )
        ready = next((name for name in sorted(frontier) if is_ready(name)), None)
        if ready is None:
            raise CircularDependencyError(
                f"circular dependency detected among: {', '.join(sorted(frontier))}"
            )

        frontier.discard(ready)
        emitted.add(ready)
        plan.order.append(ready)

        if publish is not None:
            new = publish(view[ready])
            if new is not None:
                view[ready] = new
                plan.published[ready] = new
                for other, pkg in view.items():
                    if other != ready and pkg.depends_on(ready):
                        view[other] = pkg.with_dependency(ready, new.hash, new.version)

        frontier.update(d for d in dependents[ready] if d not in emitted)

    plan.packages = view
    return plan
