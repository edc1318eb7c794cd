"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from ripple.errors import PackageNotFoundError
from ripple.models import Dependency, Package
from ripple.store import PackageStore


def write_manifest(
    directory: Path,
    name: str,
    version: str = "1.0.0",
    deps: list[tuple[str, str, str]] | None = None,
    *,
    release_cmd: str = "",
    remote: str = "",
    tool: str = "",
) -> Path:
    """Write a ripple.toml; deps are (name, hash, version) triples."""
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["[package]", f'name = "{name}"', f'version = "{version}"']
    if release_cmd:
        lines.append(f'release-cmd = "{release_cmd}"')
    if remote:
        lines.append(f'remote = "{remote}"')
    for dep_name, dep_hash, dep_version in deps or []:
        lines += [
            "",
            "[[dependencies]]",
            f'name = "{dep_name}"',
            f'hash = "{dep_hash}"',
            f'version = "{dep_version}"',
        ]
    if tool:
        lines += ["", tool]
    path = directory / "ripple.toml"
    path.write_text("\n".join(lines) + "\n")
    return path


def pkg(name: str, hash: str = "", *deps: tuple[str, str], version: str = "1.0.0") -> Package:
    """Build a Package in memory; deps are (name, hash) pairs."""
    return Package(
        name=name,
        hash=hash,
        version=version,
        dependencies=[Dependency(name=n, hash=h, version="1.0.0") for n, h in deps],
    )


class DictLoader:
    """In-memory package loader that counts loads."""

    def __init__(self, *packages: Package) -> None:
        self.packages = {p.hash: p for p in packages}
        self.loads: list[str] = []

    def load_package(self, hash: str) -> Package:
        self.loads.append(hash)
        if hash not in self.packages:
            raise PackageNotFoundError(hash)
        return self.packages[hash]

    def package_dir(self, hash: str) -> Path:
        return Path("/store") / hash


@pytest.fixture
def chain_loader() -> DictLoader:
    """app → lib-b → lib-c."""
    return DictLoader(
        pkg("lib-b", "QmB1", ("lib-c", "QmC1")),
        pkg("lib-c", "QmC1"),
    )


@pytest.fixture
def chain_root() -> Package:
    return pkg("app", "", ("lib-b", "QmB1"))


@pytest.fixture
def diamond_loader() -> DictLoader:
    """top → left, right; left → bottom; right → bottom."""
    return DictLoader(
        pkg("left", "QmL", ("bottom", "QmBot")),
        pkg("right", "QmR", ("bottom", "QmBot")),
        pkg("bottom", "QmBot"),
    )


@pytest.fixture
def diamond_root() -> Package:
    return pkg("top", "", ("left", "QmL"), ("right", "QmR"))


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """On-disk workspace: app → lib-b → lib-c, with lib-c's new release.

    The store holds lib-b@QmB1, lib-c@QmC1 and lib-c@QmC2 (1.0.1).
    """
    root = tmp_path / "app"
    write_manifest(
        root,
        "app",
        deps=[("lib-b", "QmB1", "1.0.0")],
        tool=f'[tool.ripple]\nwork-root = "{tmp_path / "sessions"}"',
    )
    store = root / ".ripple" / "store"
    write_manifest(
        store / "QmB1",
        "lib-b",
        deps=[("lib-c", "QmC1", "1.0.0")],
        release_cmd="make release",
        remote="github.com/acme/lib-b",
    )
    write_manifest(store / "QmC1", "lib-c", remote="github.com/acme/lib-c")
    write_manifest(store / "QmC2", "lib-c", "1.0.1", remote="github.com/acme/lib-c")
    return root


@pytest.fixture
def store(workspace: Path) -> PackageStore:
    return PackageStore(workspace / ".ripple" / "store")
