"""External collaborators: version control, installer, release, tests, reviews.

Each class is a thin wrapper over a command-line tool. They report success
by returning and failure by raising CollaboratorError (from shell.run), and
never touch the update checkpoint.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from .config import MANIFEST_FILE, RippleConfig, render
from .errors import CollaboratorError
from .graph import build_graph
from .manifest import manifest_path, read_last_published, set_version
from .models import Package
from .shell import capture, git, run
from .store import PackageStore
from .versions import bump_patch


def clone_url(remote: str) -> str:
    """Turn a remote locator into something git can clone.

    Examples:
        "github.com/acme/lib" → "git@github.com:acme/lib"
        "gitlab.com/acme/lib" → "https://gitlab.com/acme/lib"
    """
    if "://" in remote or remote.startswith("git@"):
        return remote
    if remote.startswith("github.com/"):
        return "git@github.com:" + remote.removeprefix("github.com/")
    return "https://" + remote


class Vcs:
    """git operations on a working directory."""

    def clone(self, remote: str, dest: Path) -> None:
        if not remote:
            raise CollaboratorError(f"cannot clone into {dest}: no remote set")
        dest.parent.mkdir(parents=True, exist_ok=True)
        git("clone", clone_url(remote), str(dest))

    def checkout_branch(self, directory: Path, branch: str) -> None:
        git("checkout", "-B", branch, cwd=directory)

    def commit(self, directory: Path, message: str, *paths: str) -> None:
        git("add", *paths, cwd=directory)
        git("commit", "-m", message, cwd=directory)

    def push(self, directory: Path, branch: str) -> None:
        git("push", "origin", branch, cwd=directory)

    def current_branch(self, directory: Path) -> str:
        return capture("git", "rev-parse", "--abbrev-ref", "HEAD", cwd=directory)

    def committed_file(self, directory: Path, path: str) -> str | None:
        """Contents of `path` at HEAD, or None if it was never committed."""
        try:
            return capture("git", "show", f"HEAD:{path}", cwd=directory)
        except CollaboratorError:
            return None


class Installer:
    """Fetches packages into the local store with the configured command."""

    def __init__(
        self,
        config: RippleConfig,
        store: PackageStore,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.env = env

    def install_package(self, hash: str, dest: Path | None = None) -> Path:
        """Install one package by content identifier.

        Installing into the store is a no-op when the package is already
        there.
        """
        target = dest or self.store.package_dir(hash)
        if (target / MANIFEST_FILE).is_file():
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        run(*render(self.config.install, hash=hash, dest=str(target)), env=self.env)
        if not (target / MANIFEST_FILE).is_file():
            raise CollaboratorError(f"installing {hash} produced no manifest in {target}")
        return target

    def install_dependencies(self, package: Package) -> int:
        """Install every missing package of `package`'s closure.

        Returns:
            Number of packages fetched.
        """
        fetched = 0
        seen: set[str] = set()
        pending = list(package.dependencies)
        while pending:
            dep = pending.pop()
            if dep.hash in seen:
                continue
            seen.add(dep.hash)
            if not self.store.has(dep.hash):
                print(f"  fetching {dep.name} @ {dep.hash}")
                self.install_package(dep.hash)
                fetched += 1
            pending.extend(self.store.load_package(dep.hash).dependencies)
        return fetched


class Publisher:
    """Releases a package from its working directory."""

    def __init__(
        self, vcs: Vcs, installer: Installer, env: Mapping[str, str] | None = None
    ) -> None:
        self.vcs = vcs
        self.installer = installer
        self.env = env

    def publish(self, directory: Path, package: Package, branch: str) -> Package:
        """Bump the patch version, run the release command, install the result.

        The release command gets the new version in RIPPLE_VERSION and must
        record "<version> <hash>" in .ripple/lastpubver. If it fails, the
        manifest keeps its previous version.

        Returns:
            The newly published package, loaded from the store.

        Raises:
            CollaboratorError: If the package has no release-cmd, or any
                step of the release fails.
        """
        manifest = manifest_path(directory)
        if not package.release_cmd:
            raise CollaboratorError(
                f"{package.name} at {manifest} does not have release-cmd set"
            )
        self.vcs.checkout_branch(directory, branch)

        version = bump_patch(package.version)
        set_version(manifest, version)
        env = {**(self.env or {}), "RIPPLE_VERSION": version}
        try:
            run("sh", "-c", package.release_cmd, cwd=directory, env=env)
        except CollaboratorError:
            set_version(manifest, package.version)
            raise

        released, new_hash = read_last_published(directory)
        if released != version:
            print(f"!! {package.name}: release recorded {released}, expected {version}")
        self.installer.install_package(new_hash)
        return self.installer.store.load_package(new_hash)


class Verifier:
    """Checks an updated package before it is published."""

    def __init__(
        self,
        config: RippleConfig,
        store: PackageStore,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.env = env

    def verify(self, directory: Path, package: Package, skip_tests: bool = False) -> None:
        dupes = build_graph(package, self.store).duplicates()
        if dupes:
            print("!! Package has duplicate dependencies after updating:")
            for name, hashes in sorted(dupes.items()):
                print(f"  {name}: {', '.join(hashes)}")

        if skip_tests:
            print("> Skipping tests")
            return
        run(*self.config.test, cwd=directory, env=self.env)


class ReviewRequests:
    """Opens review (pull) requests with the configured command."""

    def __init__(self, config: RippleConfig, env: Mapping[str, str] | None = None) -> None:
        self.config = config
        self.env = env

    def open(self, directory: Path, message: str) -> str:
        """Open a review request and return its URL.

        The first line of `message` is the title, the rest the body.
        """
        title, _, body = message.partition("\n")
        args = render(self.config.review, title=title, body=body.strip())
        print(f"> Opening review request in {directory}")
        return capture(*args, cwd=directory, env=self.env)


class Toolbox:
    """The collaborators one update invocation works with."""

    def __init__(
        self,
        config: RippleConfig,
        store: PackageStore,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.vcs = Vcs()
        self.installer = Installer(config, store, env)
        self.publisher = Publisher(self.vcs, self.installer, env)
        self.verifier = Verifier(config, store, env)
        self.reviews = ReviewRequests(config, env)
