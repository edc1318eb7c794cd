"""Resumable update workflow: start → next → … → next → push.

Each CLI invocation performs one transition and exits. Progress lives in a
checkpoint file (ripple-update.json) in the workspace; its presence doubles
as the lock that keeps a second update from starting. The checkpoint is
only rewritten after a step fully succeeds, so a failed step can simply be
retried.

States (see UpdateState):
    IDLE                   no checkpoint; `start` creates one
    STARTED                Todo non-empty, Current empty; `next` takes Todo[0]
    AWAITING_VERIFICATION  Current set; `next` publishes or commits it
    FINISHED               Todo and Current empty; `push`, then delete
"""

from __future__ import annotations

import os
import random
import string
import tempfile
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from pydantic import ValidationError

from .config import CHECKPOINT_FILE, MANIFEST_FILE, RippleConfig
from .errors import GraphLoadError, RippleError, WorkflowConflictError
from .graph import WorkspaceGraph, build_graph, impact_list
from .manifest import (
    LAST_PUBLISHED,
    load_config,
    load_manifest,
    manifest_path,
    parse_manifest,
    read_last_published,
    rewrite_dependencies,
)
from .models import Package, UpdateInfo, UpdateState
from .shell import step
from .store import PackageStore
from .tools import Toolbox

ToolFactory = Callable[[RippleConfig, PackageStore, Mapping[str, str]], Toolbox]


def session_id(length: int = 6) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choices(alphabet, k=length))


class Checkpoint:
    """The on-disk UpdateInfo, written atomically."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> UpdateInfo:
        try:
            text = self.path.read_text()
        except FileNotFoundError as exc:
            raise WorkflowConflictError(
                f"no update in progress ({self.path.name} not found)"
            ) from exc
        try:
            return UpdateInfo.model_validate_json(text)
        except ValidationError as exc:
            raise RippleError(f"corrupt checkpoint {self.path}: {exc}") from exc

    def write(self, info: UpdateInfo) -> None:
        """Replace the checkpoint in one step: write a sibling, then rename."""
        data = info.model_dump_json(by_alias=True, indent=2)
        fd, tmp = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def create(self, info: UpdateInfo) -> None:
        if self.exists():
            raise WorkflowConflictError(f"update already in progress ({self.path})")
        self.write(info)


class UpdateSession:
    """Everything one invocation needs, passed explicitly.

    Args:
        workspace: Directory holding the root ripple.toml and the checkpoint.
        config: Tool settings; read from [tool.ripple] when omitted.
        tools: Factory building the collaborators for a session environment.
    """

    def __init__(
        self,
        workspace: Path,
        config: RippleConfig | None = None,
        *,
        tools: ToolFactory = Toolbox,
    ) -> None:
        self.workspace = workspace
        self.config = config or load_config(manifest_path(workspace))
        self.store = PackageStore(self.config.store_path(workspace))
        self.checkpoint = Checkpoint(workspace / CHECKPOINT_FILE)
        self._tools = tools

    # -- helpers -----------------------------------------------------------

    def load_root(self) -> Package:
        return load_manifest(manifest_path(self.workspace))

    def toolbox(self, info: UpdateInfo) -> Toolbox:
        env = {"RIPPLE_WORK_ROOT": info.work_root}
        return self._tools(self.config, self.store, env)

    def commit_message(self, info: UpdateInfo) -> str:
        return "ripple: update " + ", ".join(info.roots)

    def package_dir(self, info: UpdateInfo, root: Package, pkg: Package) -> Path:
        """Working directory for a package during this session.

        The root is updated in the workspace itself; every other package is
        checked out under <work_root>/src/<remote>.
        """
        if pkg.name == root.name:
            return self.workspace
        if not pkg.remote:
            raise RippleError(f"{pkg.name} has no remote set, cannot check it out")
        return Path(info.work_root) / "src" / pkg.remote

    def committed_root(self, root: Package, tools: Toolbox) -> Package:
        """The root as of its last commit, falling back to the working copy.

        The workspace manifest is rewritten in place, so after a failed
        verification only the committed copy still shows the old pins.
        """
        text = tools.vcs.committed_file(self.workspace, MANIFEST_FILE)
        if text is None:
            return root
        return parse_manifest(text, source=f"HEAD:{MANIFEST_FILE}")

    def _locate(self, graph: WorkspaceGraph, name: str) -> Package:
        pkg = graph.find(name)
        if pkg is None:
            raise GraphLoadError(f"dependency {name} not found")
        return pkg

    # -- transitions -------------------------------------------------------

    def start(self, names: Iterable[str]) -> UpdateInfo:
        """Begin propagating an update of `names` through the tree.

        Raises:
            WorkflowConflictError: If an update is already in progress. The
                existing checkpoint is left untouched.
            NotAffectedError: If nothing in the tree depends on `names`.
        """
        roots = list(dict.fromkeys(names))
        if not roots:
            raise RippleError("must pass at least one package name")
        if self.checkpoint.exists():
            raise WorkflowConflictError(
                f"update already in progress ({self.checkpoint.path})"
            )

        root = self.load_root()
        sid = session_id()
        info = UpdateInfo(
            roots=roots,
            work_root=str(self.config.work_root_path() / f"update-{sid}"),
            branch=f"ripple/update-{sid}",
        )
        tools = self.toolbox(info)

        step(f"Starting update of {', '.join(roots)}")
        print(f"> Working in {info.work_root}")
        tools.installer.install_dependencies(root)
        graph = build_graph(root, self.store)
        info.todo = impact_list(graph, roots)

        for name in roots:
            pkg = self._locate(graph, name)
            directory = self.package_dir(info, root, pkg)
            if not directory.exists():
                tools.vcs.clone(pkg.remote, directory)
            version, new_hash = read_last_published(directory)
            info.changes[name] = new_hash
            print(f"  {name}: latest release {version} @ {new_hash}")
            tools.installer.install_package(new_hash)

        print(f"> Will change {len(info.todo)} packages: {', '.join(info.todo)}")
        print("> Run `ripple update next` to continue.")
        self.checkpoint.create(info)
        return info

    def next(self, skip_verification: bool = False) -> UpdateState:
        """Perform exactly one transition and return the resulting state."""
        info = self.checkpoint.read()
        state = info.state
        if state is UpdateState.FINISHED:
            print("> We're done here.")
            print(f"> You can now safely remove {CHECKPOINT_FILE}.")
            return state

        tools = self.toolbox(info)
        print(f"> Working in {info.work_root}")
        if state is UpdateState.AWAITING_VERIFICATION:
            self.finalize(info, tools)
        else:
            self.advance(info, tools, skip_verification)
        return info.state

    def advance(self, info: UpdateInfo, tools: Toolbox, skip_verification: bool) -> None:
        """Take Todo[0], rewrite its dependencies and verify it."""
        name = info.todo[0]
        step(f"Updating package {name}")

        root = self.load_root()
        if name == root.name:
            pkg, directory = self.committed_root(root, tools), self.workspace
        else:
            pkg = self._locate(build_graph(root, self.store), name)
            directory = self.package_dir(info, root, pkg)
            if not directory.exists():
                tools.vcs.clone(pkg.remote, directory)

        if self.apply_changes(pkg, directory, info.changes, tools):
            updated = load_manifest(manifest_path(directory))
            tools.verifier.verify(directory, updated, skip_tests=skip_verification)
            info.done.append(name)
            info.current = str(directory)
            print(f"> Changed {name} at {directory}")
            print("> Please verify before the change gets published and released.")
        else:
            info.skipped.append(name)
            print(f"> Going to skip {name}, it doesn't need to be changed.")
            if name != root.name and (directory / LAST_PUBLISHED).is_file():
                # Dependents further down Todo pick up its latest release.
                version, new_hash = read_last_published(directory)
                if new_hash != pkg.hash:
                    info.changes[name] = new_hash
                    print(f"  {name}: latest release {version} @ {new_hash}")

        info.todo.pop(0)
        print("> Run `ripple update next` to continue.")
        self.checkpoint.write(info)

    def apply_changes(
        self,
        pkg: Package,
        directory: Path,
        changes: Mapping[str, str],
        tools: Toolbox,
    ) -> bool:
        """Repoint `pkg`'s dependencies at the identifiers in `changes`.

        Whether the package changed is decided from `pkg`, the store copy or
        the last committed root, never from the working copy. Retrying after
        a failed verification therefore still sees the change.
        """
        tools.installer.install_dependencies(pkg)
        updates: dict[str, tuple[str, str]] = {}
        for dep in pkg.dependencies:
            new_hash = changes.get(dep.name)
            if new_hash is None or new_hash == dep.hash:
                continue
            tools.installer.install_package(new_hash)
            updates[dep.name] = (new_hash, self.store.load_package(new_hash).version)
        if not updates:
            return False

        manifest = manifest_path(directory)
        print(f"> Rewriting dependencies in {manifest}")
        rewrite_dependencies(manifest, updates)
        tools.installer.install_dependencies(load_manifest(manifest))
        return True

    def finalize(self, info: UpdateInfo, tools: Toolbox) -> None:
        """Publish (or, for the root, commit) the package awaiting verification."""
        directory = Path(info.current)
        current = load_manifest(manifest_path(directory))
        root = self.load_root()

        if current.name in info.skipped:
            # Only reached from checkpoints written by other tools; advance()
            # never sets Current for a skipped package.
            print(f"> Skipping {current.name}, it wasn't changed.")
        elif current.name == root.name:
            # The workspace root is committed on the session branch, never published.
            tools.vcs.checkout_branch(directory, info.branch)
            tools.vcs.commit(directory, self.commit_message(info), MANIFEST_FILE)
            print(f"> Committed {current.name} on {info.branch}")
        else:
            published = tools.publisher.publish(directory, current, info.branch)
            info.changes[current.name] = published.hash
            print(f"> Published package {current.name} {published.version} @ {published.hash}")

        info.current = ""
        handled, total = info.progress()
        if info.todo:
            print(f"> Progress: {handled} of {total} packages, next: {info.todo[0]}")
            print("> Run `ripple update next` to continue.")
        else:
            print(f"> Progress: {handled} of {total} packages, finished.")
            print(f"> You can now safely remove {CHECKPOINT_FILE}.")
        self.checkpoint.write(info)

    def push(self) -> dict[str, str]:
        """Push every changed package's branch and open review requests.

        Each review request lists the ones opened before it under
        "Depends on:". URLs are recorded in the checkpoint as they are
        created, so a failed push can be rerun without duplicates.

        Raises:
            WorkflowConflictError: If a package awaits verification or more
                than one package is still queued.
        """
        info = self.checkpoint.read()
        if info.current or len(info.todo) > 1:
            raise WorkflowConflictError("update not yet finished")

        tools = self.toolbox(info)
        root = self.load_root()
        graph = build_graph(root, self.store)
        targets = [
            (name, self.package_dir(info, root, self._locate(graph, name)))
            for name in info.done
        ]

        step(f"Pushing {len(targets)} branches")
        for name, directory in targets:
            branch = tools.vcs.current_branch(directory)
            if branch != info.branch:
                raise WorkflowConflictError(
                    f"{name} at {directory} is on branch {branch}, expected {info.branch}"
                )
            tools.vcs.push(directory, info.branch)

        step("Opening review requests")
        message = self.commit_message(info) + "\n\nOpened by ripple."
        for i, (name, directory) in enumerate(targets):
            url = info.pull_requests.get(name)
            if url is None:
                url = tools.reviews.open(directory, message)
                info.pull_requests[name] = url
                self.checkpoint.write(info)
            print(f"  {name}: {url}")
            if i == 0:
                message += "\n\nDepends on:\n\n"
            message += f"- {url}\n"

        print(f"> Finished: {len(info.pull_requests)} review requests")
        return dict(info.pull_requests)

    def status(self) -> UpdateInfo | None:
        """Print where the update stands; None when no update is in progress."""
        if not self.checkpoint.exists():
            print(f"> No update in progress ({UpdateState.IDLE.value}).")
            return None
        info = self.checkpoint.read()
        handled, total = info.progress()
        print(f"> Updating {', '.join(info.roots)} on {info.branch}")
        print(f"> State: {info.state.value}, {handled} of {total} packages handled")
        if info.current:
            print(f"> Awaiting verification: {info.current}")
        if info.todo:
            print(f"> Next: {info.todo[0]}")
        return info
