"""Data models for ripple.

These Pydantic models represent the packages in a content-addressed
dependency graph and the persisted state of an in-progress update.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .versions import parse_version


class Dependency(BaseModel):
    """A single entry in a package's dependency list.

    Attributes:
        name: Name of the depended-on package.
        hash: Content identifier of the exact depended-on package.
        version: Version string recorded alongside the identifier.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    hash: str
    version: str = ""


class Package(BaseModel):
    """An immutable node in the dependency graph.

    A new release of a package is a new Package with a new hash; existing
    nodes are never modified. Use with_dependency() to get a rewritten copy.

    Attributes:
        name: Human-readable package name.
        hash: Content identifier. Empty for the unpublished workspace root.
        version: Semantic version string (short forms like "1.2" allowed).
        language: Language tag, informational only.
        release_cmd: Release command; a package without one cannot be published.
        remote: Version-control locator, e.g. "github.com/acme/lib-b".
        dependencies: Ordered dependency records.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    hash: str = ""
    version: str = "0.0.0"
    language: str = ""
    release_cmd: str = ""
    remote: str = ""
    dependencies: tuple[Dependency, ...] = ()

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        try:
            parse_version(value)
        except ValueError as exc:
            raise ValueError(f"invalid version {value!r}: {exc}") from exc
        return value

    def dependency_names(self) -> list[str]:
        return [dep.name for dep in self.dependencies]

    def depends_on(self, name: str) -> bool:
        return any(dep.name == name for dep in self.dependencies)

    def with_dependency(self, name: str, hash: str, version: str) -> Package:
        """Return a copy with every dependency named `name` repointed."""
        deps = tuple(
            Dependency(name=dep.name, hash=hash, version=version)
            if dep.name == name
            else dep
            for dep in self.dependencies
        )
        return self.model_copy(update={"dependencies": deps})


class UpdateState(str, Enum):
    """States of the update workflow, derived from the checkpoint."""

    IDLE = "idle"
    STARTED = "started"
    AWAITING_VERIFICATION = "awaiting-verification"
    FINISHED = "finished"


class UpdateInfo(BaseModel):
    """Checkpoint of an in-progress update, persisted between invocations.

    Field names are serialized in PascalCase (Roots, Changes, Todo, ...).
    Missing or null fields load as empty values so callers can always index
    into them.

    Attributes:
        roots: Names of the packages whose update is being propagated.
        changes: Package name -> newly published content identifier.
        todo: Remaining packages, dependencies first.
        current: Working directory of the package awaiting finalize, or "".
        done: Packages that were changed.
        skipped: Packages that needed no change.
        work_root: Isolated directory holding this session's checkouts.
        branch: Branch name used for every commit of this session.
        pull_requests: Package name -> review request URL, filled by push.
    """

    model_config = ConfigDict(populate_by_name=True)

    roots: list[str] = Field(default_factory=list, alias="Roots")
    changes: dict[str, str] = Field(default_factory=dict, alias="Changes")
    todo: list[str] = Field(default_factory=list, alias="Todo")
    current: str = Field(default="", alias="Current")
    done: list[str] = Field(default_factory=list, alias="Done")
    skipped: list[str] = Field(default_factory=list, alias="Skipped")
    work_root: str = Field(default="", alias="WorkRoot")
    branch: str = Field(default="", alias="Branch")
    pull_requests: dict[str, str] = Field(default_factory=dict, alias="PullRequests")

    @field_validator(
        "roots", "changes", "todo", "done", "skipped", "pull_requests", mode="before"
    )
    @classmethod
    def _null_is_empty(cls, value: object, info: ValidationInfo) -> object:
        if value is None:
            return {} if info.field_name in ("changes", "pull_requests") else []
        return value

    @field_validator("current", "work_root", "branch", mode="before")
    @classmethod
    def _null_is_blank(cls, value: object) -> object:
        return "" if value is None else value

    @property
    def state(self) -> UpdateState:
        if self.current:
            return UpdateState.AWAITING_VERIFICATION
        if self.todo:
            return UpdateState.STARTED
        return UpdateState.FINISHED

    def progress(self) -> tuple[int, int]:
        """Return (handled, total) package counts."""
        handled = len(self.done) + len(self.skipped)
        return handled, handled + len(self.todo)
