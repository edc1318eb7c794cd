"""Exception types raised by ripple.

All errors derive from RippleError so the CLI can report them uniformly.
"""

from __future__ import annotations


class RippleError(RuntimeError):
    """Base class for all ripple failures."""


class ManifestError(RippleError):
    """A ripple.toml file is missing or malformed."""


class GraphLoadError(RippleError):
    """A package in the dependency closure could not be loaded."""


class PackageNotFoundError(GraphLoadError):
    """The package store has no package for a content identifier."""

    def __init__(self, hash: str) -> None:
        super().__init__(f"package {hash} not found")
        self.hash = hash


class NotAffectedError(RippleError):
    """None of the named packages is in the dependency tree."""


class CircularDependencyError(RippleError):
    """Republish ordering could not make progress."""


class WorkflowConflictError(RippleError):
    """The update checkpoint is in the wrong state for this command."""


class CollaboratorError(RippleError):
    """An external tool (git, installer, release command, tests) failed."""
