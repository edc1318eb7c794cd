"""Workspace configuration, read from [tool.ripple] in the root ripple.toml."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

CHECKPOINT_FILE = "ripple-update.json"
MANIFEST_FILE = "ripple.toml"


class RippleConfig(BaseModel):
    """Tool settings for a workspace.

    Command templates are argument lists; "{hash}", "{dest}", "{title}" and
    "{body}" placeholders are substituted per call.

    Attributes:
        store: Package store directory, relative to the workspace.
        work_root: Parent directory for per-update session checkouts.
        install: Command fetching one package by content identifier.
        test: Command running a package's test suite.
        review: Command opening a review request; prints its URL.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    store: str = ".ripple/store"
    work_root: str = Field(default="~/.ripple", alias="work-root")
    install: list[str] = Field(
        default_factory=lambda: ["ipfs", "get", "{hash}", "-o", "{dest}"]
    )
    test: list[str] = Field(default_factory=lambda: ["python", "-m", "pytest"])
    review: list[str] = Field(
        default_factory=lambda: [
            "gh", "pr", "create", "--title", "{title}", "--body", "{body}",
        ]
    )

    def store_path(self, workspace: Path) -> Path:
        return (workspace / self.store).resolve()

    def work_root_path(self) -> Path:
        return Path(self.work_root).expanduser()


def render(template: list[str], **values: str) -> list[str]:
    """Substitute {placeholders} in each argument of a command template."""
    return [arg.format(**values) for arg in template]
