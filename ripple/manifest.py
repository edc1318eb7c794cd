"""ripple.toml reading and writing utilities.

Uses tomlkit to preserve formatting and comments when rewriting manifests,
so dependency bumps produce small, reviewable diffs.

A manifest looks like:

    [package]
    name = "app"
    version = "1.4.0"
    release-cmd = "make release"
    remote = "github.com/acme/app"

    [[dependencies]]
    name = "lib-b"
    hash = "QmB1"
    version = "0.3.1"
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import TOMLKitError

from .config import MANIFEST_FILE, RippleConfig
from .errors import CollaboratorError, ManifestError
from .models import Dependency, Package

LAST_PUBLISHED = Path(".ripple") / "lastpubver"


def manifest_path(directory: Path) -> Path:
    return directory / MANIFEST_FILE


def load_document(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a manifest, keeping its formatting for later saves."""
    try:
        return tomlkit.parse(path.read_text())
    except FileNotFoundError as exc:
        raise ManifestError(f"no manifest at {path}") from exc
    except TOMLKitError as exc:
        raise ManifestError(f"cannot parse {path}: {exc}") from exc


def save_document(path: Path, doc: tomlkit.TOMLDocument) -> None:
    path.write_text(tomlkit.dumps(doc))


def package_from_document(
    doc: tomlkit.TOMLDocument, *, hash: str = "", source: str = "manifest"
) -> Package:
    """Build a Package from a parsed manifest.

    Args:
        doc: Parsed ripple.toml.
        hash: Content identifier to assign; overrides [package].hash.
        source: Used in error messages.
    """
    data: dict[str, Any] = doc.unwrap()
    meta = data.get("package", {})
    if not meta.get("name"):
        raise ManifestError(f"{source}: [package].name is required")
    try:
        return Package(
            name=meta["name"],
            hash=hash or meta.get("hash", ""),
            version=meta.get("version", "0.0.0"),
            language=meta.get("language", ""),
            release_cmd=meta.get("release-cmd", ""),
            remote=meta.get("remote", ""),
            dependencies=[Dependency(**dep) for dep in data.get("dependencies", [])],
        )
    except (ValidationError, TypeError) as exc:
        raise ManifestError(f"{source}: {exc}") from exc


def load_manifest(path: Path, *, hash: str = "") -> Package:
    """Load the Package described by a ripple.toml file."""
    return package_from_document(load_document(path), hash=hash, source=str(path))


def parse_manifest(text: str, *, source: str = "manifest") -> Package:
    """Build a Package from manifest text, e.g. a committed revision."""
    try:
        doc = tomlkit.parse(text)
    except TOMLKitError as exc:
        raise ManifestError(f"cannot parse {source}: {exc}") from exc
    return package_from_document(doc, source=source)


def load_config(path: Path) -> RippleConfig:
    """Read [tool.ripple] from the workspace manifest, defaulting every key."""
    data: dict[str, Any] = load_document(path).unwrap()
    section = data.get("tool", {}).get("ripple", {})
    try:
        return RippleConfig.model_validate(section)
    except ValidationError as exc:
        raise ManifestError(f"{path}: invalid [tool.ripple]: {exc}") from exc


def rewrite_dependencies(path: Path, changes: Mapping[str, tuple[str, str]]) -> bool:
    """Repoint dependencies to new content identifiers, in place.

    Args:
        path: Manifest to rewrite.
        changes: Map of dependency name → (new hash, new version).

    Returns:
        True if at least one dependency entry was rewritten.
    """
    doc = load_document(path)
    changed = False
    for dep in doc.get("dependencies", []):
        update = changes.get(str(dep.get("name")))
        if update is None or dep.get("hash") == update[0]:
            continue
        dep["hash"], dep["version"] = update
        print(f"  {dep['name']} → {update[1]} ({update[0]})")
        changed = True
    if changed:
        save_document(path, doc)
    return changed


def set_version(path: Path, version: str) -> None:
    """Update [package].version."""
    doc = load_document(path)
    doc["package"]["version"] = version
    save_document(path, doc)


def read_last_published(directory: Path) -> tuple[str, str]:
    """Return (version, hash) of the package's most recent release.

    Release commands record it in .ripple/lastpubver as "<version> <hash>".
    """
    path = directory / LAST_PUBLISHED
    try:
        fields = path.read_text().split()
    except FileNotFoundError as exc:
        raise CollaboratorError(f"no release record at {path}") from exc
    if len(fields) != 2:
        raise CollaboratorError(f"error parsing hash from {path}")
    return fields[0], fields[1]
