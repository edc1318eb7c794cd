"""Local content-addressed package store.

Installed packages live at <store>/<hash>/ripple.toml. The store is
populated by the configured install command and is read-only to ripple
otherwise.
"""

from __future__ import annotations

from pathlib import Path

from .config import MANIFEST_FILE
from .errors import PackageNotFoundError
from .manifest import load_manifest
from .models import Package


class PackageStore:
    """Loads packages by content identifier from a directory."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def package_dir(self, hash: str) -> Path:
        return self.root / hash

    def has(self, hash: str) -> bool:
        return (self.package_dir(hash) / MANIFEST_FILE).is_file()

    def load_package(self, hash: str) -> Package:
        if not self.has(hash):
            raise PackageNotFoundError(hash)
        return load_manifest(self.package_dir(hash) / MANIFEST_FILE, hash=hash)
