"""Tests for ripple.tools."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest
from conftest import write_manifest

from ripple.config import RippleConfig
from ripple.errors import CollaboratorError
from ripple.manifest import load_manifest
from ripple.models import Package
from ripple.store import PackageStore
from ripple.tools import (
    Installer,
    Publisher,
    ReviewRequests,
    Toolbox,
    Vcs,
    Verifier,
    clone_url,
)


class TestCloneUrl:
    def test_github_uses_ssh(self) -> None:
        assert clone_url("github.com/acme/lib-b") == "git@github.com:acme/lib-b"

    def test_other_hosts_use_https(self) -> None:
        assert clone_url("gitlab.com/acme/lib-b") == "https://gitlab.com/acme/lib-b"

    def test_full_urls_unchanged(self) -> None:
        assert clone_url("ssh://git.test/lib-b") == "ssh://git.test/lib-b"


class TestVcs:
    @patch("ripple.tools.git")
    def test_clone(self, mock_git: MagicMock, tmp_path: Path) -> None:
        dest = tmp_path / "src" / "github.com" / "acme" / "lib-b"
        Vcs().clone("github.com/acme/lib-b", dest)
        assert dest.parent.is_dir()
        mock_git.assert_called_once_with("clone", "git@github.com:acme/lib-b", str(dest))

    def test_clone_requires_remote(self, tmp_path: Path) -> None:
        with pytest.raises(CollaboratorError, match="no remote"):
            Vcs().clone("", tmp_path / "x")

    @patch("ripple.tools.git")
    def test_commit(self, mock_git: MagicMock, tmp_path: Path) -> None:
        Vcs().commit(tmp_path, "ripple: update lib-c", "ripple.toml")
        assert mock_git.call_args_list == [
            call("add", "ripple.toml", cwd=tmp_path),
            call("commit", "-m", "ripple: update lib-c", cwd=tmp_path),
        ]

    @patch("ripple.tools.git")
    def test_checkout_and_push(self, mock_git: MagicMock, tmp_path: Path) -> None:
        vcs = Vcs()
        vcs.checkout_branch(tmp_path, "ripple/update-x")
        vcs.push(tmp_path, "ripple/update-x")
        assert mock_git.call_args_list == [
            call("checkout", "-B", "ripple/update-x", cwd=tmp_path),
            call("push", "origin", "ripple/update-x", cwd=tmp_path),
        ]

    @patch("ripple.tools.capture", return_value="main")
    def test_current_branch(self, mock_capture: MagicMock, tmp_path: Path) -> None:
        assert Vcs().current_branch(tmp_path) == "main"
        mock_capture.assert_called_once_with(
            "git", "rev-parse", "--abbrev-ref", "HEAD", cwd=tmp_path
        )

    @patch("ripple.tools.capture", return_value='[package]\nname = "app"')
    def test_committed_file(self, mock_capture: MagicMock, tmp_path: Path) -> None:
        assert Vcs().committed_file(tmp_path, "ripple.toml") == '[package]\nname = "app"'
        mock_capture.assert_called_once_with(
            "git", "show", "HEAD:ripple.toml", cwd=tmp_path
        )

    @patch("ripple.tools.capture", side_effect=CollaboratorError("exit code 128"))
    def test_committed_file_missing(self, mock_capture: MagicMock, tmp_path: Path) -> None:
        assert Vcs().committed_file(tmp_path, "ripple.toml") is None


class TestInstaller:
    @patch("ripple.tools.run")
    def test_install_package(
        self, mock_run: MagicMock, tmp_path: Path, store: PackageStore
    ) -> None:
        mock_run.side_effect = lambda *args, **kw: write_manifest(Path(args[-1]), "lib-z")
        installer = Installer(RippleConfig(), store, {"RIPPLE_WORK_ROOT": "/w"})

        dest = installer.install_package("QmZ")

        assert dest == store.package_dir("QmZ")
        mock_run.assert_called_once_with(
            "ipfs", "get", "QmZ", "-o", str(dest), env={"RIPPLE_WORK_ROOT": "/w"}
        )

    @patch("ripple.tools.run")
    def test_already_installed(self, mock_run: MagicMock, store: PackageStore) -> None:
        Installer(RippleConfig(), store).install_package("QmC1")
        mock_run.assert_not_called()

    @patch("ripple.tools.run")
    def test_install_without_manifest_fails(
        self, mock_run: MagicMock, store: PackageStore
    ) -> None:
        with pytest.raises(CollaboratorError, match="produced no manifest"):
            Installer(RippleConfig(), store).install_package("QmZ")

    @patch("ripple.tools.run")
    def test_install_dependencies_fetches_missing(
        self, mock_run: MagicMock, store: PackageStore
    ) -> None:
        def fetch(*args: str, **kw: object) -> None:
            write_manifest(Path(args[-1]), "lib-y", deps=[("lib-c", "QmC1", "1.0.0")])

        mock_run.side_effect = fetch
        root = Package(
            name="app",
            dependencies=[
                {"name": "lib-b", "hash": "QmB1"},
                {"name": "lib-y", "hash": "QmY1"},
            ],
        )

        assert Installer(RippleConfig(), store).install_dependencies(root) == 1
        assert store.has("QmY1")


class TestPublisher:
    @pytest.fixture
    def checkout(self, tmp_path: Path) -> Path:
        directory = tmp_path / "lib-b"
        write_manifest(directory, "lib-b", "1.0.0", release_cmd="make release")
        return directory

    def test_requires_release_cmd(self, tmp_path: Path, store: PackageStore) -> None:
        write_manifest(tmp_path, "lib-c")
        publisher = Publisher(MagicMock(), Installer(RippleConfig(), store))
        with pytest.raises(CollaboratorError, match="does not have release-cmd set"):
            publisher.publish(tmp_path, load_manifest(tmp_path / "ripple.toml"), "b")

    @patch("ripple.tools.run")
    def test_publish(
        self, mock_run: MagicMock, checkout: Path, store: PackageStore
    ) -> None:
        def release(*args: str, cwd: Path, env: dict[str, str]) -> None:
            assert env["RIPPLE_VERSION"] == "1.0.1"
            write_manifest(store.package_dir("QmB2"), "lib-b", "1.0.1")
            (cwd / ".ripple").mkdir()
            (cwd / ".ripple" / "lastpubver").write_text("1.0.1 QmB2\n")

        mock_run.side_effect = release
        vcs = MagicMock()
        publisher = Publisher(vcs, Installer(RippleConfig(), store), {"RIPPLE_WORK_ROOT": "/w"})
        package = load_manifest(checkout / "ripple.toml")

        published = publisher.publish(checkout, package, "ripple/update-x")

        assert (published.hash, published.version) == ("QmB2", "1.0.1")
        assert load_manifest(checkout / "ripple.toml").version == "1.0.1"
        vcs.checkout_branch.assert_called_once_with(checkout, "ripple/update-x")
        assert mock_run.call_args.args == ("sh", "-c", "make release")
        assert mock_run.call_args.kwargs["env"]["RIPPLE_WORK_ROOT"] == "/w"

    @patch("ripple.tools.run", side_effect=CollaboratorError("make failed"))
    def test_release_failure_propagates(
        self, mock_run: MagicMock, checkout: Path, store: PackageStore
    ) -> None:
        publisher = Publisher(MagicMock(), Installer(RippleConfig(), store))
        with pytest.raises(CollaboratorError, match="make failed"):
            publisher.publish(checkout, load_manifest(checkout / "ripple.toml"), "b")

    @patch("ripple.tools.run", side_effect=CollaboratorError("make failed"))
    def test_failed_release_restores_version(
        self, mock_run: MagicMock, checkout: Path, store: PackageStore
    ) -> None:
        publisher = Publisher(MagicMock(), Installer(RippleConfig(), store))
        for _ in range(2):
            with pytest.raises(CollaboratorError):
                publisher.publish(checkout, load_manifest(checkout / "ripple.toml"), "b")

        assert load_manifest(checkout / "ripple.toml").version == "1.0.0"
        assert mock_run.call_args.kwargs["env"]["RIPPLE_VERSION"] == "1.0.1"


class TestVerifier:
    @patch("ripple.tools.run")
    def test_runs_tests(self, mock_run: MagicMock, tmp_path: Path, store: PackageStore) -> None:
        package = store.load_package("QmB1")
        Verifier(RippleConfig(test=["make", "check"]), store).verify(tmp_path, package)
        mock_run.assert_called_once_with("make", "check", cwd=tmp_path, env=None)

    @patch("ripple.tools.run")
    def test_skip_tests(self, mock_run: MagicMock, tmp_path: Path, store: PackageStore) -> None:
        Verifier(RippleConfig(), store).verify(
            tmp_path, store.load_package("QmB1"), skip_tests=True
        )
        mock_run.assert_not_called()

    @patch("ripple.tools.run")
    def test_reports_duplicates(
        self,
        mock_run: MagicMock,
        tmp_path: Path,
        store: PackageStore,
        capsys: pytest.CaptureFixture,
    ) -> None:
        package = Package(
            name="app",
            dependencies=[
                {"name": "lib-b", "hash": "QmB1"},
                {"name": "lib-c", "hash": "QmC2"},
            ],
        )
        Verifier(RippleConfig(), store).verify(tmp_path, package, skip_tests=True)
        out = capsys.readouterr().out
        assert "duplicate dependencies" in out
        assert "lib-c: QmC1, QmC2" in out or "lib-c: QmC2, QmC1" in out


class TestReviewRequests:
    @patch("ripple.tools.capture", return_value="https://x.test/pr/7")
    def test_open(self, mock_capture: MagicMock, tmp_path: Path) -> None:
        url = ReviewRequests(RippleConfig()).open(tmp_path, "ripple: update lib-c\n\nbody")
        assert url == "https://x.test/pr/7"
        mock_capture.assert_called_once_with(
            "gh", "pr", "create", "--title", "ripple: update lib-c", "--body", "body",
            cwd=tmp_path,
            env=None,
        )


def test_toolbox_shares_environment(store: PackageStore) -> None:
    env = {"RIPPLE_WORK_ROOT": "/w"}
    tools = Toolbox(RippleConfig(), store, env)
    assert tools.installer.env is env
    assert tools.publisher.installer is tools.installer
    assert tools.verifier.env is env
    assert tools.reviews.env is env
