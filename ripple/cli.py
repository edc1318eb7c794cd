"""CLI entry point for ripple."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from .errors import RippleError
from .graph import WorkspaceGraph, build_graph, impact_list, republish_order
from .manifest import load_config, load_manifest, manifest_path
from .store import PackageStore
from .workflow import UpdateSession


@contextmanager
def reported() -> Iterator[None]:
    """Turn ripple errors into a clean "Error: ..." and exit status 1."""
    try:
        yield
    except RippleError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_graph(workspace: Path) -> WorkspaceGraph:
    manifest = manifest_path(workspace)
    config = load_config(manifest)
    store = PackageStore(config.store_path(workspace))
    return build_graph(load_manifest(manifest), store)


@click.group()
@click.option(
    "--workspace",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Directory containing the root ripple.toml.",
)
@click.version_option(package_name="ripple-update")
@click.pass_context
def cli(ctx: click.Context, workspace: Path) -> None:
    """Propagate package updates through a content-addressed dependency tree."""
    ctx.obj = workspace.resolve()


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def impact(workspace: Path, names: tuple[str, ...]) -> None:
    """List all packages affected by an update of the named packages."""
    with reported():
        for name in impact_list(_load_graph(workspace), names):
            click.echo(name)


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def order(workspace: Path, names: tuple[str, ...]) -> None:
    """Show the order in which packages must be republished."""
    with reported():
        plan = republish_order(_load_graph(workspace).name_view(), names)
        for name in plan.order:
            click.echo(name)


@cli.group()
def update() -> None:
    """Manage updating a package throughout the dependency tree."""


@update.command()
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def start(workspace: Path, names: tuple[str, ...]) -> None:
    """Begin an update of packages throughout the tree."""
    with reported():
        UpdateSession(workspace).start(names)


@update.command("next")
@click.option(
    "--skip-verification",
    "--no-test",
    is_flag=True,
    help="Skip running the test suite of changed packages.",
)
@click.pass_obj
def next_(workspace: Path, skip_verification: bool) -> None:
    """Execute the next step in the update process."""
    with reported():
        UpdateSession(workspace).next(skip_verification=skip_verification)


@update.command()
@click.pass_obj
def push(workspace: Path) -> None:
    """Push branches of updated packages and open review requests."""
    with reported():
        UpdateSession(workspace).push()


@update.command()
@click.pass_obj
def status(workspace: Path) -> None:
    """Show the progress of the update in progress."""
    with reported():
        UpdateSession(workspace).status()
