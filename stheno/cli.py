"""Command-line interface for Stheno.

Commands:
- build: Build the site into the target directory.
- serve: Run the development server with live reload.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import click

from . import __version__
from .errors import BuildError


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


def _report_build_error(exc: BuildError, project_root: Path) -> NoReturn:
    """Display a build error and exit with status 1."""
    try:
        rel_path = exc.source_path.resolve().relative_to(project_root.resolve())
    except ValueError:
        rel_path = exc.source_path
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
    click.echo(click.style(f"  Stage: {exc.stage}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="stheno")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
def cli(verbose: bool):
    """Stheno static site generator."""
    _configure_logging(verbose)


@cli.command()
@click.argument(
    "project_dir",
    required=False,
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
)
def build(project_dir: Path):
    """Build the site into the target directory."""
    from .build import build_project

    try:
        result = build_project(project_dir)
    except BuildError as exc:
        _report_build_error(exc, project_dir)
    click.echo(
        f"Built {len(result.rendered)} pages and copied {len(result.copied)} files "
        f"into {result.output_dir}"
    )


@cli.command()
@click.argument(
    "project_dir",
    required=False,
    default=".",
    type=click.Path(file_okay=False, path_type=Path),
)
@click.option("-h", "--host", default="localhost", show_default=True, help="Host to run the server on")
@click.option("-p", "--port", type=int, default=4001, show_default=True, help="Port to run the server on")
@click.option("--no-reload", is_flag=True, help="Disable live reloading")
def serve(project_dir: Path, host: str, port: int, no_reload: bool):
    """Run dev server with live reload."""
    from .config import load_dev_config
    from .server import DevServer

    try:
        config = load_dev_config(project_dir, host=host, port=port, live_reload=not no_reload)
        server = DevServer(config)
        click.echo(f"Serving {config.target_dir} at {server.url}")
        server.start()
    except BuildError as exc:
        _report_build_error(exc, project_dir)


def main():
    """Entry point for the CLI application."""
    cli()
