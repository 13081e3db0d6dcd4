"""Thin CLI wrapper for aosp_builder.

This module provides the command-line interface using Typer.
All orchestration is delegated to aosp_builder.pipeline.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from typer.core import TyperCommand

from aosp_builder import __version__
from aosp_builder.config import BuildConfig, get_settings, print_settings_json
from aosp_builder.errors import BuilderError
from aosp_builder.logs import setup_logging

# Usage errors come from click, or from the click copy bundled with newer
# Typer releases; BadParameter derives from whichever one Typer parses with.
UsageError = typer.BadParameter.__base__

EPILOG = """\
Examples:

  aosp-build                                 Build with default settings\n
  aosp-build -b android-14.0.0_r1            Build specific branch\n
  aosp-build -t aosp_x86_64-userdebug        Build for x86_64\n
  aosp-build -j 2                            Use 2 sync jobs (if getting 429 errors)\n
  aosp-build -r                              Use RBE for distributed builds\n
  aosp-build -d /path/to/custom/build        Use custom build directory\n
  aosp-build -l                              List available lunch targets\n
  aosp-build -c -b main -t aosp_arm64-user   Clean build (removes existing directory)\n
  BUILDKITE_AOSP_CLEAN=1 aosp-build          Clean build via environment variable

Rate limiting: if repo sync hits 429 (Too Many Requests) errors, reduce
jobs with -j 1 or -j 2. Failed syncs are retried with fewer jobs.

Incremental builds: existing build directories are reused and synced
incrementally. Use -c/--clean only when a fresh tree is needed.

Buildkite: set BUILDKITE=true to upload RBE logs and the build log with
buildkite-agent after every build, whether it succeeded or failed.
"""


class BuildCommand(TyperCommand):
    """Command that exits 1 on usage errors such as unknown flags."""

    def parse_args(self, ctx: typer.Context, args: list[str]) -> list[str]:
        try:
            return super().parse_args(ctx, args)
        except UsageError as e:
            e.exit_code = 1
            raise


app = typer.Typer(
    name="aosp-build",
    help="AOSP Builder - fetch, sync and build the Android Open Source Project",
    context_settings={"help_option_names": ["-h", "--help"]},
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"aosp-builder version {__version__}")
        raise typer.Exit()


@app.command(cls=BuildCommand, epilog=EPILOG)
def build(
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="AOSP branch to build"),
    ] = None,
    target: Annotated[
        str | None,
        typer.Option("--target", "-t", help="Lunch target to build"),
    ] = None,
    jobs: Annotated[
        int | None,
        typer.Option("--jobs", "-j", help="Parallel jobs for repo sync"),
    ] = None,
    rbe: Annotated[
        bool,
        typer.Option("--rbe", "-r", help="Use Remote Build Execution"),
    ] = False,
    build_dir: Annotated[
        Path | None,
        typer.Option(
            "--build-dir", "-d", help="Build directory (created if missing)"
        ),
    ] = None,
    clean: Annotated[
        bool,
        typer.Option(
            "--clean", "-c", help="Remove the build directory before starting"
        ),
    ] = False,
    list_targets_flag: Annotated[
        bool,
        typer.Option(
            "--list-targets", "-l", help="List available lunch targets and exit"
        ),
    ] = False,
    print_config: Annotated[
        bool,
        typer.Option("--print-config", help="Print effective settings as JSON"),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Fetch the AOSP manifest, sync the source tree and build it."""
    settings = get_settings()

    if print_config:
        typer.echo(print_settings_json(settings))
        return

    config = BuildConfig.from_settings(
        settings,
        branch=branch,
        target=target,
        sync_jobs=jobs,
        build_dir=build_dir,
        use_rbe=rbe,
        clean=clean,
    )
    setup_logging(config.log_path, settings.log_level)

    if list_targets_flag:
        from aosp_builder.builds.lunch import list_targets

        try:
            targets = list_targets(config.build_dir)
        except BuilderError as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from None

        console.print("[bold]Available lunch targets:[/bold]")
        for line in targets:
            console.print(line, markup=False, highlight=False)
        return

    from aosp_builder.pipeline import run_pipeline

    if settings.force_clean and not clean:
        logger.info("BUILDKITE_AOSP_CLEAN=1 detected, enabling clean build")

    result = run_pipeline(config, settings)
    if not result.success:
        phase = result.phase.value
        console.print(f"[red]Build failed during {phase}: {escape(result.message)}[/red]")
        raise typer.Exit(code=result.exit_code)

    console.print(f"[green]Build of {result.selection.target} completed[/green]")


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
