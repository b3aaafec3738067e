from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from stagegate.core.config import CONFIG_KEYS, load_config, read_raw_config, validate_config
from stagegate.core.errors import GateError
from stagegate.core.pipeline import run_pipeline
from stagegate.core.selftest import run_selftest
from stagegate.core.vcs import GitRepo, find_repo_root

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()


@app.callback()
def _callback() -> None:
    """stagegate: reformat/analyze the staged content of a commit before it is made."""
    return


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _print_error(e: GateError) -> None:
    typer.echo(str(e), err=True)


def _open_repo(repo: Optional[Path]) -> GitRepo:
    return GitRepo(root=find_repo_root(str(repo) if repo else None))


@app.command("run")
def run_cmd(
    repo: Optional[Path] = typer.Option(None, "--repo", help="Repository (default: current directory)"),
    config_file: Optional[Path] = typer.Option(
        None, "--config-file", help="Optional YAML file overriding git config hooks.* keys"
    ),
    workers: Optional[int] = typer.Option(None, "--workers", help="Override hooks.parallel"),
    auto_apply: Optional[bool] = typer.Option(
        None, "--auto-apply/--no-auto-apply", help="Override hooks.reformat.autoapply"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Check the staged files; exit 0 to let the commit proceed, 1 to block it."""
    _setup_logging(verbose)
    try:
        vcs = _open_repo(repo)
        config = load_config(vcs.get_config, config_file, repo_root=vcs.root)
        config = validate_config(config.with_overrides(parallel=workers, auto_apply=auto_apply))
    except GateError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    try:
        result = run_pipeline(vcs, config, console)
    except GateError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    if result.notes:
        console.print(f"({result.notes})")
    raise typer.Exit(code=result.exit_code)


@app.command("config")
def config_cmd(
    repo: Optional[Path] = typer.Option(None, "--repo", help="Repository (default: current directory)"),
    config_file: Optional[Path] = typer.Option(
        None, "--config-file", help="Optional YAML file overriding git config hooks.* keys"
    ),
) -> None:
    """Show the effective configuration (git config + overrides file)."""
    try:
        vcs = _open_repo(repo)
        values = read_raw_config(vcs.get_config, config_file)
    except GateError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    table = Table(title="stagegate configuration")
    table.add_column("Key", no_wrap=True)
    table.add_column("Value", overflow="fold")
    table.add_column("Default")
    for key in CONFIG_KEYS:
        default = CONFIG_KEYS[key][0]
        table.add_row(key, values[key], "yes" if values[key] == default else "")
    console.print(table)


@app.command("selftest")
def selftest_cmd(
    sample: Path = typer.Argument(..., help="Input file to reformat"),
    reference: Path = typer.Argument(..., help="Expected reformatter output"),
    repo: Optional[Path] = typer.Option(None, "--repo", help="Repository (default: current directory)"),
    config_file: Optional[Path] = typer.Option(
        None, "--config-file", help="Optional YAML file overriding git config hooks.* keys"
    ),
    out: Optional[Path] = typer.Option(None, "--out", help="Write the patch here when they differ"),
    label: Optional[str] = typer.Option(None, "--label", help="Path used in the patch headers"),
) -> None:
    """Check the reformatter configuration against a reference output."""
    try:
        vcs = _open_repo(repo)
        config = load_config(vcs.get_config, config_file, repo_root=vcs.root)
        # Only the reformatter takes part here.
        config = validate_config(config.with_overrides(analyzer=replace(config.analyzer, enabled=False)))
        result = run_selftest(config.reformatter, sample, reference, label=label)
    except GateError as e:
        _print_error(e)
        raise typer.Exit(code=1)

    if result.ok:
        console.print("The reformatter config test passed.")
        return

    console.print("The following differences were found between the reformatter result and the reference file:\n")
    console.out(result.patch, highlight=False, end="")
    if out is not None:
        out.write_text(result.patch, encoding="utf-8", errors="surrogateescape")
        console.print("\nYou can update the reference data with:")
        console.out(f"  git apply {out}", highlight=False)
    raise typer.Exit(code=1)


def main() -> None:
    app(prog_name="stagegate")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
