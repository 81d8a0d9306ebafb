"""
Command-line interface for check-kernel-fix.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from fixcheck import __version__
from fixcheck.common import FixCheckError, setup_logging
from fixcheck.config import get_default_config

console = Console(highlight=False)


def _fail(ctx, error: Exception) -> None:
    console.print(f"[red]Error: {error}[/red]")
    if ctx.obj.get("debug"):
        console.print_exception()
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Enable debug logging and tracebacks")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also log to this file")
@click.pass_context
def main(ctx, debug: bool, log_file: Optional[str]):
    """
    Check which kernel branches need an upstream fix.

    Data sources are configured through the environment: LINUX_GIT (upstream
    Linux clone), KSOURCE_GIT (kernel-source clone), VULNS_GIT (kernel.org
    vulns clone, for CVE lookups).
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    setup_logging(
        level=logging.DEBUG if debug else logging.INFO,
        log_file=Path(log_file) if log_file else None,
    )


@main.command()
@click.argument("target")
@click.option("--quiet", "-q", is_flag=True, help="Do not print progress dots")
@click.option("--verbose", "-v", is_flag=True, help="Print the state of every branch")
@click.option("--refresh", "-r", is_flag=True, help="Bypass cached CVE, bug and CVSS data")
@click.option("--flat", "-f", is_flag=True, help="Disable CVSS and merge-branch filtering")
@click.option("--cvss", "-c", "cvss_score", type=float, help="Override the CVSS score")
@click.option("--bug", "-b", help="Override the bug reference (bsc#NNNN)")
@click.pass_context
def check(
    ctx,
    target: str,
    quiet: bool,
    verbose: bool,
    refresh: bool,
    flat: bool,
    cvss_score: Optional[float],
    bug: Optional[str],
):
    """
    Check a fix given as upstream commit id or CVE id.

    Examples:

        # By upstream commit
        check-kernel-fix check 0a3e4b2c1d5f

        # By CVE, ignoring merge branches and severity scoping
        check-kernel-fix check CVE-2024-26581 --flat
    """
    from fixcheck.check import CheckOptions, run_check

    options = CheckOptions(
        quiet=quiet,
        verbose=verbose,
        refresh=refresh,
        flat=flat,
        cvss_score=cvss_score,
        bug=bug,
    )
    try:
        run_check(target, options, get_default_config(), console)
    except (FixCheckError, ValueError) as e:
        _fail(ctx, e)


@main.command(name="add-refs")
@click.argument("patches", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--reference", "-r", "references", multiple=True, required=True,
              help="Reference to add (CVE-YYYY-NNNN, bsc#NNNN); repeatable")
@click.pass_context
def add_refs(ctx, patches: Tuple[str, ...], references: Tuple[str, ...]):
    """
    Add references to the header of patch files, in place.
    """
    from fixcheck.patch_file import add_missing_references

    try:
        for patch in patches:
            added = add_missing_references(Path(patch), references)
            if added:
                console.print(f"{patch}: added {' '.join(added)}")
            else:
                console.print(f"[dim]{patch}: up to date[/dim]")
    except (FixCheckError, OSError) as e:
        _fail(ctx, e)


@main.command(name="update-refs")
@click.option("--branch", "-B", default="cve/linux-5.14", show_default=True,
              help="kernel-source branch to update")
@click.option("--year", type=int, help="Newest CVE year (default: current year)")
@click.option("--first-year", type=int, help="Oldest CVE year (default: 2018)")
@click.option("--no-checkout", is_flag=True, help="Use the current working tree as is")
@click.option("--no-commit", is_flag=True, help="Leave the edits uncommitted instead of running scripts/log2")
@click.option("--refresh", "-r", is_flag=True, help="Bypass cached bug data")
@click.pass_context
def update_refs_cmd(
    ctx,
    branch: str,
    year: Optional[int],
    first_year: Optional[int],
    no_checkout: bool,
    no_commit: bool,
    refresh: bool,
):
    """
    Record CVE and bug references in all CVE backports of a branch.
    """
    from fixcheck.check import CheckSession
    from fixcheck.update_refs import update_refs

    config = get_default_config()
    try:
        with CheckSession(config, refresh=refresh) as session:
            summary = update_refs(
                branch,
                config,
                session.cache,
                first_year=first_year,
                last_year=year,
                checkout=not no_checkout,
                commit=not no_commit,
            )
    except FixCheckError as e:
        _fail(ctx, e)

    console.print(f"\n[bold]{summary.branch}[/bold]: {summary.matched} CVE backports")
    console.print(f"  [green]updated:[/green]     {len(summary.updated)}")
    console.print(f"  unchanged:   {summary.unchanged}")
    if summary.committed:
        console.print(f"  committed:   {' '.join(str(y) for y in summary.committed)}")
    if summary.unknown_bug:
        console.print(f"  [yellow]unknown bug:[/yellow] {' '.join(summary.unknown_bug)}")


@main.command()
@click.pass_context
def branches(ctx):
    """
    Show build branches with their tier and merge sources.
    """
    from fixcheck.topology import BranchTopology

    config = get_default_config()
    try:
        config.require("ksource_git")
        topology = BranchTopology.from_file(config.branches_conf_path)
    except FixCheckError as e:
        _fail(ctx, e)

    table = Table(title="Build branches", show_header=True, header_style="bold")
    table.add_column("Branch", style="cyan")
    table.add_column("Tier")
    table.add_column("Merges from", style="dim")
    for name in topology.build_branches():
        table.add_row(
            name,
            topology.tier(name).value,
            " ".join(topology.merge_sources(name)) or "-",
        )
    console.print(table)


if __name__ == "__main__":
    main()
