"""CLI entry point for command-gatekeeper.

Invoked as::

    gatekeeper [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m command_gatekeeper.cli.main

Commands
--------
- check      Test a command or operation against a permissions file
- stats      Show allow/deny statistics from the audit log
- hierarchy  Show audited commands grouped by their leading words
- export     Export audit records to CSV or JSON
- version    Show version information
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from command_gatekeeper.audit.exporter import AuditExporter
from command_gatekeeper.audit.logger import AuditLogger
from command_gatekeeper.audit.stats import AuditStats, StatsFilter, parse_since
from command_gatekeeper.container.operations import OperationRequest, build_validation_context
from command_gatekeeper.errors import PermissionConfigError
from command_gatekeeper.permissions.constraints import Domain
from command_gatekeeper.permissions.engine import DecisionEngine
from command_gatekeeper.permissions.permission_loader import PermissionLoader
from command_gatekeeper.permissions.rules import Decision, TracedMatchResult
from command_gatekeeper.permissions.validator import ShellContext, ValidationContext, validate
from command_gatekeeper.settings import GatekeeperSettings, SettingsLoader

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("gatekeeper.yaml")

EXIT_ALLOW = 0
EXIT_DENY = 1
EXIT_ERROR = 2

_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=str(_DEFAULT_CONFIG),
    show_default=True,
    type=click.Path(),
    help="Path to gatekeeper.yaml.",
)
_domain_option = click.option(
    "--domain",
    "-d",
    type=click.Choice([domain.value for domain in Domain]),
    default=Domain.SHELL.value,
    show_default=True,
    help="Which audit domain to query.",
)
_since_option = click.option(
    "--since",
    "-s",
    default=None,
    help="Time filter: '1h', '24h', '7d', 'week', 'month', or an ISO date.",
)
_decision_option = click.option(
    "--decision",
    type=click.Choice([decision.value for decision in Decision]),
    default=None,
    help="Only include records with this decision.",
)


def _load_settings(config_path: str) -> GatekeeperSettings:
    loader = SettingsLoader()
    cfg_path = Path(config_path)
    settings = loader.load(cfg_path) if cfg_path.exists() else loader.defaults()
    settings.logging.apply()
    return settings


def _open_stats(config_path: str, domain: str) -> AuditStats:
    settings = _load_settings(config_path)
    return AuditStats(AuditLogger(settings.audit.database_url, Domain(domain)))


def _stats_filter(since: str | None, decision: str | None) -> StatsFilter:
    return StatsFilter(
        since=parse_since(since) if since else None,
        decision=Decision(decision) if decision else None,
    )


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="command-gatekeeper")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Command Gatekeeper CLI: permission checks and audit statistics."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from command_gatekeeper import __version__

    console.print(
        Panel(
            f"[bold]command-gatekeeper[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Allow/deny policy enforcement for shell commands and container operations.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


def _request_from_pattern(operation_pattern: str) -> OperationRequest:
    """Split ``container:create:node:20`` into operation and target."""
    parts = operation_pattern.split(":", 2)
    operation = ":".join(parts[:2])
    target = parts[2] if len(parts) > 2 else None
    return OperationRequest(operation=operation, target=target)


def _print_trace(traced: TracedMatchResult, show_all: bool) -> None:
    console.print("Trace (patterns checked in order):")
    for entry in traced.trace:
        if not (show_all or entry.matched):
            continue
        marker = "[bold]\\[MATCH][/bold]" if entry.matched else "       "
        console.print(f"  {marker} #{entry.index:03d} {escape(entry.pattern)}")
        console.print(
            f"          regex: {escape(entry.regex)} -> {entry.decision.value.upper()}",
            style="dim",
        )
        if entry.reason:
            console.print(f"          reason: {escape(entry.reason)}", style="dim")

    if not any(entry.matched for entry in traced.trace):
        console.print("  (no patterns matched - using default)")


@cli.command(
    name="check",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("permissions_yaml", type=click.Path())
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option(
    "--workdir",
    "-w",
    type=click.Path(),
    default=None,
    help="Working directory for constraint validation (default: current directory).",
)
@click.option(
    "--domain",
    "-d",
    type=click.Choice([domain.value for domain in Domain]),
    default=Domain.SHELL.value,
    show_default=True,
    help="Whether COMMAND is a shell command or a container operation.",
)
@click.option("--trace", is_flag=True, help="Show every pattern checked, not only the match.")
def check_command(
    permissions_yaml: str,
    command: tuple[str, ...],
    workdir: str | None,
    domain: str,
    trace: bool,
) -> None:
    """Test COMMAND against PERMISSIONS_YAML.

    Exits 0 when COMMAND would be allowed, 1 when denied and 2 on error.
    """
    operation = " ".join(command)
    workdir = os.path.abspath(workdir or os.getcwd())
    gate_domain = Domain(domain)

    try:
        policy = PermissionLoader(gate_domain).load(permissions_yaml)
    except OSError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        sys.exit(EXIT_ERROR)
    except PermissionConfigError as exc:
        err_console.print("[red]Invalid permissions file:[/red]")
        for error in exc.errors:
            err_console.print(f"  - {escape(error)}")
        sys.exit(EXIT_ERROR)

    traced = DecisionEngine(policy).decide_with_trace(operation)
    result = traced.result

    console.print(f"Input: [bold]{escape(operation)}[/bold]")
    if gate_domain is Domain.SHELL:
        console.print(f"Working directory: {escape(workdir)}")
    _print_trace(traced, show_all=trace)

    final = result.decision
    if result.allowed and result.rule is not None and result.rule.constraints:
        context: ValidationContext
        if gate_domain is Domain.SHELL:
            context = ShellContext(command=operation, workdir=workdir)
        else:
            context = build_validation_context(_request_from_pattern(operation))
        constraint_result = validate(result.rule, context)
        console.print("Constraint validation:")
        if constraint_result:
            console.print("  [green]✓ All constraints passed[/green]")
        else:
            console.print(f"  [red]✗ {escape(constraint_result.violation or '')}[/red]")
            final = Decision.DENY

    verdict = (
        "[green]ALLOW[/green]" if final is Decision.ALLOW else "[red]DENY[/red]"
    )
    lines = [
        f"Matched: {escape(result.pattern) if result.pattern is not None else '(default rule)'}",
        f"Decision: {verdict}",
    ]
    if result.reason:
        lines.append(f"Reason: {escape(result.reason)}")
    console.print(Panel("\n".join(lines), title="Result", border_style="blue"))

    sys.exit(EXIT_ALLOW if final is Decision.ALLOW else EXIT_DENY)


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


@cli.command(name="stats")
@_since_option
@_decision_option
@_domain_option
@_config_option
def stats_command(
    since: str | None,
    decision: str | None,
    domain: str,
    config_path: str,
) -> None:
    """Show allow/deny statistics from the audit log."""
    stats = _open_stats(config_path, domain)
    stats_filter = _stats_filter(since, decision)
    subject = Domain(domain).subject

    overall = stats.overall(stats_filter)
    summary = (
        f"Total {subject}: [cyan]{overall.total}[/cyan]\n"
        f"Allowed: [green]{overall.allowed}[/green] ({overall.allowed_pct:.1f}%)\n"
        f"Denied:  [red]{overall.denied}[/red] ({overall.denied_pct:.1f}%)"
    )
    if overall.avg_duration_ms is not None:
        summary += f"\nAvg execution time: {overall.avg_duration_ms:.0f}ms"
    console.print(Panel(summary, title="Overview", border_style="blue"))

    patterns = stats.by_pattern(stats_filter)
    if patterns:
        table = Table(title="Top Patterns", box=box.SIMPLE)
        table.add_column("Pattern", style="cyan")
        table.add_column("Decision", style="magenta")
        table.add_column("Count", justify="right")
        for row in patterns:
            table.add_row(row.pattern_matched or "(no match)", row.decision.value, str(row.count))
        console.print(table)

    denied = stats.top_denied(since=stats_filter.since)
    if denied:
        table = Table(title=f"Top Denied {subject.title()}", box=box.SIMPLE)
        table.add_column("Operation", style="red")
        table.add_column("Count", justify="right")
        for row in denied:
            text = row.operation if len(row.operation) <= 60 else row.operation[:57] + "..."
            table.add_row(text, str(row.count))
        console.print(table)


# ---------------------------------------------------------------------------
# hierarchy
# ---------------------------------------------------------------------------


@cli.command(name="hierarchy")
@_since_option
@click.option(
    "--min-count",
    "-m",
    default=1,
    show_default=True,
    type=click.IntRange(min=1),
    help="Hide groups with fewer records than this.",
)
@_domain_option
@_config_option
def hierarchy_command(since: str | None, min_count: int, domain: str, config_path: str) -> None:
    """Show audited operations grouped by their first three words."""
    stats = _open_stats(config_path, domain)
    root = stats.hierarchy(
        since=parse_since(since) if since else None,
        min_count=min_count,
    )

    console.print(f"Total {Domain(domain).subject}: [cyan]{root.total}[/cyan]")
    console.print(f"Allowed: [green]{root.allowed}[/green] | Denied: [red]{root.denied}[/red]")
    tree = stats.render_hierarchy(root, min_count=min_count)
    if tree:
        console.print(tree, highlight=False, markup=False)
    else:
        console.print("[yellow]No audit entries found.[/yellow]")


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@cli.command(name="export")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["csv", "json"]),
    default="csv",
    show_default=True,
    help="Export format.",
)
@click.option("--output", "-o", "output_file", required=True, type=click.Path(), help="Output file path.")
@_since_option
@_decision_option
@click.option("--limit", "-n", default=1000, show_default=True, type=int, help="Maximum records.")
@_domain_option
@_config_option
def export_command(
    output_format: str,
    output_file: str,
    since: str | None,
    decision: str | None,
    limit: int,
    domain: str,
    config_path: str,
) -> None:
    """Export audit records to CSV or JSON, newest first."""
    exporter = AuditExporter(_open_stats(config_path, domain))
    stats_filter = _stats_filter(since, decision)
    out_path = Path(output_file)

    if output_format == "csv":
        count = exporter.to_csv(out_path, stats_filter, limit=limit)
    else:
        count = exporter.to_json(out_path, stats_filter, limit=limit)

    console.print(
        f"[green]Exported[/green] {count} records to [bold]{out_path}[/bold] "
        f"({output_format.upper()})."
    )


if __name__ == "__main__":
    cli()
