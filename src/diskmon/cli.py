"""Command-line interface for diskmon."""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from diskmon import __version__
from diskmon.config import (
    DEFAULT_CONFIG_PATH,
    Config,
    ConfigurationError,
    audit_permissions,
    create_example_config,
)
from diskmon.models import GB, DeviceReport, DiskReport, VerdictStatus
from diskmon.monitor import EXIT_FAILURE, DiskMonitor, RunResult

console = Console()


def setup_logging(level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def status_color(status: VerdictStatus) -> str:
    """Get Rich color for a health verdict."""
    colors = {
        VerdictStatus.PASSING: "green",
        VerdictStatus.FAILING: "red",
        VerdictStatus.UNKNOWN: "dim",
    }
    return colors.get(status, "white")


def _free_style(device: DeviceReport) -> str:
    return "red" if device.space_alert else "green"


def create_device_table(report: DiskReport) -> Table:
    """Create a Rich table displaying capacity and health per disk."""
    table = Table(title="Disk Status", show_header=True, header_style="bold")

    table.add_column("Disk", style="cyan", no_wrap=True)
    table.add_column("Device")
    table.add_column("FS", justify="center")
    table.add_column("Total", justify="right")
    table.add_column("Available", justify="right")
    table.add_column("Free", justify="right")
    table.add_column("Health", justify="center")
    table.add_column("Source", justify="center")
    table.add_column("Alert", justify="center")

    for device in report.devices:
        record = device.record
        verdict = device.verdict
        table.add_row(
            record.display_name,
            record.device,
            record.filesystem,
            f"{record.total / GB:.1f} GB",
            f"{record.free / GB:.1f} GB",
            Text(f"{device.free_percent:.1f}%", style=_free_style(device)),
            Text(verdict.status.value.upper(), style=status_color(verdict.status)),
            verdict.source,
            Text("YES", style="bold red") if device.alerted else Text("-", style="dim"),
        )

    return table


def create_smart_table(report: DiskReport) -> Table:
    """Create a Rich table with health verdicts and drive identity."""
    table = Table(title="SMART Health", show_header=True, header_style="bold")

    table.add_column("Disk", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Source", justify="center")
    table.add_column("Model")
    table.add_column("Serial")
    table.add_column("Brand")
    table.add_column("Detail")

    for device in report.devices:
        verdict = device.verdict
        table.add_row(
            device.record.display_name,
            Text(verdict.status.value.upper(), style=status_color(verdict.status)),
            verdict.source,
            verdict.model or "-",
            verdict.serial or "-",
            verdict.vendor or "-",
            verdict.detail or "",
        )

    return table


def create_summary_panel(report: DiskReport) -> Panel:
    """Create a summary panel."""
    system = report.system_info
    failing = sum(1 for d in report.devices if d.verdict.status == VerdictStatus.FAILING)
    low_space = sum(1 for d in report.devices if d.space_alert)

    summary_parts = [
        f"[bold]Host:[/bold] {report.display_name} ({system.hostname})",
        f"[bold]System:[/bold] {system.description}"
        + (" [yellow](virtualized)[/]" if system.is_virtualized else ""),
        f"[bold]Disks:[/bold] {len(report.devices)} total, "
        f"[red]{low_space}[/] below {report.threshold_percent:g}% free, "
        f"[red]{failing}[/] failing health",
        f"[bold]smartctl:[/bold] {'found' if report.smartctl_available else '[yellow]not found, using fallbacks[/]'}",
        f"[bold]Last Check:[/bold] {report.generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
    ]

    alerts = report.get_alerts()
    if alerts:
        summary_parts.append("")
        summary_parts.append(f"[bold red]Alerts ({len(alerts)}):[/]")
        for msg in alerts[:5]:  # Show max 5 alerts
            summary_parts.append(f"  • {msg}")
        if len(alerts) > 5:
            summary_parts.append(f"  ... and {len(alerts) - 5} more")

    return Panel(
        "\n".join(summary_parts),
        title="Disk Health Summary",
        border_style="red" if alerts else "cyan",
    )


def print_outcome(result: RunResult) -> None:
    dispatch = result.dispatch
    if not result.report.devices:
        console.print("[red]No monitorable disks found.[/]")
    elif dispatch is None:
        if result.report.alerted_devices and not result.report.overall_alert:
            console.print("[yellow]Alert raised, mail disabled (not sent).[/]")
        else:
            console.print("[dim]No alert needed.[/]")
    elif dispatch.delivered:
        console.print(f"[green]Alert delivered[/] ({dispatch.attempt_count} attempt(s))")
    else:
        console.print(f"[red]Alert delivery failed:[/] {dispatch.reason}")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """diskmon - Disk capacity and health monitor with e-mail alerts."""
    pass


@main.command()
@click.option(
    "-c", "--config",
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to configuration file",
)
@click.option(
    "--force-mail",
    is_flag=True,
    help="Send the report even when no alert is raised",
)
@click.option(
    "--smart",
    is_flag=True,
    help="Show SMART health details only (no mail)",
)
@click.option(
    "--json", "output_json",
    is_flag=True,
    help="Output in JSON format (no mail)",
)
@click.option(
    "--smart-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-probe timeout in seconds (default: from config, 30)",
)
@click.option(
    "--overall-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Timeout for all health probes in seconds (default: from config, 90)",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
def check(
    config: str,
    force_mail: bool,
    smart: bool,
    output_json: bool,
    smart_timeout: float | None,
    overall_timeout: float | None,
    log_level: str,
    debug: bool,
) -> None:
    """Check disk capacity and health, and mail a report when needed."""
    setup_logging("DEBUG" if debug else log_level)

    try:
        cfg = Config.from_yaml(config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error in {config}:[/]")
        for problem in e.problems:
            console.print(f"  • {problem}")
        console.print("Create an example with: [cyan]diskmon init[/]")
        sys.exit(EXIT_FAILURE)

    if cfg.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    permission_warning = audit_permissions(config)
    if permission_warning:
        click.echo(f"Warning: {permission_warning}", err=True)

    monitor = DiskMonitor(cfg)
    result = monitor.run(
        per_probe_timeout=smart_timeout,
        overall_timeout=overall_timeout,
        force=force_mail,
        send=not (output_json or smart),
    )

    if output_json:
        click.echo(json.dumps(result.report.to_dict(), indent=2))
    elif smart:
        console.print(create_smart_table(result.report))
    else:
        if result.report.devices:
            console.print(create_summary_panel(result.report))
            console.print(create_device_table(result.report))
        print_outcome(result)

    if result.exit_code:
        sys.exit(result.exit_code)


@main.command()
@click.option(
    "-o", "--output",
    default=DEFAULT_CONFIG_PATH,
    help="Output file path",
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing file",
)
def init(output: str, force: bool) -> None:
    """Create an example configuration file."""
    path = Path(output)

    if path.exists() and not force:
        console.print(f"[red]File already exists: {path}[/]")
        console.print("Use --force to overwrite")
        sys.exit(1)

    example = create_example_config()
    example.to_yaml(path)

    console.print(f"[green]Created example configuration: {path}[/]")
    console.print("Edit this file to set your SMTP server and recipients.")


if __name__ == "__main__":
    main()
