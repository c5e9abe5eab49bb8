"""
Command-line interface for the Aranet4 Reader Service.
Provides daemon, one-shot read and maintenance commands using click and rich.
"""

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..ble.decoder import Reading
from ..service.daemon import ReaderComponents, build_components, run_daemon
from ..service.poller import BoundedRetryPoller
from ..utils.config import Config, ConfigurationError


console = Console()


def _load_components() -> ReaderComponents:
    try:
        return build_components()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


def _reading_table(reading: Reading) -> Table:
    table = Table(title="Aranet4 Reading")
    table.add_column("Measurement", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("CO2", f"{reading.co2} ppm")
    table.add_row("Temperature", f"{reading.temperature:.1f}°C / {reading.temperature_f:.1f}°F")
    table.add_row("Humidity", f"{reading.humidity}%")
    table.add_row("Pressure", f"{reading.pressure:.1f} hPa")
    table.add_row("Timestamp", reading.timestamp)
    return table


@click.group()
@click.version_option(version=__version__, prog_name="aranet-reader")
def cli():
    """Aranet4 Reader - BLE CO2 sensor polling and reporting."""
    pass


@cli.command()
def run():
    """Poll the sensor on a fixed interval until interrupted."""
    components = _load_components()
    asyncio.run(run_daemon(components))


@cli.command()
@click.option("--attempts", "-n", type=int, default=None, help="Maximum reading attempts")
@click.option("--timeout", "-t", type=float, default=None, help="Deadline per attempt in seconds")
@click.option("--delay", "-d", type=float, default=None, help="Delay between attempts in seconds")
def read(attempts, timeout, delay):
    """Take one reading with bounded retries, report it and exit."""
    components = _load_components()
    poller = BoundedRetryPoller(
        components.config,
        components.logger,
        components.supervisor,
        components.reporting_sink,
        components.alerting_sink,
        max_attempts=attempts,
        retry_delay=delay,
    )
    if timeout:
        poller.reading_timeout = timeout

    try:
        result = asyncio.run(poller.run())
    finally:
        components.close()

    if not result.success:
        console.print(f"[red]No reading after {result.attempts} attempts:[/red] {result.error}")
        sys.exit(1)

    console.print(_reading_table(result.reading))
    if not result.reported:
        console.print("[yellow]Reading was not accepted by the server[/yellow]")


@cli.command("test-email")
def test_email():
    """Send a test email through the alerting channel."""
    components = _load_components()
    try:
        sent = asyncio.run(components.alerting_sink.send_test())
    finally:
        components.close()

    if sent:
        console.print("[green]Test email sent successfully[/green]")
    else:
        console.print("[red]Failed to send test email, see log for details[/red]")
        sys.exit(1)


@cli.command("config")
def show_config():
    """Show the effective configuration with secrets redacted."""
    config = Config()
    try:
        config.validate_configuration()
        console.print("[green]Configuration is valid[/green]")
    except ConfigurationError as e:
        console.print(f"[yellow]{e}[/yellow]")

    try:
        summary = config.get_summary()
    except ConfigurationError as e:
        console.print(f"[red]Cannot summarize configuration:[/red] {e}")
        sys.exit(1)

    for section, values in summary.items():
        table = Table(title=section.capitalize(), show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key, value in values.items():
            table.add_row(key, str(value))
        console.print(table)


if __name__ == "__main__":
    cli()
