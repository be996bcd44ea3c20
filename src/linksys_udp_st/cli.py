"""Command-line interface for linksys-udp-st using Typer."""

import json
import logging
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .config import create_example_configs, load_controller_settings
from .controller import TestController
from .errors import TestInterrupted, UdpStError
from .models import ControllerSettings, TestRecord

PROG_NAME = "linksys-udp-st"

EXIT_USAGE = 1
# The shell view of the -1 returned on validation or operation failure
EXIT_FAILURE = 255
EXIT_INTERRUPTED = 130

COMMANDS = ("start", "status", "stop", "create-config", "version")

USAGE = f"""Usage: {PROG_NAME} <command> [options]
Commands:
  start --src-ip <ip> --dst-ip <ip> --src-port <port> --dst-port <port> \\
        --protocol <tcp|udp> --direction <upstream|downstream>
  status
  stop

Example:
  {PROG_NAME} start --src-ip 192.168.1.100 --dst-ip 192.168.1.200 \\
                 --src-port 5201 --dst-port 5201 \\
                 --protocol udp --direction upstream"""

app = typer.Typer(
    name=PROG_NAME,
    help="Controller for the NSS UDP speed test kernel module.",
    add_completion=False,
)

# stdout is reserved for JSON documents
console = Console(stderr=True)

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Per-invocation state handed to every command through the click context."""

    record: TestRecord = field(default_factory=TestRecord)
    settings: Optional[ControllerSettings] = None
    controller: Optional[TestController] = None

    def cancel(self) -> None:
        if self.controller is not None:
            self.controller.cancel(self.record)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _emit(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=4))


def _fail(error: Exception) -> None:
    _emit({"error": str(error)})
    raise typer.Exit(EXIT_FAILURE)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file (YAML)"
    ),
    env_file: Optional[Path] = typer.Option(
        None, "--env-file", "-e", help="Environment file (.env)"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Debug logging to stderr"
    ),
):
    """Validate, start, poll and stop NSS UDP speed tests."""

    session = ctx.ensure_object(Session)

    try:
        settings = load_controller_settings(
            config_file=config_file,
            env_file=env_file,
            log_level="DEBUG" if verbose else None,
        )
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        _emit({"error": "Error loading configuration"})
        raise typer.Exit(EXIT_FAILURE)

    setup_logging(settings.log_level)
    session.settings = settings
    session.controller = TestController.from_settings(settings)


@app.command()
def start(
    ctx: typer.Context,
    src_ip: str = typer.Option(..., "--src-ip", help="Source IPv4 address"),
    dst_ip: str = typer.Option(..., "--dst-ip", help="Destination IPv4 address"),
    src_port: int = typer.Option(..., "--src-port", help="Source port (1-65535)"),
    dst_port: int = typer.Option(..., "--dst-port", help="Destination port (1-65535)"),
    protocol: str = typer.Option(..., "--protocol", help="Protocol: tcp or udp"),
    direction: str = typer.Option(
        ..., "--direction", help="Direction: upstream or downstream"
    ),
):
    """Validate the parameters, load the module and start a test."""

    session: Session = ctx.obj
    params = {
        "src_ip": src_ip,
        "dst_ip": dst_ip,
        "src_port": src_port,
        "dst_port": dst_port,
        "protocol": protocol,
        "direction": direction,
    }

    try:
        session.controller.start(session.record, params)
    except UdpStError as e:
        _fail(e)

    _emit(session.record.status_payload())


@app.command()
def status(ctx: typer.Context):
    """Report whether a test is running and its current throughput."""

    session: Session = ctx.obj
    try:
        session.controller.status(session.record)
    except UdpStError as e:
        _fail(e)

    _emit(session.record.status_payload())


@app.command()
def stop(ctx: typer.Context):
    """Stop the running test, report final results and unload the module."""

    session: Session = ctx.obj
    try:
        report = session.controller.stop(session.record)
    except UdpStError as e:
        _fail(e)

    _emit(session.record.result_payload())
    if not report.ok:
        console.print(
            f"[yellow]Warning: teardown incomplete "
            f"({', '.join(report.failed_steps)})[/yellow]"
        )


@app.command()
def create_config(
    output_dir: Path = typer.Option(
        Path("."),
        "--output-dir",
        "-o",
        help="Directory to create example configuration files",
    ),
):
    """Create example configuration files."""

    configs = create_example_configs()
    output_dir.mkdir(parents=True, exist_ok=True)

    created_files = []

    yaml_file = output_dir / "controller_example.yaml"
    with open(yaml_file, "w") as f:
        yaml.dump(
            configs["controller_example.yaml"], f, default_flow_style=False, indent=2
        )
    created_files.append(yaml_file)

    env_file = output_dir / "example.env"
    env_file.write_text(configs["example.env"])
    created_files.append(env_file)

    console.print(
        f"[green]Created {len(created_files)} example configuration files:[/green]"
    )
    for file_path in created_files:
        console.print(f"  • {file_path}")


@app.command()
def version(ctx: typer.Context):
    """Show version information."""

    from . import __version__

    settings: ControllerSettings = ctx.obj.settings
    if settings.backend.value == "sysfs":
        surface = f"sysfs control directory: {settings.control_dir}"
    else:
        surface = f"helper: {settings.helper_path} (stats in {settings.stats_dir})"

    console.print(
        Panel(
            f"[bold blue]{PROG_NAME}[/bold blue] - NSS UDP speed test controller\n"
            f"Version: {__version__}\n\n"
            f"[bold]Control surface:[/bold] {surface}\n"
            f"[bold]Module:[/bold] {settings.presence_path}",
            title="Version Information",
        )
    )


def _raise_interrupt(signum, frame):
    raise TestInterrupted(signum)


def _install_signal_handlers() -> Dict[int, Any]:
    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _raise_interrupt)
    return previous


def run(argv: Optional[List[str]] = None) -> int:
    """Run the CLI on ``argv`` and return the process exit code."""

    args = list(sys.argv[1:] if argv is None else argv)
    if not args or (not args[0].startswith("-") and args[0] not in COMMANDS):
        typer.echo(USAGE)
        return EXIT_USAGE

    session = Session()
    previous = _install_signal_handlers()
    try:
        rv = app(args=args, prog_name=PROG_NAME, standalone_mode=False, obj=session)
    except click.UsageError as e:
        console.print(f"[red]{e.format_message()}[/red]")
        _emit({"error": "Missing or invalid parameters"})
        typer.echo(USAGE)
        return EXIT_USAGE
    except (TestInterrupted, click.exceptions.Abort):
        session.cancel()
        _emit({"error": "Interrupted"})
        return EXIT_INTERRUPTED
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":
    sys.exit(run())
