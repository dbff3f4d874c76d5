#!/usr/bin/env python3
"""Command-line interface for pyplc-poller using Typer."""

import asyncio
import json
import logging
from contextlib import aclosing
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .config import PollerConfig, load_config
from .drivers.manager import get_default_driver_manager
from .errors import ConfigError, PLCConnectionError
from .fields import build_field_table
from .poller import Poller
from .types import Metric

app = typer.Typer(
    name="plcpoll",
    help="Poll PLC tags through protocol drivers and print them as grouped metrics.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

ConfigArgument = Annotated[
    Path,
    typer.Argument(help="Path to the TOML configuration file", envvar="PLCPOLL_CONFIG"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def load_and_validate(path: Path) -> PollerConfig:
    """Load the config file and validate it; exits with code 2 on ConfigError."""
    try:
        config = load_config(path)
        config.validate()
    except ConfigError as e:
        typer.echo(f"Error: Invalid configuration ({e.kind.value}): {e}", err=True)
        raise typer.Exit(2)
    return config


def format_value(value: Any) -> str:
    """Format a field value for text output."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float):
        return f"{value:g}"
    if isinstance(value, str):
        return json.dumps(value)
    return str(value)


def format_metric(metric: Metric) -> str:
    """One-line text rendering: timestamp measurement,tag=value field=value ..."""
    series = metric.measurement
    if metric.tags:
        series += "," + ",".join(f"{k}={v}" for k, v in sorted(metric.tags.items()))
    pairs = " ".join(f"{name}={format_value(value)}" for name, value in metric.field_values.items())
    return f"{metric.timestamp.isoformat()} {series} {pairs}"


def emit(metrics: list[Metric], output_format: str) -> None:
    for metric in metrics:
        if output_format == "json":
            typer.echo(json.dumps(metric.to_dict()))
        else:
            typer.echo(format_metric(metric))


async def run_poll(
    config: PollerConfig,
    interval: float,
    count: int | None,
    output_format: str,
) -> int:
    """Poll until count cycles have run (forever if None); returns the number of cycles run."""
    cycles = 0
    async with Poller(config, manager=get_default_driver_manager()) as poller:
        async with aclosing(poller.poll_iter(interval)) as batches:
            async for metrics in batches:
                emit(metrics, output_format)
                cycles += 1
                if count is not None and cycles >= count:
                    break
    return cycles


# ============================================================================
# Commands
# ============================================================================

@app.command()
def check(
    config_path: ConfigArgument,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Validate a configuration file and show the connection URL and field table.

    Does not connect to the PLC.
    """
    setup_logging(verbose)
    config = load_and_validate(config_path)
    try:
        fields = build_field_table(config.metrics)
    except ConfigError as e:
        typer.echo(f"Error: Invalid configuration ({e.kind.value}): {e}", err=True)
        raise typer.Exit(2)

    rows = [
        {
            "name": f.name,
            "address": f.address,
            "measurement": f.mapping.measurement if f.mapping else "",
            "tags": dict(f.mapping.tags) if f.mapping else {},
        }
        for f in fields
    ]
    if json_output:
        typer.echo(json.dumps({"url": config.url, "timeout": config.timeout, "fields": rows}, indent=2))
    else:
        typer.echo(f"URL:      {config.url}")
        typer.echo(f"Timeout:  {config.timeout:g}s")
        typer.echo(f"Fields:   {len(rows)}")
        for row in rows:
            typer.echo(f"  {row['measurement']}.{row['name']} <- {row['address']}")


@app.command()
def url(
    config_path: ConfigArgument,
    verbose: VerboseOption = False,
) -> None:
    """Print the connection URL built from a configuration file."""
    setup_logging(verbose)
    config = load_and_validate(config_path)
    typer.echo(config.url)


@app.command()
def poll(
    config_path: ConfigArgument,
    verbose: VerboseOption = False,
    interval: Annotated[float, typer.Option("--interval", "-i", help="Polling interval in seconds")] = 10.0,
    count: Annotated[Optional[int], typer.Option("--count", "-n", help="Stop after this many cycles")] = None,
    once: Annotated[bool, typer.Option("--once", help="Poll once and exit")] = False,
    format: Annotated[str, typer.Option("--format", "-f", help="Output format: text, json")] = "text",
) -> None:
    """
    Continuously poll the configured tags and print grouped metrics.

    Outputs format:
    - text: timestamp measurement,tag=value field=value ... (default)
    - json: NDJSON, one metric object per line

    Press Ctrl+C to stop gracefully.
    """
    setup_logging(verbose)

    if format not in ("text", "json"):
        typer.echo(f"Error: Invalid format '{format}'. Must be text or json.", err=True)
        raise typer.Exit(2)

    if interval <= 0:
        typer.echo(f"Error: Interval must be positive, got {interval}", err=True)
        raise typer.Exit(2)

    if count is not None and count < 1:
        typer.echo(f"Error: Count must be at least 1, got {count}", err=True)
        raise typer.Exit(2)

    config = load_and_validate(config_path)
    try:
        asyncio.run(run_poll(config, interval, 1 if once else count, format))
    except ConfigError as e:
        typer.echo(f"Error: Invalid configuration ({e.kind.value}): {e}", err=True)
        raise typer.Exit(2)
    except PLCConnectionError as e:
        typer.echo(f"Error: Connection error ({e.kind.value}): {e}", err=True)
        raise typer.Exit(3)
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)
    except Exception as e:
        typer.echo(f"Error: Unexpected error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(4)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"pyplc-poller {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """plcpoll - poll PLC tags and print them as grouped metrics."""
    pass


if __name__ == "__main__":
    app()
