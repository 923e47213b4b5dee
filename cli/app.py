from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_daily, render_ingest, render_monthly, render_snapshot


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the vertical farm telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    zone: str = typer.Argument(..., help="Zone identifier, e.g. zone1."),
    soil: float = typer.Option(..., "--soil", help="Soil moisture."),
    temperature: float = typer.Option(..., "--temperature", "-t", help="Temperature."),
    humidity: float = typer.Option(..., "--humidity", help="Relative humidity."),
    gas: Optional[float] = typer.Option(None, "--gas", help="Gas level."),
    light: Optional[float] = typer.Option(None, "--light", help="Light level."),
    motor: Optional[str] = typer.Option(None, "--motor", help="Actuator state, ON or OFF."),
) -> None:
    """Send one reading for one zone."""
    state = _get_state(ctx)
    payload: Dict[str, Any] = {
        "zone": zone,
        "soil": soil,
        "temperature": temperature,
        "humidity": humidity,
    }
    optional = {"gas": gas, "light": light, "motor": motor}
    payload.update({key: value for key, value in optional.items() if value is not None})
    render_ingest(state.client.ingest(payload))


@app.command("snapshot")
def snapshot_command(
    ctx: typer.Context,
    zone: Optional[str] = typer.Argument(None, help="Limit output to one zone."),
) -> None:
    """Show the latest reading per zone."""
    state = _get_state(ctx)
    render_snapshot(state.client.snapshot(zone), zone=zone)


@app.command("daily")
def daily_command(
    ctx: typer.Context,
    zone: Optional[str] = typer.Argument(None, help="Zone identifier; all zones when omitted."),
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Day in YYYY-MM-DD format."),
) -> None:
    """Show the daily summary for one zone or all zones."""
    state = _get_state(ctx)
    render_daily(state.client.daily(zone=zone, date=date))


@app.command("monthly")
def monthly_command(
    ctx: typer.Context,
    zone: Optional[str] = typer.Argument(None, help="Zone identifier; all zones when omitted."),
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Year, e.g. 2024."),
    month: Optional[int] = typer.Option(None, "--month", "-m", help="Month number 1-12."),
) -> None:
    """Show per-day rollups and the monthly summary."""
    state = _get_state(ctx)
    render_monthly(state.client.monthly(zone=zone, year=year, month=month))
