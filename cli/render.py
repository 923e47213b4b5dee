from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _describe_reading(reading: Optional[Dict[str, Any]]) -> str:
    if not reading:
        return "no data yet"
    return (
        f"soil={reading.get('soilMoisture')} temp={reading.get('temperature')} "
        f"hum={reading.get('humidity')} gas={reading.get('gasLevel')} "
        f"light={reading.get('lightLevel')} actuator={reading.get('actuatorState')} "
        f"at {reading.get('timestamp')}"
    )


def render_ingest(payload: Dict[str, Any]) -> None:
    accepted = payload.get("accepted") or []
    typer.secho(
        f"Ingest {payload.get('status')}: {', '.join(accepted) or 'no zones'}",
        fg=typer.colors.GREEN,
    )
    for zone, reason in (payload.get("rejected") or {}).items():
        typer.secho(f"  - {zone} rejected: {reason}", fg=typer.colors.YELLOW)


def render_snapshot(payload: Any, zone: Optional[str] = None) -> None:
    if zone is not None:
        echo_heading(f"Snapshot {zone}")
        typer.echo(_describe_reading(payload))
        return

    echo_heading("Snapshot")
    for name, reading in (payload or {}).items():
        typer.echo(f"{name}: {_describe_reading(reading)}")


def _render_daily_summary(summary: Optional[Dict[str, Any]]) -> None:
    if not summary:
        typer.echo("No readings for this day.")
        return
    echo_key_values(
        [
            ("totalReadings", summary.get("totalReadings")),
            ("avgTemp", summary.get("avgTemp")),
            ("minTemp", summary.get("minTemp")),
            ("maxTemp", summary.get("maxTemp")),
            ("avgHum", summary.get("avgHum")),
            ("avgSoil", summary.get("avgSoil")),
        ]
    )


def render_daily(payload: Dict[str, Any]) -> None:
    zones = payload.get("zones")
    if zones is None:
        echo_heading(f"Daily {payload.get('zone')} {payload.get('date')}")
        _render_daily_summary(payload.get("summary"))
        return

    echo_heading(f"Daily {payload.get('date')}")
    for zone, body in zones.items():
        typer.echo()
        echo_heading(zone)
        _render_daily_summary(body.get("summary"))


def _render_month(body: Dict[str, Any]) -> None:
    days = body.get("data") or []
    for day in days:
        typer.echo(
            f"  - {day.get('date')}: avgTemp={day.get('avgTemp')} "
            f"avgHum={day.get('avgHum')} readings={day.get('readings')}"
        )
    summary = body.get("summary")
    if not summary:
        typer.echo("No readings for this month.")
        return
    echo_key_values(
        [
            ("totalDays", summary.get("totalDays")),
            ("totalReadings", summary.get("totalReadings")),
            ("overallAvgTemp", summary.get("overallAvgTemp")),
            ("overallAvgHum", summary.get("overallAvgHum")),
            ("overallAvgSoil", summary.get("overallAvgSoil")),
            ("minTemp", summary.get("minTemp")),
            ("maxTemp", summary.get("maxTemp")),
        ]
    )


def render_monthly(payload: Dict[str, Any]) -> None:
    period = f"{payload.get('year')}-{int(payload.get('month') or 0):02d}"
    zones = payload.get("zones")
    if zones is None:
        echo_heading(f"Monthly {payload.get('zone')} {period}")
        _render_month(payload)
        return

    echo_heading(f"Monthly {period}")
    for zone, body in zones.items():
        typer.echo()
        echo_heading(zone)
        _render_month(body)
