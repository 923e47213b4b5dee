from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def ingest(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/ingest", json=payload)

    def snapshot(self, zone: Optional[str] = None) -> Any:
        path = f"/snapshot/{zone}" if zone else "/snapshot"
        return self._request("GET", path)

    def daily(self, zone: Optional[str] = None, date: Optional[str] = None) -> Dict[str, Any]:
        path = f"/sensor/daily/{zone}" if zone else "/sensor/daily"
        params = {"date": date} if date else None
        return self._request("GET", path, params=params)

    def monthly(
        self,
        zone: Optional[str] = None,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> Dict[str, Any]:
        path = f"/sensor/monthly/{zone}" if zone else "/sensor/monthly"
        params = {key: value for key, value in (("year", year), ("month", month)) if value is not None}
        return self._request("GET", path, params=params or None)

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        kind: str | None = None
        detail: str | None = None
        try:
            data = exc.response.json()
            kind = data.get("kind")
            detail = data.get("message") or data.get("error")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        prefix = f"{kind}: " if kind else ""
        message = (
            f"Request failed with status {exc.response.status_code}: "
            f"{prefix}{detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
