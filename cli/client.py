from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the storage monitor service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def push_reading(self, unit_id: str, reading: Dict[str, Any]) -> str:
        payload = self._request("POST", f"/units/{unit_id}/readings", json=reading)
        key = payload.get("key")
        if not isinstance(key, str):
            raise typer.BadParameter("Unexpected response payload when pushing a reading.")
        return key

    def get_snapshot(self, unit_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/units/{unit_id}/snapshot")

    def get_history(self, unit_id: str, hours: Optional[float] = None) -> Dict[str, Any]:
        params = {"hours": hours} if hours is not None else None
        return self._request("GET", f"/units/{unit_id}/history", params=params)

    def get_alerts(self, unit_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/units/{unit_id}/alerts")

    def get_summary(self) -> Dict[str, Any]:
        return self._request("GET", "/summary")

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            if response.status_code == 404:
                raise typer.BadParameter(f"{url} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
