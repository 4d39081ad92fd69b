"""Row-store client over a PostgREST-style HTTP API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyfleet._redact import redact_for_log
from pyfleet.config import FleetConfig
from pyfleet.exceptions import StoreError, StoreFetchError, StoreWriteError

_logger = logging.getLogger(__name__)


class RowStore(Protocol):
    """Structural row-store interface.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestRowStore`) concrete.
    """

    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        ...

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        ...


def _error_details(text: str, status: int) -> tuple[str, str]:
    """Pull ``code``/``message`` out of an error body, falling back to the HTTP status."""
    code = str(status)
    message = text[:200] or f"HTTP {status}"
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return code, message
    if isinstance(body, dict):
        code = str(body.get("code") or code)
        message = str(body.get("message") or body.get("error") or message)
    return code, message


class RestRowStore:
    """HTTP row store.

    ``insert`` issues ``POST /rest/v1/<table>``; ``select`` issues
    ``GET /rest/v1/<table>?select=*`` with ``eq.`` filters.
    """

    def __init__(self, config: FleetConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._base = f"{config.store_url.rstrip('/')}/rest/v1"
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._config.store_api_key,
            "authorization": f"Bearer {self._config.store_api_key}",
            "accept": "application/json",
            "content-type": "application/json",
            "accept-profile": self._config.store_schema,
            "content-profile": self._config.store_schema,
        }

    async def insert(self, table: str, row: Mapping[str, Any]) -> None:
        """Insert one row.

        Raises
        ------
        StoreWriteError
            The store rejected the row or could not be reached.
        """
        url = f"{self._base}/{table}"
        headers = self._headers()
        headers["prefer"] = "return=minimal"
        _logger.debug("POST %s row=%s", url, redact_for_log(dict(row)))

        try:
            async with self._http.post(url, json=dict(row), headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    code, message = _error_details(text, resp.status)
                    raise StoreWriteError(message, code=code, table=table)
        except StoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreWriteError(f"Insert into {table} failed: {exc}", code="network", table=table) from exc

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch rows matching all *filters* (equality).

        Parameters
        ----------
        order
            Column to sort by, optionally suffixed with ``.desc``/``.asc``.
        limit
            Maximum number of rows.

        Raises
        ------
        StoreFetchError
            The request failed or the reply was not a JSON array.
        """
        url = f"{self._base}/{table}"
        params: dict[str, str] = {"select": "*"}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        _logger.debug("GET %s params=%s", url, params)

        try:
            async with self._http.get(url, params=params, headers=self._headers(), timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    code, message = _error_details(text, resp.status)
                    raise StoreFetchError(message, code=code, table=table)
        except StoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreFetchError(f"Select from {table} failed: {exc}", code="network", table=table) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreFetchError(f"Invalid JSON from {table}: {text[:200]}", code="invalid_json", table=table) from exc

        if not isinstance(body, list):
            raise StoreFetchError(f"Expected a list of rows from {table}", code="invalid_json", table=table)
        return [row for row in body if isinstance(row, dict)]
