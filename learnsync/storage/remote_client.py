"""
HTTP client for the remote tabular store.

Speaks a PostgREST-style API (``/rest/v1/<table>``): equality filters as
``column=eq.value`` query params, upserts through
``Prefer: resolution=merge-duplicates`` with an ``on_conflict`` column
list, and ``Prefer: return=representation`` to get written rows back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from loguru import logger

from learnsync.exceptions import PermanentPersistenceError, TransientPersistenceError

# Statuses that mean "try again later" rather than "request is wrong"
TRANSIENT_STATUS_CODES = frozenset({401, 403, 408, 429})


def _filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _filter_params(filters: Mapping[str, Any] | None) -> dict[str, str]:
    params = {}
    for column, value in (filters or {}).items():
        op = "is" if value is None else "eq"
        params[column] = f"{op}.{_filter_value(value)}"
    return params


class RemoteClient:
    """Async HTTP client for the remote learning tables."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_ms: int = 10000,
        retry_attempts: int = 1,
        retry_backoff_seconds: float = 1.0,
    ):
        """
        Initialize the remote client.

        Args:
            base_url: Base URL of the remote API
            api_key: Key sent as ``apikey`` and bearer token
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Attempts per request on transient failures
            retry_backoff_seconds: Base for exponential backoff between attempts
        """
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            follow_redirects=True,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(
        self,
        method: str,
        table: str,
        params: Mapping[str, str] | None = None,
        payload: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Send one request with retry on transient failures.

        Returns:
            Rows in the response body (empty list for no content)

        Raises:
            TransientPersistenceError: Network down, auth unavailable, 5xx
            PermanentPersistenceError: Any other 4xx
        """
        headers = {"Prefer": prefer} if prefer else None
        last_error: TransientPersistenceError | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.request(
                    method,
                    f"/rest/v1/{table}",
                    params=dict(params or {}),
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                if not response.content:
                    return []
                try:
                    body = response.json()
                except ValueError as e:
                    logger.error("Remote {} {} returned an unreadable body", method, table)
                    raise PermanentPersistenceError(
                        f"{method} {table} returned a non-JSON body",
                        status_code=response.status_code,
                    ) from e
                return body if isinstance(body, list) else [body]

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status < 500 and status not in TRANSIENT_STATUS_CODES:
                    logger.error("Remote {} {} rejected: {}", method, table, status)
                    raise PermanentPersistenceError(
                        f"{method} {table} failed with status {status}", status_code=status
                    ) from e
                last_error = TransientPersistenceError(
                    f"{method} {table} failed with status {status}", status_code=status
                )

            except httpx.RequestError as e:
                last_error = TransientPersistenceError(f"{method} {table} failed: {e}")

            if attempt < self.retry_attempts - 1:
                wait_time = self.retry_backoff_seconds * (2 ** attempt)
                logger.warning(
                    "Remote {} {} failed on attempt {}/{}. Retrying in {}s...",
                    method,
                    table,
                    attempt + 1,
                    self.retry_attempts,
                    wait_time,
                )
                await asyncio.sleep(wait_time)

        if last_error is None:
            last_error = TransientPersistenceError(f"{method} {table} failed")
        raise last_error

    # =========================================================================
    # Table Operations
    # =========================================================================

    async def select(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params = {"select": "*", **_filter_params(filters)}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        return await self._request("GET", table, params=params)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return await self._request(
            "POST", table, payload=[dict(r) for r in rows], prefer="return=representation"
        )

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        on_conflict: Sequence[str],
    ) -> list[dict[str, Any]]:
        return await self._request(
            "POST",
            table,
            params={"on_conflict": ",".join(on_conflict)},
            payload=[dict(r) for r in rows],
            prefer="resolution=merge-duplicates,return=representation",
        )

    async def update(
        self, table: str, match: Mapping[str, Any], values: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        return await self._request(
            "PATCH",
            table,
            params=_filter_params(match),
            payload=dict(values),
            prefer="return=representation",
        )

    async def delete(
        self, table: str, ids: Sequence[str], match: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        params = {"id": f"in.({','.join(str(i) for i in ids)})", **_filter_params(match)}
        return await self._request("DELETE", table, params=params, prefer="return=representation")

    async def health_check(self) -> bool:
        """
        Check if the remote API is reachable.

        Returns:
            True if it answers without a server error, False otherwise
        """
        try:
            response = await self.client.get("/rest/v1/", timeout=5.0)
            return response.status_code < 500

        except httpx.HTTPError:
            return False
