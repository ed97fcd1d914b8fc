"""Thin async client for the PostgREST interface of the hosted database."""

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import httpx
import structlog

from simple_bookkeeping.config import get_settings

logger = structlog.get_logger(__name__)

# A filter value is a PostgREST operator expression such as ``eq.42``; a
# sequence applies several expressions to the same column.
Filters = Mapping[str, str | Sequence[str]]


class DatabaseError(Exception):
    """Error response from the database API.

    ``code`` carries the PostgREST / Postgres error code (``23505``,
    ``PGRST301`` ...) when the response body provides one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.details = details


class RateLimitError(DatabaseError):
    """Rate limit exceeded."""

    @property
    def retry_after(self) -> int | None:
        if isinstance(self.details, dict):
            return self.details.get("retry_after")
        return None


class NetworkError(DatabaseError):
    """The request never produced a response."""


def eq(value: Any) -> str:
    return f"eq.{value}"


def neq(value: Any) -> str:
    return f"neq.{value}"


def gte(value: Any) -> str:
    return f"gte.{value}"


def lte(value: Any) -> str:
    return f"lte.{value}"


def lt(value: Any) -> str:
    return f"lt.{value}"


def is_null() -> str:
    return "is.null"


def in_(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(str(value) for value in values) + ")"


def ilike(pattern: str) -> str:
    return f"ilike.{pattern}"


def _query_params(
    filters: Filters | None,
    columns: str | None = None,
    order: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    if columns:
        params.append(("select", columns))
    for column, expression in (filters or {}).items():
        if isinstance(expression, str):
            params.append((column, expression))
        else:
            params.extend((column, item) for item in expression)
    if order:
        params.append(("order", order))
    if limit is not None:
        params.append(("limit", str(limit)))
    if offset:
        params.append(("offset", str(offset)))
    return params


class DatabaseClient:
    """Async client for table reads and writes over PostgREST."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        access_token: str | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.supabase_url).rstrip("/")
        self._api_key = api_key or settings.supabase_service_role_key.get_secret_value()
        self._access_token = access_token or self._api_key
        self._timeout = settings.database_timeout
        self._max_retries = settings.database_max_retries
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DatabaseClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _get_headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """Make an API request with retry logic for transport failures."""
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(prefer),
            )
        except httpx.RequestError as e:
            if retry_count < self._max_retries:
                logger.debug("request_retry", path=path, attempt=retry_count + 1)
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._send(method, path, params, json, prefer, retry_count + 1)
            raise NetworkError(f"Request failed: {e}") from e

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", "60"))
            raise RateLimitError(
                f"Rate limited, retry after {retry_after}s",
                status_code=429,
                details={"retry_after": retry_after},
            )

        if response.status_code >= 400:
            try:
                error_detail = response.json() if response.content else {}
            except ValueError:
                error_detail = {"raw": response.text[:500] if response.text else "empty response"}
            code = error_detail.get("code") if isinstance(error_detail, dict) else None
            raise DatabaseError(
                f"API error: {response.status_code}",
                status_code=response.status_code,
                code=code,
                details=error_detail,
            )

        return response

    async def _request(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        response = await self._send(method, path, params, json, prefer)
        return response.json() if response.content else None

    @staticmethod
    def _table_path(table: str) -> str:
        return f"/rest/v1/{table}"

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Read rows; ``order`` uses PostgREST syntax (``code.asc``)."""
        params = _query_params(filters, columns, order, limit, offset)
        data = await self._request("GET", self._table_path(table), params=params)
        return list(data or [])

    async def select_page(
        self,
        table: str,
        columns: str = "*",
        filters: Filters | None = None,
        order: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Read one page of rows together with the total matching count."""
        params = _query_params(filters, columns, order, limit, offset)
        response = await self._send(
            "GET", self._table_path(table), params=params, prefer="count=exact"
        )
        rows = list(response.json() or []) if response.content else []
        # Content-Range: 0-19/137 (or */0 when empty)
        content_range = response.headers.get("Content-Range", "")
        total = content_range.rpartition("/")[2]
        return rows, int(total) if total.isdigit() else len(rows)

    async def select_one(
        self, table: str, columns: str = "*", filters: Filters | None = None
    ) -> dict[str, Any] | None:
        rows = await self.select(table, columns, filters, limit=1)
        return rows[0] if rows else None

    async def insert(
        self, table: str, rows: dict[str, Any] | list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert one or many rows and return them as stored."""
        data = await self._request(
            "POST", self._table_path(table), json=rows, prefer="return=representation"
        )
        return list(data or [])

    async def update(
        self, table: str, values: dict[str, Any], filters: Filters
    ) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("update requires at least one filter")
        data = await self._request(
            "PATCH",
            self._table_path(table),
            params=_query_params(filters),
            json=values,
            prefer="return=representation",
        )
        return list(data or [])

    async def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("delete requires at least one filter")
        data = await self._request(
            "DELETE",
            self._table_path(table),
            params=_query_params(filters),
            prefer="return=representation",
        )
        return list(data or [])

    async def rpc(self, function: str, params: dict[str, Any] | None = None) -> Any:
        """Call a database function."""
        return await self._request("POST", f"/rest/v1/rpc/{function}", json=params or {})
