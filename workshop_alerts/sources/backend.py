"""
BackendClient — чтение таблиц из hosted backend (PostgREST-совместимый REST).

GET {backend_url}/rest/v1/{table}?select=...&limit=N + фильтры колонок
(status=neq.COMPLETED, status=in.(PENDING,ORDERED), ...).
"""

import httpx
from loguru import logger

from workshop_alerts.sources.base import SnapshotFetchError


class BackendClient:
    """Тонкая обёртка над httpx.AsyncClient для read-only запросов."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout, trust_env=False)
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, str] | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Строки таблицы. Любая сетевая/HTTP ошибка → SnapshotFetchError."""
        if not self.configured:
            raise SnapshotFetchError(table, "backend URL is not configured")

        params: dict[str, str | int] = {"select": columns}
        if filters:
            params.update(filters)
        if limit is not None:
            params["limit"] = limit

        url = f"{self._base_url}/rest/v1/{table}"
        try:
            response = await self._client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise SnapshotFetchError(table, f"HTTP {exc.response.status_code}") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise SnapshotFetchError(table, str(exc) or exc.__class__.__name__) from exc

        if not isinstance(payload, list):
            raise SnapshotFetchError(table, "unexpected payload (expected a list of rows)")

        logger.debug(f"Backend {table}: {len(payload)} rows")
        return [row for row in payload if isinstance(row, dict)]

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
