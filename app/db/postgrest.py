"""
Row store over the Supabase REST API (PostgREST), httpx sync client.
Never raises: transport and HTTP errors come back as RowStoreResult(ok=False).
"""
import logging

import httpx

from app.db.row_store import Filters, Row, RowStoreResult


logger = logging.getLogger(__name__)


class PostgrestRowStore:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = f"{base_url.rstrip('/')}/rest/v1"
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str],
        prefer: str | None,
        json_body: Row | None = None,
    ) -> RowStoreResult:
        url = f"{self._base_url}/{table}"
        try:
            resp = self.client.request(
                method, url, params=params, headers=self._headers(prefer), json=json_body
            )
        except httpx.HTTPError as e:
            logger.error(
                "row_store_transport_error",
                extra={"table": table, "method": method, "error": str(e)},
            )
            return RowStoreResult(ok=False, error=str(e))

        try:
            data = resp.json() if resp.content else []
        except ValueError:
            data = None

        if not resp.is_success:
            error = data.get("message") if isinstance(data, dict) else resp.text
            logger.error(
                "row_store_http_error",
                extra={"table": table, "method": method, "status_code": resp.status_code, "error": error},
            )
            return RowStoreResult(ok=False, headers=dict(resp.headers), error=error or f"HTTP {resp.status_code}")

        if isinstance(data, dict):
            rows = [data]
        elif isinstance(data, list):
            rows = data
        else:
            rows = []
        return RowStoreResult(ok=True, rows=rows, headers=dict(resp.headers))

    def select(
        self,
        table: str,
        filters: Filters,
        columns: str = "*",
        limit: int | None = None,
    ) -> RowStoreResult:
        params = {"select": columns, **filters}
        if limit is not None:
            params["limit"] = str(limit)
        return self._request("GET", table, params, prefer="count=exact")

    def insert(self, table: str, row: Row, upsert: bool = False) -> RowStoreResult:
        prefer = "return=representation"
        if upsert:
            prefer = "resolution=merge-duplicates," + prefer
        return self._request("POST", table, {}, prefer=prefer, json_body=row)

    def patch(self, table: str, filters: Filters, values: Row) -> RowStoreResult:
        return self._request("PATCH", table, dict(filters), prefer="return=representation", json_body=values)

    def ping(self) -> bool:
        try:
            resp = self.client.get(f"{self._base_url}/", headers=self._headers())
        except httpx.HTTPError:
            return False
        return resp.status_code < 500

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Failed to close client", extra={"error": str(e)})
            finally:
                self._client = None
