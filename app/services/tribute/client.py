"""
Tribute Shop API client (httpx sync client).
Docs: https://wiki.tribute.tg/for-shops/api
"""
import logging
import time
from dataclasses import dataclass

import httpx
import pybreaker

from app.core.config import Settings
from app.services.circuit_breaker import get_circuit_breaker
from app.utils.metrics import tribute_requests_total, tribute_request_duration_seconds


logger = logging.getLogger(__name__)


class TributeAPIError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class CreateOrderParams:
    amount: int               # cents (EUR/USD) or kopecks (RUB)
    currency: str
    title: str                # max 100 chars
    description: str          # max 300 chars
    success_url: str
    fail_url: str
    customer_id: str
    email: str | None = None


@dataclass
class TributeOrder:
    uuid: str
    payment_url: str


class TributeClient:
    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self._base_url = settings.tribute_api_url
        self._api_key = settings.tribute_api_key
        self._timeout = settings.http_client_timeout
        self._client = client
        self._breaker = breaker or get_circuit_breaker("tribute", settings)

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        tribute_requests_total.labels(method=method, status=status).inc()
        tribute_request_duration_seconds.labels(method=method).observe(duration)

    def _call(self, name: str, method: str, path: str, json_body: dict | None = None) -> dict:
        if not self._api_key:
            raise TributeAPIError("Tribute API key is not configured")

        def do_request() -> httpx.Response:
            resp = self.client.request(
                method,
                f"{self._base_url}{path}",
                headers={"Api-Key": self._api_key, "Content-Type": "application/json"},
                json=json_body,
            )
            # 5xx counts against the breaker, 4xx is our problem and does not
            if resp.status_code >= 500:
                raise TributeAPIError(_error_message(resp), resp.status_code)
            return resp

        start = time.time()
        try:
            resp = self._breaker.call(do_request)
        except pybreaker.CircuitBreakerError:
            self._record_request(name, "breaker_open", time.time() - start)
            raise TributeAPIError("Payment provider is temporarily unavailable") from None
        except TributeAPIError:
            self._record_request(name, "error", time.time() - start)
            raise
        except httpx.HTTPError as e:
            self._record_request(name, "error", time.time() - start)
            logger.warning("tribute_transport_error", extra={"method": name, "error": str(e)})
            raise TributeAPIError(f"Tribute API unreachable: {e}") from e

        if not resp.is_success:
            self._record_request(name, "error", time.time() - start)
            message = _error_message(resp)
            logger.warning(
                "tribute_api_error",
                extra={"method": name, "status_code": resp.status_code, "error": message},
            )
            raise TributeAPIError(message, resp.status_code)

        self._record_request(name, "success", time.time() - start)
        try:
            return resp.json()
        except ValueError as e:
            raise TributeAPIError("Tribute API returned invalid JSON", resp.status_code) from e

    def create_order(self, params: CreateOrderParams) -> TributeOrder:
        """POST /shop/orders"""
        body = {
            "amount": params.amount,
            "currency": params.currency,
            "title": params.title[:100],
            "description": params.description[:300],
            "successUrl": params.success_url,
            "failUrl": params.fail_url,
            "customerId": params.customer_id,
        }
        if params.email:
            body["email"] = params.email
        data = self._call("create_order", "POST", "/shop/orders", body)
        if not data.get("uuid") or not data.get("paymentUrl"):
            raise TributeAPIError("Tribute API response is missing uuid or paymentUrl")
        return TributeOrder(uuid=data["uuid"], payment_url=data["paymentUrl"])

    def get_order_status(self, order_uuid: str) -> str:
        """GET /shop/orders/{uuid}/status -> pending | paid | failed"""
        data = self._call("get_order_status", "GET", f"/shop/orders/{order_uuid}/status")
        status = data.get("status")
        if not status:
            raise TributeAPIError("Tribute API response is missing status")
        return status

    def close(self) -> None:
        """Close httpx client."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Failed to close client", extra={"error": str(e)})
            finally:
                self._client = None


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and (data.get("message") or data.get("error")):
        return data.get("message") or data.get("error")
    return f"Tribute API error: {resp.status_code}"
