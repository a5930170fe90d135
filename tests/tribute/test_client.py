"""Tests for TributeClient against httpx.MockTransport."""
import json

import httpx
import pytest

from app.services.circuit_breaker import build_circuit_breaker
from app.services.tribute.client import CreateOrderParams, TributeAPIError, TributeClient


def _client(settings, handler):
    return TributeClient(
        settings,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        breaker=build_circuit_breaker("tribute-test", settings),
    )


def _params(**kwargs):
    data = dict(
        amount=255,
        currency="eur",
        title="120 AiVerse Tokens",
        description="Purchase 120 tokens for AI image generation",
        success_url="https://aiverse.app/payment/success",
        fail_url="https://aiverse.app/payment/fail",
        customer_id="42",
    )
    data.update(kwargs)
    return CreateOrderParams(**data)


class TestCreateOrder:
    def test_request_shape(self, settings):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["api_key"] = request.headers.get("Api-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"uuid": "ord-1", "paymentUrl": "https://pay/ord-1"})

        order = _client(settings, handler).create_order(_params(email="a@b.c", title="x" * 150))

        assert order.uuid == "ord-1"
        assert order.payment_url == "https://pay/ord-1"
        assert seen["url"] == "https://tribute.tg/api/v1/shop/orders"
        assert seen["api_key"] == settings.tribute_api_key
        assert seen["body"]["customerId"] == "42"
        assert seen["body"]["successUrl"].endswith("/payment/success")
        assert seen["body"]["email"] == "a@b.c"
        assert len(seen["body"]["title"]) == 100

    def test_error_message_from_processor(self, settings):
        def handler(request):
            return httpx.Response(400, json={"message": "Amount too small"})

        with pytest.raises(TributeAPIError) as exc:
            _client(settings, handler).create_order(_params())

        assert exc.value.message == "Amount too small"
        assert exc.value.status_code == 400

    def test_missing_fields_in_response(self, settings):
        def handler(request):
            return httpx.Response(200, json={"uuid": "ord-1"})

        with pytest.raises(TributeAPIError):
            _client(settings, handler).create_order(_params())

    def test_missing_api_key(self, settings):
        settings.tribute_api_key = ""

        def handler(request):  # pragma: no cover
            raise AssertionError("no request expected")

        with pytest.raises(TributeAPIError, match="not configured"):
            _client(settings, handler).create_order(_params())

    def test_transport_error_is_wrapped(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(TributeAPIError, match="unreachable"):
            _client(settings, handler).create_order(_params())


class TestOrderStatus:
    def test_status(self, settings):
        def handler(request):
            assert request.url.path.endswith("/shop/orders/ord-1/status")
            return httpx.Response(200, json={"status": "paid"})

        assert _client(settings, handler).get_order_status("ord-1") == "paid"


class TestCircuitBreaker:
    def test_opens_after_repeated_5xx(self, settings):
        settings.cb_failure_threshold = 2
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={"message": "maintenance"})

        client = _client(settings, handler)
        for _ in range(2):
            with pytest.raises(TributeAPIError):
                client.get_order_status("ord-1")

        with pytest.raises(TributeAPIError, match="temporarily unavailable"):
            client.get_order_status("ord-1")
        assert len(calls) == 2

    def test_4xx_does_not_trip(self, settings):
        settings.cb_failure_threshold = 1

        def handler(request):
            return httpx.Response(404, json={"message": "Order not found"})

        client = _client(settings, handler)
        for _ in range(3):
            with pytest.raises(TributeAPIError, match="Order not found"):
                client.get_order_status("ord-1")
