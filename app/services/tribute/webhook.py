"""
Tribute webhook ingestion: signature check, envelope parsing, event routing.

Tribute signs the raw body with HMAC-SHA256 (key = shop API key) and sends
the hex digest in `trbt-signature`. Bodies arrive either as an envelope
{name, created_at, sent_at, payload: {...}} or as a flat order payload.
"""
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.core.config import Settings
from app.db.row_store import RowStore, RowStoreError, eq
from app.services.tribute.outcomes import OutcomeResult, PaymentOutcomeHandler
from app.utils.metrics import webhook_events_total

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "trbt-signature"

EVENT_ORDER_SUCCESS = "shopOrderSuccess"
EVENT_ORDER_FAILED = "shopOrderPaymentFailed"
EVENT_ORDER_REFUNDED = "shopOrderRefunded"
EVENT_RECURRENT_CANCELLED = "shopRecurrentCancelled"
EVENT_TOKEN_CHARGE_SUCCESS = "shopTokenChargeSuccess"
EVENT_TOKEN_CHARGE_FAILED = "shopTokenChargeFailed"

KNOWN_EVENTS = frozenset({
    EVENT_ORDER_SUCCESS,
    EVENT_ORDER_FAILED,
    EVENT_ORDER_REFUNDED,
    EVENT_RECURRENT_CANCELLED,
    EVENT_TOKEN_CHARGE_SUCCESS,
    EVENT_TOKEN_CHARGE_FAILED,
})
TOKEN_CHARGE_EVENTS = frozenset({EVENT_TOKEN_CHARGE_SUCCESS, EVENT_TOKEN_CHARGE_FAILED})


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Constant-time check of the hex HMAC-SHA256 of the raw body."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())


class WebhookPayloadError(Exception):
    """Body is not a JSON object; retrying will not help."""


class WebhookOrderPayload(BaseModel):
    """
    Order fields of a webhook body. Only uuid and status drive routing;
    the rest are informational and never reject a signed event.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uuid: str | None = None
    status: str | None = None
    amount: int | float | None = None
    currency: str | None = None
    customer_id: str | None = Field(default=None, alias="customerId")
    email: str | None = None
    source: str | None = None
    transaction_id: str | None = Field(default=None, alias="transactionId")

    @field_validator("currency", "customer_id", "email", "source", "transaction_id", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str | None:
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> int | float | None:
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return v
        if isinstance(v, str):
            try:
                return float(v)
            except ValueError:
                pass
        return None


@dataclass(frozen=True)
class WebhookEvent:
    name: str | None
    payload: WebhookOrderPayload
    has_envelope: bool


def parse_webhook_body(raw_body: bytes) -> WebhookEvent:
    try:
        body = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as e:
        raise WebhookPayloadError(f"Invalid JSON: {e}") from e
    if not isinstance(body, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")

    name = body.get("name") if isinstance(body.get("name"), str) else None
    envelope_payload = body.get("payload")
    has_envelope = isinstance(envelope_payload, dict)
    data = envelope_payload if has_envelope else body
    try:
        payload = WebhookOrderPayload.model_validate(data)
    except ValidationError as e:
        raise WebhookPayloadError(f"Malformed order payload: {e.error_count()} invalid field(s)") from e
    return WebhookEvent(name=name, payload=payload, has_envelope=has_envelope)


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str | None = None) -> "WebhookResponse":
        body: dict[str, Any] = {"ok": True}
        if message:
            body["message"] = message
        return cls(200, body)

    @classmethod
    def error(cls, status_code: int, message: str) -> "WebhookResponse":
        return cls(status_code, {"error": message})


def _metric_event(name: str | None) -> str:
    return name if name in KNOWN_EVENTS else "unknown"


class WebhookProcessor:
    def __init__(self, settings: Settings, store: RowStore, outcomes: PaymentOutcomeHandler) -> None:
        self.secret = settings.tribute_api_key
        self.silent_sources = settings.silent_sources_set
        self.store = store
        self.outcomes = outcomes

    def handle(self, raw_body: bytes, signature: str | None) -> WebhookResponse:
        """Full webhook pipeline; never raises."""
        if not verify_signature(raw_body, signature, self.secret):
            logger.warning("webhook_invalid_signature", extra={"reason": "missing" if not signature else "mismatch"})
            webhook_events_total.labels(event="unverified", outcome="rejected").inc()
            return WebhookResponse.error(401, "Invalid signature")

        try:
            event = parse_webhook_body(raw_body)
        except WebhookPayloadError as e:
            logger.warning("webhook_bad_payload", extra={"error": str(e)})
            webhook_events_total.labels(event="unverified", outcome="bad_payload").inc()
            return WebhookResponse.error(400, str(e))

        metric_event = _metric_event(event.name)
        try:
            response, outcome = self._route(event)
        except Exception:
            logger.exception(
                "webhook_processing_failed",
                extra={"event_name": event.name, "order_uuid": event.payload.uuid},
            )
            webhook_events_total.labels(event=metric_event, outcome="error").inc()
            return WebhookResponse.error(500, "Internal error")

        webhook_events_total.labels(event=metric_event, outcome=outcome).inc()
        return response

    def _route(self, event: WebhookEvent) -> tuple[WebhookResponse, str]:
        payload = event.payload
        logger.info(
            "webhook_received",
            extra={
                "event_name": event.name,
                "order_uuid": payload.uuid,
                "status": payload.status,
                "source": payload.source,
            },
        )

        if event.name == EVENT_RECURRENT_CANCELLED:
            logger.info("webhook_recurrent_cancelled", extra={"order_uuid": payload.uuid})
            return WebhookResponse.ok("Recurrent cancellation acknowledged"), "ignored"

        if not payload.uuid:
            if event.name in TOKEN_CHARGE_EVENTS:
                logger.info("webhook_token_charge_without_order", extra={"event_name": event.name})
            else:
                logger.warning("webhook_no_uuid", extra={"event_name": event.name})
            return WebhookResponse.ok("No uuid in payload"), "ignored"

        found = self.store.select("tribute_orders", {"uuid": eq(payload.uuid)}, limit=1)
        if not found.ok:
            raise RowStoreError("tribute_orders", "select", found.error)
        order = found.first
        if order is None:
            logger.warning("webhook_order_not_found", extra={"order_uuid": payload.uuid})
            return WebhookResponse.ok("Order not found"), "order_not_found"

        skip_notifications = (payload.source or order.get("source")) in self.silent_sources

        if event.name in (EVENT_ORDER_SUCCESS, EVENT_TOKEN_CHARGE_SUCCESS):
            return self._success(order, payload, skip_notifications)
        if event.name in (EVENT_ORDER_FAILED, EVENT_TOKEN_CHARGE_FAILED):
            return self._result(self.outcomes.process_failure(order))
        if event.name == EVENT_ORDER_REFUNDED:
            return self._result(self.outcomes.process_refund(order, skip_notifications=skip_notifications))

        # Legacy deliveries: no (or unknown) event name, branch on payload status
        if order.get("status") == "paid":
            logger.info("webhook_already_paid", extra={"order_uuid": order["uuid"]})
            return WebhookResponse.ok("Already processed"), "already_processed"
        if payload.status == "paid":
            return self._success(order, payload, skip_notifications)
        if payload.status == "failed":
            return self._result(self.outcomes.process_failure(order))
        logger.info(
            "webhook_status_ignored",
            extra={"order_uuid": order["uuid"], "event_name": event.name, "status": payload.status},
        )
        return WebhookResponse.ok(), "ignored"

    def _success(self, order: dict, payload: WebhookOrderPayload, skip_notifications: bool) -> tuple[WebhookResponse, str]:
        if order.get("status") == "paid":
            logger.info("webhook_already_paid", extra={"order_uuid": order["uuid"]})
            return WebhookResponse.ok("Already processed"), "already_processed"
        result = self.outcomes.process_success(order, email=payload.email, skip_notifications=skip_notifications)
        return self._result(result)

    @staticmethod
    def _result(result: OutcomeResult) -> tuple[WebhookResponse, str]:
        if result.already_processed:
            return WebhookResponse.ok("Already processed"), "already_processed"
        return WebhookResponse.ok(), result.status.value
