"""
Tribute web payments: order creation, status polling, package list, webhook.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    ApiError,
    get_current_user_id,
    get_order_service,
    get_rate_limiter,
    get_webhook_processor,
)
from app.db.row_store import RowStoreError
from app.schemas.tribute import CreateOrderIn, CreateOrderOut
from app.services.auth.purchase_rate_limit import PurchaseRateLimiter
from app.services.balance.service import BalanceWriteError
from app.services.tribute import packages
from app.services.tribute.client import TributeAPIError
from app.services.tribute.orders import OrderService, OrderValidationError
from app.services.tribute.webhook import SIGNATURE_HEADER, WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tribute", tags=["tribute"])


@router.post("/create-order", response_model=CreateOrderOut)
def create_order(
    body: CreateOrderIn,
    user_id: int = Depends(get_current_user_id),
    orders: OrderService = Depends(get_order_service),
    limiter: PurchaseRateLimiter = Depends(get_rate_limiter),
) -> CreateOrderOut:
    if not limiter.check(user_id):
        raise ApiError(429, "Too many purchase attempts. Try again later.")
    try:
        created = orders.create_order(
            user_id=user_id,
            currency=body.currency,
            package_id=body.package_id,
            custom_tokens=body.custom_tokens,
            email=body.email,
            source=body.source,
            success_url=body.success_url,
            fail_url=body.fail_url,
        )
    except OrderValidationError as e:
        raise ApiError(400, str(e)) from None
    except TributeAPIError as e:
        logger.error("create_order_failed", extra={"user_id": user_id, "error": e.message})
        raise ApiError(500, e.message or "Failed to create order") from None
    return CreateOrderOut(payment_url=created.payment_url, order_uuid=created.order_uuid)


@router.get("/order/{order_uuid}/status")
def order_status(order_uuid: str, orders: OrderService = Depends(get_order_service)) -> dict:
    try:
        return orders.check_order_status(order_uuid).to_dict()
    except TributeAPIError as e:
        raise ApiError(500, e.message or "Failed to check order status") from None
    except (RowStoreError, BalanceWriteError) as e:
        logger.error("order_status_reconcile_failed", extra={"order_uuid": order_uuid, "error": str(e)})
        raise ApiError(500, "Failed to check order status") from None


@router.get("/packages")
def list_packages(currency: str = "eur") -> dict:
    currency = currency.lower()
    if currency not in packages.CURRENCIES:
        raise ApiError(400, "Invalid currency")
    return {
        "success": True,
        "currency": currency,
        "packages": [p.to_dict() for p in packages.get_packages(currency)],
    }


@router.post("/webhook")
async def tribute_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> JSONResponse:
    """Signature is computed over the exact bytes received."""
    raw_body = await request.body()
    result = await run_in_threadpool(processor.handle, raw_body, request.headers.get(SIGNATURE_HEADER))
    return JSONResponse(status_code=result.status_code, content=result.body)
