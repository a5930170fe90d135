"""
Request/response schemas for the Tribute payment API (camelCase on the wire).
"""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CreateOrderIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    package_id: str | None = Field(default=None, alias="packageId")
    custom_tokens: int | None = Field(default=None, alias="customTokens")
    currency: str
    email: str | None = None
    source: str | None = Field(default=None, max_length=64)
    success_url: str | None = Field(default=None, alias="successUrl")
    fail_url: str | None = Field(default=None, alias="failUrl")


class CreateOrderOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    payment_url: str = Field(serialization_alias="paymentUrl")
    order_uuid: str = Field(serialization_alias="orderUuid")


class RefundGenerationIn(BaseModel):
    """Internal: return tokens charged for a generation that failed."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId", gt=0)
    amount: int = Field(gt=0)
    metadata: dict[str, Any] | None = None
