"""
TributeOrder: shadow copy of a Tribute shop order.
uuid is assigned by Tribute and correlates webhooks, polls and audit entries.
status: pending -> paid -> refunded, or pending -> failed. Never deleted.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from app.db.base import Base


class TributeOrder(Base):
    __tablename__ = "tribute_orders"

    uuid = Column(String, primary_key=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    amount = Column(Integer, nullable=False)                  # cents / kopecks
    currency = Column(String, nullable=False)                 # eur / rub / usd
    tokens = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pending")
    payment_url = Column(String, nullable=True)
    email = Column(String, nullable=True)
    source = Column(String, nullable=True)                    # mini app / hub bot / ...
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
