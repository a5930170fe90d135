from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from app.db.base import Base


class PartnerTransaction(Base):
    __tablename__ = "partner_transactions"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    partner_id = Column(BigInteger, nullable=False, index=True)
    source_user_id = Column(BigInteger, nullable=False)
    amount = Column(Integer, nullable=False)        # minor units of the payment
    currency = Column(String, nullable=False)       # RUB / EUR / USD
    bonus_amount = Column(Integer, nullable=False)  # minor units, same currency
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
