"""
User row: only the columns the payment flows read or write.
balance is shared with generation spend, spins, bonuses etc.; every writer
must go through a conditional update (see BalanceService).
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(BigInteger, primary_key=True, autoincrement=False)
    telegram_id = Column(BigInteger, nullable=True, index=True)
    username = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    balance = Column(Integer, nullable=True, default=0)
    tribute_customer_id = Column(String, nullable=True)

    # Partner program: ref = username of the partner who invited this user
    ref = Column(String, nullable=True)
    partner_percent = Column(Float, nullable=True)
    partner_balance_rubles = Column(Float, nullable=True, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
