from datetime import datetime, timezone

from sqlalchemy import JSON, BigInteger, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


class BalanceAuditLog(Base):
    """Append-only: one row per balance mutation, never updated or deleted."""

    __tablename__ = "balance_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    old_balance = Column(Integer, nullable=False)
    new_balance = Column(Integer, nullable=False)
    change_amount = Column(Integer, nullable=False)
    reason = Column(String, nullable=False)
    reference_id = Column(String, nullable=True, index=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
