from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String

from app.db.base import Base


class Generation(Base):
    __tablename__ = "generations"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending")
    cost = Column(Integer, nullable=False, default=0)
    # One-shot guard: flipped false -> true by the single caller that refunds
    refunded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
