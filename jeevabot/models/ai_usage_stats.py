"""Per-user, per-day AI usage counter. The (user_id, date) key makes the daily quota roll over by itself."""
import uuid
from sqlalchemy import Column, String, Integer, Float, Date, DateTime, UniqueConstraint
from jeevabot.database import Base, utcnow


class AiUsageStats(Base):
    __tablename__ = "ai_usage_stats"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    date = Column(Date, nullable=False)  # UTC calendar date
    message_count = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    total_cost = Column(Float, nullable=False, default=0.0)  # USD estimate
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_ai_usage_stats_user_date"),)
