import uuid
from sqlalchemy import Column, String, Integer, Float, Boolean, DateTime, JSON
from jeevabot.database import Base, utcnow


class MockSession(Base):
    """One mock exam attempt. Completed attempts carry a score_percentage."""
    __tablename__ = "mock_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    exam_part = Column(String(16), nullable=False, default="part_a")  # "part_a" | "part_b"
    total_questions = Column(Integer, nullable=True)
    correct_answers = Column(Integer, nullable=True)
    score_percentage = Column(Float, nullable=True)
    passed = Column(Boolean, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class UserAnalytics(Base):
    """Analytics snapshot; analytics_data holds lessons_completed, average_score, current_streak, ..."""
    __tablename__ = "user_analytics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    analytics_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class AiRecommendation(Base):
    """Generated study recommendation; recommendation_data holds type, topic_id, reason, confidence."""
    __tablename__ = "ai_recommendations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    recommendation_data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
