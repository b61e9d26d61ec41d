"""A chat thread owned by one user. Title comes from the first message; context is what the client sent with it."""
import uuid
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import relationship

from jeevabot.database import Base, utcnow


class ChatConversation(Base):
    __tablename__ = "chat_conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    context_data = Column(JSON, nullable=False, default=dict)  # e.g. {"lessonId": ..., "moduleId": ...}
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    # Messages ordered by created_at for correct ordering
    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        order_by="ChatMessage.created_at",
        lazy="select",
        passive_deletes=True,
    )
