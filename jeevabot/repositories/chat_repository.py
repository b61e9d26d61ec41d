"""
Chat persistence: Conversation (many per user) + Message. DB as source of truth.
All operations are sync (run_in_executor from async callers).
Ownership: conversation.user_id == requesting user; lookups by id are always user-scoped.
"""
from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from jeevabot.models.chat_conversation import ChatConversation
from jeevabot.models.chat_message import ChatMessage

TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."


def conversation_title(content: str) -> str:
    """First 50 characters of the opening message, plus '...' when it was longer."""
    if len(content) > TITLE_MAX_LENGTH:
        return content[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return content


def message_to_dict(msg: ChatMessage) -> dict:
    return {
        "id": msg.id,
        "conversation_id": msg.conversation_id,
        "role": msg.role,
        "content": msg.content,
        "created_at": msg.created_at.isoformat() if msg.created_at else None,
    }


def get_conversation(db: Session, user_id: str, conversation_id: str) -> ChatConversation | None:
    return db.query(ChatConversation).filter(
        ChatConversation.id == conversation_id,
        ChatConversation.user_id == user_id,
    ).first()


def create_conversation(
    db: Session,
    user_id: str,
    first_message: str,
    context_data: dict | None = None,
) -> ChatConversation:
    conv = ChatConversation(
        user_id=user_id,
        title=conversation_title(first_message),
        context_data=context_data or {},
    )
    db.add(conv)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(conv)
    return conv


def save_message(db: Session, conversation_id: str, role: str, content: str) -> ChatMessage:
    """Persist one message in a conversation. Commits; rolls back and re-raises on failure."""
    msg = ChatMessage(conversation_id=conversation_id, role=role, content=content)
    db.add(msg)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(msg)
    return msg


def list_conversations(db: Session, user_id: str) -> list[dict]:
    """User's conversations, most recently updated first, each with its message count."""
    counts = (
        db.query(ChatMessage.conversation_id, func.count(ChatMessage.id).label("message_count"))
        .group_by(ChatMessage.conversation_id)
        .subquery()
    )
    rows = (
        db.query(ChatConversation, counts.c.message_count)
        .outerjoin(counts, counts.c.conversation_id == ChatConversation.id)
        .filter(ChatConversation.user_id == user_id)
        .order_by(desc(ChatConversation.updated_at))
        .all()
    )
    return [
        {
            "id": conv.id,
            "user_id": conv.user_id,
            "title": conv.title,
            "created_at": conv.created_at.isoformat(),
            "updated_at": conv.updated_at.isoformat(),
            "message_count": message_count or 0,
            "context_data": conv.context_data or {},
        }
        for conv, message_count in rows
    ]


def get_last_messages(db: Session, conversation_id: str, limit: int = 100) -> list[dict]:
    """Last `limit` messages of a conversation, oldest-first."""
    rows = (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation_id)
        .order_by(desc(ChatMessage.created_at))
        .limit(limit)
        .all()
    )
    rows = list(reversed(rows))
    return [message_to_dict(r) for r in rows]


class ChatRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def get_conversation(db: Session, user_id: str, conversation_id: str) -> ChatConversation | None:
        return get_conversation(db, user_id, conversation_id)

    @staticmethod
    def create_conversation(
        db: Session, user_id: str, first_message: str, context_data: dict | None = None
    ) -> ChatConversation:
        return create_conversation(db, user_id, first_message, context_data)

    @staticmethod
    def save_message(db: Session, conversation_id: str, role: str, content: str) -> ChatMessage:
        return save_message(db, conversation_id, role, content)

    @staticmethod
    def list_conversations(db: Session, user_id: str) -> list[dict]:
        return list_conversations(db, user_id)

    @staticmethod
    def get_last_messages(db: Session, conversation_id: str, limit: int = 100) -> list[dict]:
        return get_last_messages(db, conversation_id, limit)
