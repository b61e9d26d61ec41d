"""
Chat history reads:
- GET /conversations?userId= — user's conversations, most recently updated first, with message counts
- GET /conversations/{conversation_id}/messages?userId=&limit= — messages oldest-first (Cache-Aside: Redis, then DB)
Ownership: a conversation is only returned to the user who owns it.
"""
import asyncio

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jeevabot.config import get_settings
from jeevabot.core.redis import get_chat_cache_dep
from jeevabot.database import get_db
from jeevabot.repositories.chat_repository import ChatRepository
from jeevabot.schemas.chat import ChatMessageOut, ConversationSummary
from jeevabot.services.redis_chat_cache import RedisChatCache

router = APIRouter(prefix="/conversations", tags=["conversations"])

USER_ID_REQUIRED = "User ID is required"


@router.get("", response_model=list[ConversationSummary])
def list_conversations(
    user_id: str = Query("", alias="userId"),
    db: Session = Depends(get_db),
):
    if not user_id.strip():
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": USER_ID_REQUIRED})
    return [ConversationSummary(**c) for c in ChatRepository.list_conversations(db, user_id)]


@router.get("/{conversation_id}/messages", response_model=list[ChatMessageOut])
async def list_messages(
    conversation_id: str,
    user_id: str = Query("", alias="userId"),
    limit: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    cache: RedisChatCache | None = Depends(get_chat_cache_dep),
):
    """Messages of one conversation ordered by created_at ascending (last `limit` of them)."""
    if not user_id.strip():
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": USER_ID_REQUIRED})
    limit = limit or get_settings().chat_history_max_messages

    loop = asyncio.get_running_loop()
    conv = await loop.run_in_executor(
        None, lambda: ChatRepository.get_conversation(db, user_id, conversation_id)
    )
    if conv is None:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Conversation not found"})

    # The cache only holds the newest cache.limit messages; larger pages go straight to the DB
    if cache is None or limit > cache.limit:
        messages = await loop.run_in_executor(
            None, lambda: ChatRepository.get_last_messages(db, conversation_id, limit)
        )
        return [ChatMessageOut(**m) for m in messages]

    cached = await cache.get_last_messages(conversation_id, limit)
    if cached is not None:
        return [ChatMessageOut(**m) for m in cached]

    messages = await loop.run_in_executor(
        None, lambda: ChatRepository.get_last_messages(db, conversation_id, cache.limit)
    )
    await cache.warm(conversation_id, messages)
    return [ChatMessageOut(**m) for m in messages[-limit:]]
