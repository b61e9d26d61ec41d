"""
One assistant chat turn, end to end:
validate -> quota gate -> resolve conversation -> save user message -> build prompt
-> Gemini -> save assistant message -> usage accounting (best-effort) -> response.

The user message is saved before the model call so the question survives a failed answer.
Usage is only counted once the assistant message is stored.
"""
import asyncio
import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from jeevabot.repositories.chat_repository import ChatRepository, message_to_dict
from jeevabot.schemas.chat import ChatMessageOut, ChatRequest, ChatResponse, RateLimitStatus
from jeevabot.services.ai_service import ModelReply, generate_chat_reply
from jeevabot.services.prompt_context import build_full_prompt, build_system_prompt
from jeevabot.services.rate_limiter import get_rate_limit, increment_usage
from jeevabot.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Daily message limit reached. Please try again tomorrow."
MODEL_UNAVAILABLE_MESSAGE = "AI service temporarily unavailable. Please try again later."


class ChatValidationError(Exception):
    """Missing user id or content. Nothing was read or written."""

    def __init__(self, message: str = "Missing required fields: userId and content"):
        super().__init__(message)
        self.message = message


class RateLimitExceeded(Exception):
    """Daily quota used up. Carries the status so the client can say when to come back."""

    def __init__(self, status: RateLimitStatus, message: str = RATE_LIMIT_MESSAGE):
        super().__init__(message)
        self.message = message
        self.status = status


class ConversationNotFound(Exception):
    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.message = "Conversation not found"
        self.conversation_id = conversation_id


class ChatRelayError(Exception):
    """Internal failure that aborted the turn (persistence or model call)."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ChatCancelled(Exception):
    """Caller went away while the model call was in flight. The user message stays saved."""


class ChatRelay:
    """Runs chat turns against one request-scoped DB session."""

    def __init__(
        self,
        db: Session,
        cache: RedisChatCache | None = None,
        repository: ChatRepository | None = None,
    ):
        self._db = db
        self._cache = cache
        self._repo = repository or ChatRepository()

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: fn(*args))

    async def get_rate_limit(self, user_id: str) -> RateLimitStatus:
        return await self._run(get_rate_limit, self._db, user_id)

    async def handle(self, request: ChatRequest, abort: asyncio.Event | None = None) -> ChatResponse:
        user_id = (request.user_id or "").strip()
        content = request.content or ""
        if not user_id or not content.strip():
            raise ChatValidationError()

        rate_limit = await self.get_rate_limit(user_id)
        if not rate_limit.allowed:
            raise RateLimitExceeded(rate_limit)

        conversation_id = await self._resolve_conversation(user_id, content, request)

        try:
            user_message = await self._run(self._repo.save_message, self._db, conversation_id, "user", content)
        except Exception as e:
            logger.exception("Saving user message failed (conversation %s)", conversation_id)
            raise ChatRelayError("Failed to save message") from e
        user_out = message_to_dict(user_message)

        system_prompt = await self._run(build_system_prompt, self._db, user_id, request.context)
        prompt = build_full_prompt(system_prompt, content)

        try:
            reply = await self._call_model(prompt, abort)
        except ChatCancelled:
            logger.info("Chat turn cancelled by caller (conversation %s)", conversation_id)
            raise
        except Exception as e:
            logger.exception("AI chat failed (conversation %s)", conversation_id)
            raise ChatRelayError(MODEL_UNAVAILABLE_MESSAGE) from e

        try:
            ai_message = await self._run(
                self._repo.save_message, self._db, conversation_id, "assistant", reply.content
            )
        except Exception as e:
            logger.exception("Saving assistant message failed (conversation %s)", conversation_id)
            raise ChatRelayError("Failed to save assistant reply") from e
        ai_out = message_to_dict(ai_message)

        await self._record_usage(user_id, reply.tokens)

        if self._cache:
            await self._cache.append_messages(conversation_id, [user_out, ai_out])

        return ChatResponse(
            success=True,
            conversation_id=conversation_id,
            user_message=ChatMessageOut(**user_out),
            ai_message=ChatMessageOut(**ai_out),
            rate_limit=await self.get_rate_limit(user_id),
        )

    async def _resolve_conversation(self, user_id: str, content: str, request: ChatRequest) -> str:
        if request.conversation_id:
            conv = await self._run(self._repo.get_conversation, self._db, user_id, request.conversation_id)
            if conv is None:
                raise ConversationNotFound(request.conversation_id)
            return conv.id
        try:
            conv = await self._run(
                self._repo.create_conversation, self._db, user_id, content, request.context or {}
            )
        except Exception as e:
            logger.exception("Creating conversation failed for user %s", user_id)
            raise ChatRelayError("Failed to create conversation") from e
        return conv.id

    async def _record_usage(self, user_id: str, tokens: int) -> None:
        """Best-effort: the user already has an answer, so bookkeeping never fails the turn."""
        try:
            await self._run(increment_usage, self._db, user_id, tokens)
        except Exception as e:
            logger.warning("Usage stats update failed, but continuing: %s", e)
            try:
                await self._run(self._db.rollback)
            except Exception as rollback_error:
                logger.warning("Rollback after usage stats failure failed: %s", rollback_error)

    async def _call_model(self, prompt: str, abort: asyncio.Event | None) -> ModelReply:
        """Await the model; if `abort` fires first, cancel the outbound call and raise ChatCancelled."""
        if abort is None:
            return await generate_chat_reply(prompt)

        call = asyncio.ensure_future(generate_chat_reply(prompt))
        aborted = asyncio.ensure_future(abort.wait())
        try:
            await asyncio.wait({call, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (call, aborted):
                if not task.done():
                    task.cancel()
        if call.done() and not call.cancelled():
            return call.result()
        raise ChatCancelled()
