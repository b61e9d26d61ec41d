"""
JeevaBot assistant chat:
- POST /chat — one turn (50/day per user); returns both messages and the fresh quota
- POST /chat/stream — same turn delivered as Server-Sent Events (single terminal chunk)

Errors use the app's JSON shape: {"error", "code"?, "rateLimit"?}.
"""
import asyncio
import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jeevabot.config import get_settings
from jeevabot.core.redis import get_chat_cache_dep
from jeevabot.database import get_db
from jeevabot.repositories.chat_repository import ChatRepository
from jeevabot.schemas.chat import ChatRequest, ChatResponse
from jeevabot.services.chat_relay import (
    ChatCancelled,
    ChatRelay,
    ChatRelayError,
    ChatValidationError,
    ConversationNotFound,
    RateLimitExceeded,
)
from jeevabot.services.chat_stream import stream_chat_response
from jeevabot.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

# nginx convention for "client closed request"
STATUS_CLIENT_CLOSED_REQUEST = 499


def _get_chat_relay_dep(
    db: Session = Depends(get_db),
    cache: RedisChatCache | None = Depends(get_chat_cache_dep),
) -> ChatRelay:
    return ChatRelay(db, cache=cache, repository=ChatRepository())


async def _watch_disconnect(request: Request, abort: asyncio.Event) -> None:
    interval = get_settings().disconnect_poll_interval_seconds
    while not abort.is_set():
        if await request.is_disconnected():
            abort.set()
            return
        await asyncio.sleep(interval)


async def _run_turn(request: Request, relay: ChatRelay, body: ChatRequest) -> ChatResponse | JSONResponse:
    """Run the relay with client-disconnect cancellation; map relay errors to JSON responses."""
    abort = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, abort))
    try:
        return await relay.handle(body, abort=abort)
    except ChatValidationError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": e.message})
    except RateLimitExceeded as e:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": e.message, "code": "RATE_LIMIT_EXCEEDED", "rateLimit": e.status.model_dump()},
        )
    except ConversationNotFound as e:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": e.message, "code": "CONVERSATION_NOT_FOUND"},
        )
    except ChatCancelled:
        return JSONResponse(
            status_code=STATUS_CLIENT_CLOSED_REQUEST,
            content={"error": "Request cancelled", "code": "CANCELLED"},
        )
    except ChatRelayError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": e.message, "code": "INTERNAL_ERROR"},
        )
    except Exception:
        logger.exception("Chat function error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An error occurred processing your request", "code": "INTERNAL_ERROR"},
        )
    finally:
        watcher.cancel()
        try:
            await watcher
        except asyncio.CancelledError:
            pass


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    request: Request,
    relay: ChatRelay = Depends(_get_chat_relay_dep),
):
    """Send one message to JeevaBot. Creates a conversation when conversationId is omitted."""
    return await _run_turn(request, relay, body)


@router.post("/chat/stream")
async def chat_stream(
    body: ChatRequest,
    request: Request,
    relay: ChatRelay = Depends(_get_chat_relay_dep),
):
    """
    Same turn as POST /chat, delivered as text/event-stream: one {"delta", "done": true} chunk
    with the full reply, then {"event": "complete", ...}. Errors are plain JSON with their status.
    """
    result = await _run_turn(request, relay, body)
    if isinstance(result, JSONResponse):
        return result
    return stream_chat_response(result)
