"""
Stream-shaped delivery of a finished chat turn for clients built around an event stream.
The model is called without streaming, so the whole reply goes out as one terminal chunk,
followed by a completion event carrying the same payload as POST /chat.
"""
import json
from collections.abc import AsyncGenerator

from fastapi.responses import StreamingResponse

from jeevabot.schemas.chat import ChatResponse


def _sse_message(payload: dict) -> str:
    """Proper SSE format: data: {json}\\n\\n"""
    return f"data: {json.dumps(payload)}\n\n"


async def _single_chunk_sse(result: ChatResponse) -> AsyncGenerator[str, None]:
    yield _sse_message({"delta": result.ai_message.content, "done": True})
    yield _sse_message({"event": "complete", **result.model_dump(mode="json", by_alias=True)})


def stream_chat_response(result: ChatResponse) -> StreamingResponse:
    return StreamingResponse(
        _single_chunk_sse(result),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
