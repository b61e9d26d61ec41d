"""
Gemini service for the JeevaBot assistant.
Uses google-genai: Gemini API key when configured, otherwise Vertex AI.
One prompt string in, one ModelReply (text + total token count) out.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jeevabot.config import get_settings

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I could not generate a response."

VERTEX_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

# Built on first call so importing this module never needs credentials
_gemini_client = None


class AIServiceError(RuntimeError):
    """The completion endpoint refused the request or answered with an error status."""


@dataclass(frozen=True)
class ModelReply:
    content: str
    tokens: int = 0


def _vertex_credentials():
    """Service account from VERTEX_CREDENTIALS_PATH, or None to fall back to ADC."""
    path = get_settings().vertex_credentials_path
    if not path or not Path(path).is_file():
        return None
    from google.oauth2 import service_account

    return service_account.Credentials.from_service_account_file(path, scopes=VERTEX_SCOPES)


def _get_client():
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    from google import genai

    settings = get_settings()
    if settings.gemini_api_key:
        _gemini_client = genai.Client(api_key=settings.gemini_api_key)
    elif settings.vertex_project_id:
        _gemini_client = genai.Client(
            vertexai=True,
            project=settings.vertex_project_id,
            location=settings.vertex_location,
            credentials=_vertex_credentials(),
        )
    else:
        raise RuntimeError("GEMINI_API_KEY not configured")
    return _gemini_client


def _token_count(usage: Any, key: str) -> int:
    """Get token count from usage_metadata (dict or Pydantic model)."""
    if usage is None:
        return 0
    if isinstance(usage, dict):
        return int(usage.get(key) or 0)
    return int(getattr(usage, key, 0) or 0)


def _reply_text(response: Any) -> str:
    """Text of the first part of the first candidate, or FALLBACK_REPLY."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return FALLBACK_REPLY
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    if not parts:
        return FALLBACK_REPLY
    return getattr(parts[0], "text", None) or FALLBACK_REPLY


async def generate_chat_reply(prompt: str) -> ModelReply:
    """
    Single-turn completion for an already assembled prompt.
    Raises AIServiceError on an API error status; other failures (network, config) propagate as-is.
    Cancelling the awaiting task cancels the outbound HTTP call.
    """
    client = _get_client()
    settings = get_settings()
    from google.genai import errors
    from google.genai.types import GenerateContentConfig

    logger.info("Calling Gemini with model: %s", settings.gemini_model)
    try:
        response = await client.aio.models.generate_content(
            model=settings.gemini_model,
            contents=prompt,
            config=GenerateContentConfig(
                temperature=settings.chat_temperature,
                top_k=settings.chat_top_k,
                top_p=settings.chat_top_p,
                max_output_tokens=settings.chat_max_output_tokens,
            ),
        )
    except errors.APIError as e:
        raise AIServiceError(f"Gemini API error: {e}") from e

    content = _reply_text(response)
    tokens = _token_count(getattr(response, "usage_metadata", None), "total_token_count")
    logger.info("Gemini response received, tokens: %s, content length: %s", tokens, len(content))
    return ModelReply(content=content, tokens=tokens)
