"""
Quota endpoints (no message is sent):
- GET /rate-limit/{user_id} — {allowed, limit, current, remaining} for today
- GET /usage/{user_id} — today's usage meter (messages, tokens, level, estimated cost)
"""
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from jeevabot.database import get_db
from jeevabot.schemas.chat import RateLimitResponse, UsageStatsResponse
from jeevabot.services.rate_limiter import get_rate_limit, get_usage_today

logger = logging.getLogger(__name__)

router = APIRouter(tags=["quota"])

USER_ID_REQUIRED = "User ID is required"


def _user_id_required() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": USER_ID_REQUIRED})


@router.get("/rate-limit", include_in_schema=False)
@router.get("/rate-limit/", include_in_schema=False)
def rate_limit_missing_user():
    return _user_id_required()


@router.get("/rate-limit/{user_id}", response_model=RateLimitResponse)
def rate_limit(user_id: str, db: Session = Depends(get_db)):
    """Remaining AI messages today for a user. Read-only."""
    if not user_id.strip():
        return _user_id_required()
    try:
        return RateLimitResponse(rate_limit=get_rate_limit(db, user_id))
    except Exception as e:
        logger.exception("Rate limit function error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(e) or "An error occurred"},
        )


@router.get("/usage", include_in_schema=False)
@router.get("/usage/", include_in_schema=False)
def usage_missing_user():
    return _user_id_required()


@router.get("/usage/{user_id}", response_model=UsageStatsResponse)
def usage_today(user_id: str, db: Session = Depends(get_db)):
    """Today's message and token usage for the chat usage meter."""
    if not user_id.strip():
        return _user_id_required()
    return get_usage_today(db, user_id)
