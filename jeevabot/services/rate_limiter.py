"""
Daily quota for the AI assistant.
- 50 assistant-answered messages per user per calendar day (UTC)
- Counter lives in ai_usage_stats keyed by (user_id, date); a new date means a fresh quota
- Increment is a single upsert so concurrent turns cannot lose updates
"""
import logging
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jeevabot.database import utcnow
from jeevabot.models.ai_usage_stats import AiUsageStats
from jeevabot.schemas.chat import EstimatedCost, RateLimitStatus, UsageStatsResponse

logger = logging.getLogger(__name__)

MAX_DAILY_MESSAGES = 50

# Usage meter thresholds (messages per day)
USAGE_WARNING_AT = 30
USAGE_DANGER_AT = 45

# Accounting cost per token (USD), stored in ai_usage_stats.total_cost
COST_PER_TOKEN = 0.000001

# Meter estimate: 40/60 input/output split, USD per 1K tokens
ESTIMATE_INPUT_SHARE = 0.4
ESTIMATE_OUTPUT_SHARE = 0.6
ESTIMATE_INPUT_PER_1K = 0.00025
ESTIMATE_OUTPUT_PER_1K = 0.00075


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def _stats_today(db: Session, user_id: str) -> AiUsageStats | None:
    return db.query(AiUsageStats).filter(
        AiUsageStats.user_id == user_id,
        AiUsageStats.date == today_utc(),
    ).first()


def count_messages_today(db: Session, user_id: str) -> int:
    """Today's message count; 0 when there is no row yet. Query errors propagate."""
    row = db.query(AiUsageStats.message_count).filter(
        AiUsageStats.user_id == user_id,
        AiUsageStats.date == today_utc(),
    ).first()
    return (row.message_count or 0) if row else 0


def build_status(current: int, limit: int = MAX_DAILY_MESSAGES) -> RateLimitStatus:
    return RateLimitStatus(
        allowed=current < limit,
        limit=limit,
        current=current,
        remaining=max(0, limit - current),
    )


def get_rate_limit(db: Session, user_id: str) -> RateLimitStatus:
    """Pure read. Raises ValueError for an empty user id so callers can answer 400."""
    if not user_id:
        raise ValueError("User ID is required")
    return build_status(count_messages_today(db, user_id))


def _dialect_name(db: Session) -> str:
    return db.get_bind().dialect.name


def _update_usage_row(db: Session, user_id: str, day: date, tokens: int, cost: float, now: datetime) -> int:
    """Relative UPDATE of an existing counter row; returns the number of rows matched."""
    result = db.execute(
        update(AiUsageStats)
        .where(AiUsageStats.user_id == user_id, AiUsageStats.date == day)
        .values(
            message_count=AiUsageStats.message_count + 1,
            total_tokens=AiUsageStats.total_tokens + tokens,
            total_cost=AiUsageStats.total_cost + cost,
            updated_at=now,
        )
    )
    return result.rowcount


def increment_usage(db: Session, user_id: str, tokens: int) -> None:
    """
    Add one message and `tokens` to today's counter, creating the row on the first turn of the day.
    PostgreSQL and SQLite use INSERT .. ON CONFLICT DO UPDATE; other backends fall back to a
    relative UPDATE, then an INSERT when no row matched. If a concurrent first turn wins that
    INSERT, the unique (user_id, date) constraint rejects ours and the UPDATE is retried.
    """
    tokens = max(0, int(tokens or 0))
    cost = tokens * COST_PER_TOKEN
    today = today_utc()
    now = utcnow()
    dialect = _dialect_name(db)

    if dialect in ("postgresql", "sqlite"):
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        stmt = insert(AiUsageStats).values(
            id=str(uuid.uuid4()),
            user_id=user_id,
            date=today,
            message_count=1,
            total_tokens=tokens,
            total_cost=cost,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AiUsageStats.user_id, AiUsageStats.date],
            set_={
                "message_count": AiUsageStats.message_count + 1,
                "total_tokens": AiUsageStats.total_tokens + tokens,
                "total_cost": AiUsageStats.total_cost + cost,
                "updated_at": now,
            },
        )
        db.execute(stmt)
        db.commit()
        return

    if _update_usage_row(db, user_id, today, tokens, cost, now) == 0:
        db.add(AiUsageStats(
            user_id=user_id,
            date=today,
            message_count=1,
            total_tokens=tokens,
            total_cost=cost,
        ))
        try:
            db.commit()
            return
        except IntegrityError:
            db.rollback()
            logger.info("Usage row for %s on %s created concurrently; updating it instead", user_id, today)
            _update_usage_row(db, user_id, today, tokens, cost, now)
    db.commit()


def _usage_level(message_count: int) -> str:
    if message_count >= USAGE_DANGER_AT:
        return "danger"
    if message_count >= USAGE_WARNING_AT:
        return "warning"
    return "safe"


def get_usage_today(db: Session, user_id: str) -> UsageStatsResponse:
    """Today's counters plus the meter fields the app shows next to the chat box."""
    if not user_id:
        raise ValueError("User ID is required")
    row = _stats_today(db, user_id)
    message_count = row.message_count if row else 0
    total_tokens = row.total_tokens if row else 0

    input_cost = total_tokens * ESTIMATE_INPUT_SHARE * ESTIMATE_INPUT_PER_1K / 1000
    output_cost = total_tokens * ESTIMATE_OUTPUT_SHARE * ESTIMATE_OUTPUT_PER_1K / 1000
    return UsageStatsResponse(
        date=today_utc().isoformat(),
        message_count=message_count,
        total_tokens=total_tokens,
        max_messages=MAX_DAILY_MESSAGES,
        is_approaching_limit=message_count >= USAGE_DANGER_AT,
        is_at_limit=message_count >= MAX_DAILY_MESSAGES,
        usage_level=_usage_level(message_count),
        estimated_cost=EstimatedCost(
            input=input_cost,
            output=output_cost,
            total=input_cost + output_cost,
        ),
    )
