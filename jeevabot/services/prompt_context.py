"""
System prompt for the assistant: fixed persona plus optional enrichment sections.
Each section (lesson, performance, recommendations) is read independently; a failure or
missing data drops that section only. Sync: call from a worker thread.
"""
import logging
from typing import Any, Callable

from sqlalchemy import desc
from sqlalchemy.orm import Session

from jeevabot.models.learning import Lesson, Module, Topic
from jeevabot.models.performance import AiRecommendation, MockSession, UserAnalytics

logger = logging.getLogger(__name__)

RECENT_EXAM_RESULTS = 5
RECENT_RECOMMENDATIONS = 3

SYSTEM_PERSONA = """You are JeevaBot, an AI assistant helping Indian nurses prepare for the UK NMC CBT exam.

Your role:
- Answer questions about UK nursing practices, NMC Code, and clinical scenarios
- Explain medical concepts clearly and professionally
- Provide exam preparation tips and strategies
- Be supportive and encouraging

Guidelines:
- Keep responses concise and focused (max 200 words unless asked for detail)
- Use simple, professional language
- Reference UK standards and NMC Code when relevant
- If unsure, say so and suggest where to find accurate information

"""


def _format_number(value: float) -> str:
    return f"{value:.1f}".rstrip("0").rstrip(".")


def _safe_read(db: Session, name: str, read: Callable[[], Any]) -> Any:
    """Run one enrichment query; on failure log, roll back and return None."""
    try:
        return read()
    except Exception as e:
        logger.warning("Prompt context '%s' skipped: %s", name, e)
        # Leave the session usable for the next read and the rest of the turn
        db.rollback()
        return None


def lesson_section(db: Session, lesson_id: str) -> str | None:
    """Lesson, topic and module titles for the lesson the user has open."""
    lesson = db.query(Lesson).filter(Lesson.id == lesson_id).first()
    if lesson is None:
        return None
    lines = [f'Current Lesson: "{lesson.title}"']
    topic_id = lesson.topic_id
    topic = None
    if topic_id:
        topic = _safe_read(db, "topic", lambda: db.query(Topic).filter(Topic.id == topic_id).first())
    if topic is not None:
        lines.append(f'Topic: "{topic.title}"')
        module_id = topic.module_id
        module = None
        if module_id:
            module = _safe_read(db, "module", lambda: db.query(Module).filter(Module.id == module_id).first())
        if module is not None:
            lines.append(f'Module: "{module.title}"')
    return "\n" + "\n".join(lines) + "\n"


def _recent_scores(db: Session, user_id: str) -> list[float]:
    return [
        row.score_percentage
        for row in db.query(MockSession.score_percentage)
        .filter(
            MockSession.user_id == user_id,
            MockSession.completed_at.isnot(None),
            MockSession.score_percentage.isnot(None),
        )
        .order_by(desc(MockSession.completed_at))
        .limit(RECENT_EXAM_RESULTS)
        .all()
    ]


def _latest_analytics(db: Session, user_id: str) -> dict:
    snapshot = (
        db.query(UserAnalytics)
        .filter(UserAnalytics.user_id == user_id)
        .order_by(desc(UserAnalytics.created_at))
        .first()
    )
    return (snapshot.analytics_data or {}) if snapshot else {}


def performance_section(db: Session, user_id: str) -> str | None:
    """Recent mock exam average and the latest analytics snapshot, each read on its own."""
    lines = []

    scores = _safe_read(db, "mock exams", lambda: _recent_scores(db, user_id)) or []
    if scores:
        average = sum(scores) / len(scores)
        lines.append(f"Recent mock exam average: {_format_number(average)}% (last {len(scores)} exams)")

    data = _safe_read(db, "analytics", lambda: _latest_analytics(db, user_id)) or {}
    if data.get("lessons_completed") is not None:
        lines.append(f"Lessons completed: {data['lessons_completed']}")
    if data.get("average_score") is not None:
        lines.append(f"Overall average score: {_format_number(float(data['average_score']))}%")
    if data.get("current_streak") is not None:
        lines.append(f"Current study streak: {data['current_streak']} days")

    if not lines:
        return None
    return "\nStudent performance:\n" + "\n".join(f"- {line}" for line in lines) + "\n"



def recommendation_section(db: Session, user_id: str) -> str | None:
    """Reasons from the latest study recommendations as a numbered list."""
    rows = (
        db.query(AiRecommendation)
        .filter(AiRecommendation.user_id == user_id)
        .order_by(desc(AiRecommendation.created_at))
        .limit(RECENT_RECOMMENDATIONS)
        .all()
    )
    reasons = [
        (r.recommendation_data or {}).get("reason")
        for r in rows
    ]
    reasons = [reason for reason in reasons if reason]
    if not reasons:
        return None
    items = "\n".join(f"{i}. {reason}" for i, reason in enumerate(reasons, start=1))
    return f"\nCurrent study recommendations:\n{items}\n"


def build_system_prompt(db: Session, user_id: str, context: dict[str, Any] | None = None) -> str:
    """Persona followed by whichever enrichment sections produced text."""
    context = context or {}
    lesson_id = context.get("lessonId")

    sections = []
    if lesson_id:
        sections.append(_safe_read(db, "lesson", lambda: lesson_section(db, str(lesson_id))))
    sections.append(_safe_read(db, "performance", lambda: performance_section(db, user_id)))
    sections.append(_safe_read(db, "recommendations", lambda: recommendation_section(db, user_id)))

    return SYSTEM_PERSONA + "".join(s for s in sections if s)


def build_full_prompt(system_prompt: str, content: str) -> str:
    return f"{system_prompt}\n\nUser: {content}\n\nAssistant:"
