"""Tests for services/prompt_context.py — persona + fail-soft enrichment sections."""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import patch

from jeevabot.models.learning import Lesson, Module, Topic
from jeevabot.models.performance import AiRecommendation, MockSession, UserAnalytics
from jeevabot.services.prompt_context import (
    SYSTEM_PERSONA,
    build_full_prompt,
    build_system_prompt,
    lesson_section,
    performance_section,
    recommendation_section,
)


def _seed_lesson(db):
    module = Module(id="mod-1", title="Professional Values")
    topic = Topic(id="topic-1", module_id="mod-1", title="The NMC Code")
    lesson = Lesson(id="lesson-1", topic_id="topic-1", title="Prioritise People")
    db.add_all([module, topic, lesson])
    db.commit()


def _query_failing_for(db, entity):
    """Make db.query(entity) raise while every other query runs normally."""
    real_query = db.query

    def query(*entities, **kwargs):
        if entities and entities[0] is entity:
            raise RuntimeError("table unavailable")
        return real_query(*entities, **kwargs)

    return patch.object(db, "query", side_effect=query)


class TestLessonSection:
    def test_full_hierarchy(self, db):
        _seed_lesson(db)
        text = lesson_section(db, "lesson-1")
        assert 'Current Lesson: "Prioritise People"' in text
        assert 'Topic: "The NMC Code"' in text
        assert 'Module: "Professional Values"' in text

    def test_missing_lesson_gives_nothing(self, db):
        assert lesson_section(db, "no-such-lesson") is None

    def test_unresolved_levels_are_omitted(self, db):
        db.add(Lesson(id="lesson-2", topic_id="gone", title="Orphan Lesson"))
        db.commit()
        text = lesson_section(db, "lesson-2")
        assert 'Current Lesson: "Orphan Lesson"' in text
        assert "Topic:" not in text
        assert "Module:" not in text


class TestPerformanceSection:
    def test_average_of_recent_completed_exams(self, db):
        now = datetime(2026, 1, 10)
        scores = [90.0, 80.0, 70.0, 60.0, 50.0, 10.0]  # the oldest one falls outside the last 5
        for i, score in enumerate(scores):
            db.add(MockSession(user_id="user-1", score_percentage=score, completed_at=now - timedelta(days=i)))
        db.add(MockSession(user_id="user-1", score_percentage=None, completed_at=None))
        db.commit()
        text = performance_section(db, "user-1")
        assert "Recent mock exam average: 70%" in text

    def test_analytics_snapshot_latest_wins(self, db):
        db.add(UserAnalytics(
            user_id="user-1",
            analytics_data={"lessons_completed": 3, "average_score": 50, "current_streak": 1},
            created_at=datetime(2026, 1, 1),
        ))
        db.add(UserAnalytics(
            user_id="user-1",
            analytics_data={"lessons_completed": 12, "average_score": 72.5, "current_streak": 4},
            created_at=datetime(2026, 1, 5),
        ))
        db.commit()
        text = performance_section(db, "user-1")
        assert "Lessons completed: 12" in text
        assert "Overall average score: 72.5%" in text
        assert "Current study streak: 4 days" in text

    def test_no_data_gives_nothing(self, db):
        assert performance_section(db, "user-1") is None


class TestRecommendationSection:
    def test_numbered_reasons_newest_first(self, db):
        for i, reason in enumerate(["Review infection control", "Practise drug calculations"]):
            db.add(AiRecommendation(
                user_id="user-1",
                recommendation_data={"type": "topic", "topic_id": f"t{i}", "reason": reason, "confidence": 0.8},
                created_at=datetime(2026, 1, 1 + i),
            ))
        db.add(AiRecommendation(user_id="user-1", recommendation_data={"type": "topic"}))
        db.commit()
        text = recommendation_section(db, "user-1")
        assert "1. Practise drug calculations" in text
        assert "2. Review infection control" in text

    def test_no_records_gives_nothing(self, db):
        assert recommendation_section(db, "user-1") is None


class TestBuildSystemPrompt:
    def test_persona_only_without_data(self, db):
        assert build_system_prompt(db, "user-1", {}) == SYSTEM_PERSONA

    def test_unknown_lesson_is_skipped(self, db):
        prompt = build_system_prompt(db, "user-1", {"lessonId": "missing"})
        assert "Current Lesson" not in prompt
        assert prompt.startswith("You are JeevaBot")

    def test_sections_are_appended(self, db):
        _seed_lesson(db)
        db.add(AiRecommendation(user_id="user-1", recommendation_data={"reason": "Revise safeguarding"}))
        db.commit()
        prompt = build_system_prompt(db, "user-1", {"lessonId": "lesson-1"})
        assert 'Current Lesson: "Prioritise People"' in prompt
        assert "1. Revise safeguarding" in prompt
        assert "Student performance" not in prompt

    def test_failing_section_does_not_block_others(self, db):
        _seed_lesson(db)
        db.add(AiRecommendation(user_id="user-1", recommendation_data={"reason": "Revise safeguarding"}))
        db.commit()
        with patch(
            "jeevabot.services.prompt_context.performance_section",
            side_effect=RuntimeError("analytics table missing"),
        ):
            prompt = build_system_prompt(db, "user-1", {"lessonId": "lesson-1"})
        assert "Current Lesson" in prompt
        assert "1. Revise safeguarding" in prompt


class TestBuildFullPrompt:
    def test_layout(self):
        assert build_full_prompt("SYSTEM", "What is the NMC Code?") == (
            "SYSTEM\n\nUser: What is the NMC Code?\n\nAssistant:"
        )


class TestPartialFailures:
    def test_topic_lookup_failure_keeps_lesson_line(self, db):
        _seed_lesson(db)
        with _query_failing_for(db, Topic):
            text = lesson_section(db, "lesson-1")
        assert 'Current Lesson: "Prioritise People"' in text
        assert "Topic:" not in text

    def test_module_lookup_failure_keeps_lesson_and_topic(self, db):
        _seed_lesson(db)
        with _query_failing_for(db, Module):
            prompt = build_system_prompt(db, "user-1", {"lessonId": "lesson-1"})
        assert 'Current Lesson: "Prioritise People"' in prompt
        assert 'Topic: "The NMC Code"' in prompt
        assert "Module:" not in prompt

    def test_analytics_failure_keeps_exam_average(self, db):
        db.add(MockSession(user_id="user-1", score_percentage=80.0, completed_at=datetime(2026, 1, 10)))
        db.commit()
        with _query_failing_for(db, UserAnalytics):
            prompt = build_system_prompt(db, "user-1", {})
        assert "Recent mock exam average: 80% (last 1 exams)" in prompt
        assert "Lessons completed" not in prompt

    def test_exam_failure_keeps_analytics(self, db):
        db.add(UserAnalytics(user_id="user-1", analytics_data={"lessons_completed": 7}))
        db.commit()
        with _query_failing_for(db, MockSession.score_percentage):
            prompt = build_system_prompt(db, "user-1", {})
        assert "Lessons completed: 7" in prompt
        assert "Recent mock exam average" not in prompt
