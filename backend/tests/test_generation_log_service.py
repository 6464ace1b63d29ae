"""
Tests for the generation log store.

Tests cover:
- Append (ids, stored columns)
- Per-user stats over a trailing window
- Global stats (success rate, users, endpoints, daily buckets)
- Pagination
- Owner-scoped lookup (missing and not-owned look the same)
"""

import pytest
from datetime import datetime, timedelta

from learning_api.services.generation_errors import NotFoundError
from learning_api.services.generation_log_service import GenerationLogStore
from learning_api.services.generation_types import (
    GenerationLogEntry,
    GenerationRequest,
    RequestContext,
    TokenUsage,
)
from learning_api.services.problem_validator import validate_problem_set

from tests.mocks import make_problem_json


def _request(subject="English", grade=3, difficulty="hard", count=2) -> GenerationRequest:
    return GenerationRequest(
        subject=subject, grade=grade, question_type="curriculum",
        question_count=count, difficulty=difficulty,
    )


def _entry(
    user_id="user-1",
    status="success",
    subject="English",
    grade=3,
    difficulty="hard",
    tokens=100,
    response_time_ms=1000,
    endpoint="/api/generate-problems",
    days_ago=0,
    created_at=None,
) -> GenerationLogEntry:
    request = _request(subject, grade, difficulty)
    problem_set = validate_problem_set(make_problem_json(2), request) if status == "success" else None
    return GenerationLogEntry(
        request=request,
        status=status,
        model="gpt-4o-mini",
        user_id=user_id,
        problem_set=problem_set,
        raw_response=make_problem_json(2),
        usage=TokenUsage(prompt_tokens=10, completion_tokens=tokens - 10, total_tokens=tokens),
        response_time_ms=response_time_ms,
        error_kind=None if status == "success" else "server_error",
        error_message=None if status == "success" else "boom",
        context=RequestContext(api_endpoint=endpoint, user_agent="pytest", ip_address="127.0.0.1"),
        created_at=created_at or datetime.utcnow() - timedelta(days=days_ago),
    )


class TestAppend:

    @pytest.mark.unit
    def test_append_returns_unique_ids(self, log_store: GenerationLogStore):
        first = log_store.append(_entry())
        second = log_store.append(_entry())

        assert first and second
        assert first != second

    @pytest.mark.unit
    def test_append_stores_request_and_response(self, log_store: GenerationLogStore):
        log_id = log_store.append(_entry())

        log = log_store.get_by_id(log_id)

        assert log["request_data"]["subject"] == "English"
        assert log["request_data"]["question_count"] == 2
        assert len(log["response_data"]["problems"]) == 2
        assert log["raw_response"] == make_problem_json(2)
        assert log["model_used"] == "gpt-4o-mini"
        assert log["total_tokens"] == 100
        assert log["user_agent"] == "pytest"
        assert log["status"] == "success"

    @pytest.mark.unit
    def test_append_error_entry(self, log_store: GenerationLogStore):
        log_id = log_store.append(_entry(status="error", user_id=None))

        log = log_store.get_by_id(log_id)

        assert log["status"] == "error"
        assert log["error_kind"] == "server_error"
        assert log["error_message"] == "boom"
        assert log["response_data"] is None
        assert log["user_id"] is None

    @pytest.mark.unit
    def test_entry_status_is_checked(self):
        with pytest.raises(ValueError):
            _entry(status="cancelled")


class TestUserStats:

    @pytest.mark.unit
    def test_totals_and_breakdowns(self, log_store: GenerationLogStore):
        log_store.append(_entry(subject="English", grade=3, difficulty="hard", tokens=100, response_time_ms=1000))
        log_store.append(_entry(subject="Math", grade=3, difficulty="easy", tokens=200, response_time_ms=2000))
        log_store.append(_entry(subject="Math", grade=5, difficulty="easy", status="error", tokens=50, response_time_ms=3001))
        log_store.append(_entry(user_id="someone-else", subject="Science"))

        result = log_store.stats_for_user("user-1", days=30)
        stats = result["stats"]

        assert result["period_days"] == 30
        assert stats["total_generations"] == 3
        assert stats["total_tokens_used"] == 350
        assert stats["average_response_time"] == 2000
        assert stats["success_count"] == 2
        assert stats["error_count"] == 1
        assert stats["subject_breakdown"] == {"English": 1, "Math": 2}
        assert stats["grade_breakdown"] == {"3": 2, "5": 1}
        assert stats["difficulty_breakdown"] == {"hard": 1, "easy": 2}

    @pytest.mark.unit
    def test_window_excludes_old_entries(self, log_store: GenerationLogStore):
        log_store.append(_entry(days_ago=1))
        log_store.append(_entry(days_ago=10))
        log_store.append(_entry(days_ago=45))

        assert log_store.stats_for_user("user-1", days=7)["stats"]["total_generations"] == 1
        assert log_store.stats_for_user("user-1", days=30)["stats"]["total_generations"] == 2

    @pytest.mark.unit
    def test_recent_activity_is_newest_first_and_capped(self, log_store: GenerationLogStore):
        now = datetime.utcnow()
        ids = [
            log_store.append(_entry(created_at=now - timedelta(minutes=i)))
            for i in range(12)
        ]

        recent = log_store.stats_for_user("user-1")["stats"]["recent_activity"]

        assert len(recent) == 10
        assert [item["id"] for item in recent] == ids[:10]
        assert "raw_response" not in recent[0]

    @pytest.mark.unit
    def test_empty_stats(self, log_store: GenerationLogStore):
        stats = log_store.stats_for_user("nobody")["stats"]

        assert stats["total_generations"] == 0
        assert stats["average_response_time"] == 0
        assert stats["recent_activity"] == []


class TestGlobalStats:

    @pytest.mark.unit
    def test_global_aggregates(self, log_store: GenerationLogStore):
        today = datetime.utcnow().replace(hour=12, minute=0, second=0, microsecond=0)
        yesterday = today - timedelta(days=1)

        log_store.append(_entry(user_id="a", tokens=100, created_at=today))
        log_store.append(_entry(user_id="a", tokens=200, created_at=today))
        log_store.append(_entry(user_id="b", tokens=300, status="error", created_at=yesterday))
        log_store.append(_entry(
            user_id=None, tokens=400, endpoint="/api/generate-problems-stream", created_at=yesterday
        ))

        stats = log_store.global_stats(days=7)["stats"]

        assert stats["total_generations"] == 4
        assert stats["total_tokens_used"] == 1000
        assert stats["success_rate"] == 75
        assert stats["unique_users"] == 2
        assert stats["anonymous_generations"] == 1
        assert stats["api_endpoint_usage"] == {
            "/api/generate-problems": 3,
            "/api/generate-problems-stream": 1,
        }
        assert stats["daily_activity"] == {
            today.date().isoformat(): {"count": 2, "tokens": 300},
            yesterday.date().isoformat(): {"count": 2, "tokens": 700},
        }

    @pytest.mark.unit
    def test_limit_keeps_most_recent(self, log_store: GenerationLogStore):
        now = datetime.utcnow()
        for i in range(5):
            log_store.append(_entry(tokens=10 * (i + 1), created_at=now - timedelta(hours=i)))

        stats = log_store.global_stats(days=7, limit=2)["stats"]

        assert stats["total_generations"] == 2
        assert stats["total_tokens_used"] == 30

    @pytest.mark.unit
    def test_empty_global_stats(self, log_store: GenerationLogStore):
        stats = log_store.global_stats()["stats"]

        assert stats["success_rate"] == 0
        assert stats["daily_activity"] == {}


class TestListAndLookup:

    @pytest.mark.unit
    def test_pagination(self, log_store: GenerationLogStore):
        now = datetime.utcnow()
        ids = [
            log_store.append(_entry(created_at=now - timedelta(minutes=i)))
            for i in range(5)
        ]
        log_store.append(_entry(user_id="someone-else"))

        first = log_store.list_for_user("user-1", limit=2, offset=0)
        last = log_store.list_for_user("user-1", limit=2, offset=4)

        assert first["total"] == 5
        assert [item["id"] for item in first["items"]] == ids[:2]
        assert [item["id"] for item in last["items"]] == ids[4:]
        assert first["limit"] == 2 and last["offset"] == 4

    @pytest.mark.unit
    def test_list_items_are_metadata_only(self, log_store: GenerationLogStore):
        log_store.append(_entry())

        item = log_store.list_for_user("user-1")["items"][0]

        assert "raw_response" not in item
        assert "response_data" not in item
        assert item["subject"] == "English"
        assert item["status"] == "success"

    @pytest.mark.unit
    def test_get_by_id_scoped_to_owner(self, log_store: GenerationLogStore):
        log_id = log_store.append(_entry(user_id="owner"))

        assert log_store.get_by_id(log_id, user_id="owner")["id"] == log_id
        assert log_store.get_by_id(log_id)["id"] == log_id

        with pytest.raises(NotFoundError) as not_owned:
            log_store.get_by_id(log_id, user_id="intruder")
        with pytest.raises(NotFoundError) as missing:
            log_store.get_by_id("does-not-exist", user_id="intruder")

        assert not_owned.value.to_dict() == missing.value.to_dict()
