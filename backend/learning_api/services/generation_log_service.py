"""
Generation Log Store

Append-only audit trail of problem generation attempts plus the read-side
aggregates built on it:
1. append: one row per attempt (success or error)
2. stats_for_user: per-user totals and breakdowns over a trailing window
3. global_stats: the same unscoped, plus user/endpoint/daily activity
4. list_for_user: reverse-chronological page of log metadata
5. get_by_id: single entry, optionally scoped to its owner

The store opens one session per operation from the session factory it is
given, so it can be shared across requests.
"""

import logging
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from learning_api.database import SessionLocal
from learning_api.models.models import GenerationLog
from learning_api.services.generation_errors import NotFoundError
from learning_api.services.generation_types import GenerationLogEntry

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_SIZE = 10

# Columns exposed by list pages; raw text and payloads stay out of listings
LIST_FIELDS = (
    "id", "subject", "grade", "question_type", "question_count", "difficulty",
    "status", "error_kind", "total_tokens", "response_time_ms", "created_at",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def log_summary(log: GenerationLog) -> Dict[str, Any]:
    """Metadata-only view of a log row."""
    data = {field: getattr(log, field) for field in LIST_FIELDS}
    data["created_at"] = _iso(log.created_at)
    return data


def log_detail(log: GenerationLog) -> Dict[str, Any]:
    """Full view of a log row, including payloads and raw model output."""
    data = log_summary(log)
    data.update({
        "user_id": log.user_id,
        "request_data": log.request_data,
        "response_data": log.response_data,
        "raw_response": log.raw_response,
        "model_used": log.model_used,
        "prompt_tokens": log.prompt_tokens,
        "completion_tokens": log.completion_tokens,
        "tokens_estimated": bool(log.tokens_estimated),
        "error_message": log.error_message,
        "api_endpoint": log.api_endpoint,
        "user_agent": log.user_agent,
        "ip_address": log.ip_address,
        "include_explanation": log.include_explanation,
    })
    return data


def _average_response_time(logs: List[GenerationLog]) -> int:
    timed = [log.response_time_ms for log in logs if log.response_time_ms is not None]
    if not timed:
        return 0
    return round(sum(timed) / len(timed))


def _breakdown(values) -> Dict[str, int]:
    return dict(Counter("unknown" if v is None else str(v) for v in values))


class GenerationLogStore:
    """
    SQLAlchemy-backed generation log.

    Args:
        session_factory: Zero-argument callable returning a Session
            (default: SessionLocal)
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    # =========================================================================
    # Write side
    # =========================================================================

    def append(self, entry: GenerationLogEntry) -> str:
        """
        Insert one log row for a finished attempt.

        Returns:
            The id assigned to the new row
        """
        request = entry.request
        log = GenerationLog(
            user_id=entry.user_id,
            request_data=request.to_dict(),
            response_data=entry.problem_set.to_dict() if entry.problem_set else None,
            raw_response=entry.raw_response,
            model_used=entry.model,
            prompt_tokens=entry.usage.prompt_tokens,
            completion_tokens=entry.usage.completion_tokens,
            total_tokens=entry.usage.total_tokens,
            tokens_estimated=entry.usage.estimated,
            response_time_ms=entry.response_time_ms,
            status=entry.status,
            error_kind=entry.error_kind,
            error_message=entry.error_message,
            api_endpoint=entry.context.api_endpoint,
            user_agent=entry.context.user_agent,
            ip_address=entry.context.ip_address,
            subject=request.subject,
            grade=request.grade,
            question_type=request.question_type,
            question_count=request.question_count,
            difficulty=request.difficulty,
            include_explanation=request.include_explanation,
        )
        if entry.created_at is not None:
            log.created_at = entry.created_at

        with self._session() as db:
            try:
                db.add(log)
                db.commit()
                db.refresh(log)
            except Exception:
                db.rollback()
                raise
            log_id = log.id

        logger.info(
            "Saved generation log %s (status=%s, user=%s)",
            log_id, entry.status, entry.user_id or "anonymous"
        )
        return log_id

    # =========================================================================
    # Read side
    # =========================================================================

    def stats_for_user(self, user_id: str, days: int = 30) -> Dict[str, Any]:
        """
        Aggregate a user's attempts over the trailing `days` days.

        Returns:
            Dict with period and stats (totals, breakdowns, recent_activity)
        """
        since = datetime.utcnow() - timedelta(days=days)
        with self._session() as db:
            logs = db.query(GenerationLog).filter(
                GenerationLog.user_id == user_id,
                GenerationLog.created_at >= since
            ).order_by(GenerationLog.created_at.desc()).all()

            stats = {
                "total_generations": len(logs),
                "total_tokens_used": sum(log.total_tokens or 0 for log in logs),
                "average_response_time": _average_response_time(logs),
                "success_count": sum(1 for log in logs if log.status == "success"),
                "error_count": sum(1 for log in logs if log.status == "error"),
                "subject_breakdown": _breakdown(log.subject for log in logs),
                "grade_breakdown": _breakdown(log.grade for log in logs),
                "difficulty_breakdown": _breakdown(log.difficulty for log in logs),
                "recent_activity": [log_summary(log) for log in logs[:RECENT_ACTIVITY_SIZE]],
            }

        return {"period_days": days, "stats": stats}

    def global_stats(self, days: int = 7, limit: int = 100) -> Dict[str, Any]:
        """
        Aggregate the most recent `limit` attempts of all users within `days` days.

        Adds success_rate (percent), unique_users, anonymous_generations,
        api_endpoint_usage and daily_activity ({date: {count, tokens}}).
        """
        since = datetime.utcnow() - timedelta(days=days)
        with self._session() as db:
            logs = db.query(GenerationLog).filter(
                GenerationLog.created_at >= since
            ).order_by(GenerationLog.created_at.desc()).limit(limit).all()

            total = len(logs)
            success_count = sum(1 for log in logs if log.status == "success")

            daily_activity: Dict[str, Dict[str, int]] = {}
            for log in logs:
                day = daily_activity.setdefault(
                    log.created_at.date().isoformat(), {"count": 0, "tokens": 0}
                )
                day["count"] += 1
                day["tokens"] += log.total_tokens or 0

            stats = {
                "total_generations": total,
                "total_tokens_used": sum(log.total_tokens or 0 for log in logs),
                "average_response_time": _average_response_time(logs),
                "success_count": success_count,
                "error_count": total - success_count,
                "success_rate": round(success_count / total * 100) if total else 0,
                "unique_users": len({log.user_id for log in logs if log.user_id}),
                "anonymous_generations": sum(1 for log in logs if not log.user_id),
                "subject_breakdown": _breakdown(log.subject for log in logs),
                "grade_breakdown": _breakdown(log.grade for log in logs),
                "difficulty_breakdown": _breakdown(log.difficulty for log in logs),
                "api_endpoint_usage": _breakdown(log.api_endpoint for log in logs),
                "daily_activity": daily_activity,
                "recent_activity": [log_summary(log) for log in logs[:RECENT_ACTIVITY_SIZE]],
            }

        return {"period_days": days, "stats": stats}

    def list_for_user(self, user_id: str, limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        """Newest-first page of a user's log metadata, with the total for pagination."""
        with self._session() as db:
            total = db.query(func.count(GenerationLog.id)).filter(
                GenerationLog.user_id == user_id
            ).scalar() or 0

            logs = db.query(GenerationLog).filter(
                GenerationLog.user_id == user_id
            ).order_by(
                GenerationLog.created_at.desc(), GenerationLog.id.desc()
            ).offset(offset).limit(limit).all()

            items = [log_summary(log) for log in logs]

        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def get_by_id(self, log_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch one log entry.

        When user_id is given, entries owned by anyone else are reported
        exactly like missing ones.

        Raises:
            NotFoundError: Missing, or not owned by user_id
        """
        with self._session() as db:
            query = db.query(GenerationLog).filter(GenerationLog.id == log_id)
            if user_id is not None:
                query = query.filter(GenerationLog.user_id == user_id)

            log = query.first()
            if log is None:
                raise NotFoundError()

            return log_detail(log)
