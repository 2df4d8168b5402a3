"""
Progress statistics over question history.

Partial answers count as half a correct answer everywhere in here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from learnsync.core.constants import topic_key
from learnsync.core.mastery import parse_timestamp


@dataclass
class TopicStats:
    subject: str
    topic: str
    correct: float = 0.0
    total: int = 0
    best_score: float = 0.0  # Best running percentage seen


@dataclass
class ProgressStats:
    """Dashboard summary of a learner's history."""

    total_questions: int = 0
    accuracy_rate: float = 0.0  # Percent, one decimal
    avg_time: int = 0
    topic_stats: list[TopicStats] = field(default_factory=list)
    streak: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_questions": self.total_questions,
            "accuracy_rate": self.accuracy_rate,
            "avg_time": self.avg_time,
            "topic_stats": [vars(t).copy() for t in self.topic_stats],
            "streak": self.streak,
        }


def _credit(result: str | None) -> float:
    if result == "correct":
        return 1.0
    if result == "partial":
        return 0.5
    return 0.0


def _entry_date(entry: Mapping[str, Any]) -> date | None:
    stamp = parse_timestamp(entry.get("created_at") or entry.get("timestamp"))
    return stamp.astimezone().date() if stamp else None


def compute_daily_streak(days: Iterable[date], today: date | None = None) -> int:
    """
    Consecutive practice days ending today or yesterday.

    Days are local calendar days. A streak that last extended to the day
    before yesterday is broken.
    """
    today = today or date.today()
    unique = sorted(set(days), reverse=True)
    if not unique or unique[0] not in (today, today - timedelta(days=1)):
        return 0

    streak = 1
    for previous, current in zip(unique, unique[1:]):
        if (previous - current).days != 1:
            break
        streak += 1
    return streak


def compute_progress_stats(
    history: Iterable[Mapping[str, Any]], today: date | None = None
) -> ProgressStats:
    """
    Summarize question history.

    Args:
        history: History records, any order
        today: Reference day for the streak (defaults to the local date)

    Returns:
        ProgressStats
    """
    entries = list(history)
    total = len(entries)
    if total == 0:
        return ProgressStats()

    credited = sum(_credit(e.get("result")) for e in entries)
    time_taken = sum(int(e.get("time_taken") or 0) for e in entries)

    topics: dict[str, TopicStats] = {}
    for entry in entries:
        key = topic_key(entry.get("subject", ""), entry.get("topic", ""))
        stats = topics.get(key)
        if stats is None:
            stats = topics[key] = TopicStats(subject=entry.get("subject", ""), topic=entry.get("topic", ""))
        stats.total += 1
        stats.correct += _credit(entry.get("result"))
        stats.best_score = max(stats.best_score, stats.correct / stats.total * 100)

    days = [d for d in (_entry_date(e) for e in entries) if d is not None]

    return ProgressStats(
        total_questions=total,
        accuracy_rate=round(credited / total * 100, 1),
        avg_time=round(time_taken / total),
        topic_stats=list(topics.values()),
        streak=compute_daily_streak(days, today=today),
    )
