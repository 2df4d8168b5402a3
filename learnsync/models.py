"""
Request models accepted by the service façade.

These arrive from the view layer, so they are validated with Pydantic
before anything touches a store.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from learnsync.core.difficulty import DifficultyLevel

AnswerResult = Literal["correct", "partial", "incorrect", "skipped"]


class QuestionHistoryEntry(BaseModel):
    """One answered question, as appended to history."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, validate_default=True)

    subject: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    question_style: str | None = Field(None, alias="questionStyle")
    focus_mode: str | None = Field(None, alias="focusMode")
    question: str | None = None
    question_type: str | None = Field(None, alias="questionType")
    user_answer: str | None = Field(None, alias="userAnswer")
    correct_answer: str | None = Field(None, alias="correctAnswer")
    explanation: str | None = None
    result: AnswerResult
    score: float = Field(0.0, ge=0.0, le=1.0)
    time_taken: int | None = Field(None, ge=0, alias="timeTaken", description="Seconds")

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=False)


class HistoryFilters(BaseModel):
    """Optional filters for history reads."""

    subject: str | None = None
    topic: str | None = None
    result: AnswerResult | None = None
    limit: int | None = Field(None, ge=1)

    def equality_filters(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in (("subject", self.subject), ("topic", self.topic), ("result", self.result))
            if value is not None
        }
