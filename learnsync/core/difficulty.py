"""
Difficulty levels.

Total order easy < medium < hard < extreme. Stepping past either end is
clamped, never wrapped.
"""

from __future__ import annotations

from enum import Enum


class DifficultyLevel(str, Enum):
    """Ordered question difficulty."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXTREME = "extreme"

    @classmethod
    def ordered(cls) -> list[DifficultyLevel]:
        """All levels from easiest to hardest."""
        return [cls.EASY, cls.MEDIUM, cls.HARD, cls.EXTREME]

    @classmethod
    def parse(cls, value: str | DifficultyLevel) -> DifficultyLevel:
        """
        Coerce a raw value into a level.

        Raises:
            ValueError: If the value is not a known level
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown difficulty level: {value!r}") from None

    @property
    def rank(self) -> int:
        return DifficultyLevel.ordered().index(self)

    @property
    def is_hardest(self) -> bool:
        return self is DifficultyLevel.EXTREME

    @property
    def is_easiest(self) -> bool:
        return self is DifficultyLevel.EASY

    def harder(self) -> DifficultyLevel:
        """Next harder level, or self at the top."""
        levels = DifficultyLevel.ordered()
        return levels[min(self.rank + 1, len(levels) - 1)]

    def easier(self) -> DifficultyLevel:
        """Next easier level, or self at the bottom."""
        return DifficultyLevel.ordered()[max(self.rank - 1, 0)]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, DifficultyLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, DifficultyLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, DifficultyLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, DifficultyLevel):
            return NotImplemented
        return self.rank >= other.rank

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.title()
