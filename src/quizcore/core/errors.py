"""Exception types shared by the quiz engine managers."""

from __future__ import annotations

from typing import Any, List, Optional


class QuizCoreError(Exception):
    """Base class for engine errors."""


class ConfigurationError(QuizCoreError):
    """Raised when setup violates an engine invariant (bad config, bad timer duration)."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)


class EvaluationError(QuizCoreError):
    """Raised while evaluating a rule condition or executing a rule action."""


class PersistenceError(QuizCoreError):
    """Raised by storage backends when a read or write fails."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"{key}: {message}")
