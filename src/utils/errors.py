"""Exception taxonomy for the meal validation engine.

- InvalidInputError: malformed candidate (missing fields, negative values, wrong day count).
  Raised immediately and never retried.
- ValidationFailure: a critical check failed. Retryable within the attempt budget.
- BudgetExhausted: attempts exhausted. Carries every recorded result for fallback decisions.
- GenerationError: raised by MealGenerator implementations when they cannot produce a
  candidate. The orchestrator propagates it unchanged.
- RequestCancelled: raised by the orchestrator when the caller's cancel event is set.
"""

from typing import Any, Optional


class MealEngineError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(MealEngineError, ValueError):
    """Candidate or configuration is malformed; retrying the same input cannot help."""


class ValidationFailure(MealEngineError):
    """A candidate failed one or more critical checks."""

    def __init__(self, result: Any, message: Optional[str] = None) -> None:
        self.result = result
        if message is None:
            names = [f.check_name for f in getattr(result, "critical_failures", [])]
            message = f"Critical checks failed: {', '.join(names) or 'variety gate'}"
        super().__init__(message)


class BudgetExhausted(MealEngineError):
    """Attempt budget spent while critical failures persist."""

    def __init__(self, history: list, target: Optional[str] = None) -> None:
        self.history = list(history)
        self.target = target
        super().__init__(
            f"Regeneration budget exhausted after {len(self.history)} attempts"
            + (f" (last target: {target})" if target else "")
        )


class GenerationError(MealEngineError):
    """The external meal generator could not produce a candidate."""


class RequestCancelled(MealEngineError):
    """The caller abandoned the request before a candidate was accepted."""
