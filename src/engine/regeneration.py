"""Regeneration controller: decides ACCEPT, RETRY(target) or FAIL after each validation.

`decide` is a pure step of the state machine
PENDING -> VALIDATING -> {ACCEPTED, RETRYING, FAILED}. It owns no I/O and returns
the next AttemptState instead of mutating the one it was given, so it can be
tested without mocking the generator.

Target selection for plans:
- exactly one failing day and single-day budget left -> SINGLE_DAY repair
- variety-only failure, several failing days, or single-day budget spent -> WHOLE_PLAN
- WHOLE_PLAN budget spent -> FAIL with the full history
"""

from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from src.models.models import (
    CheckFailure,
    Meal,
    Plan,
    PlanValidationResult,
    RegenerationAttempt,
    RegenerationTarget,
    ValidationResult,
)
from src.models.rules import AttemptBudgets
from src.utils.errors import InvalidInputError
from src.utils.logger import logger


AnyResult = Union[ValidationResult, PlanValidationResult]


class RegenerationState(str, Enum):
    """Lifecycle of one generation request."""

    PENDING = "pending"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    RETRYING = "retrying"
    FAILED = "failed"


class Action(str, Enum):
    """What the orchestrator must do next."""

    ACCEPT = "accept"
    RETRY = "retry"
    FAIL = "fail"


class AttemptState(BaseModel):
    """Attempts used per target plus every result recorded so far."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["meal", "plan"]
    budgets: AttemptBudgets = Field(default_factory=AttemptBudgets)
    attempts: Dict[RegenerationTarget, int] = Field(default_factory=dict)
    history: List[AnyResult] = Field(default_factory=list)

    @classmethod
    def start(cls, kind: Literal["meal", "plan"], budgets: Optional[AttemptBudgets] = None) -> "AttemptState":
        """State for a fresh request; the first generation is attempt 1 of the primary target."""
        state = cls(kind=kind, budgets=budgets or AttemptBudgets())
        return state.model_copy(update={"attempts": {state.primary_target: 1}})

    @property
    def primary_target(self) -> RegenerationTarget:
        return RegenerationTarget.WHOLE_MEAL if self.kind == "meal" else RegenerationTarget.WHOLE_PLAN

    def used(self, target: RegenerationTarget) -> int:
        """Attempts already spent on a target."""
        return self.attempts.get(target, 0)

    def remaining(self, target: RegenerationTarget) -> int:
        return self.budgets.for_target(target) - self.used(target)


class Decision(BaseModel):
    """Result of one controller step."""

    model_config = ConfigDict(frozen=True)

    action: Action
    state: RegenerationState
    retry: Optional[RegenerationAttempt] = None
    history: List[AnyResult]
    next_state: AttemptState

    @property
    def target(self) -> Optional[RegenerationTarget]:
        return self.retry.target if self.retry else None


def _retry(
    state: AttemptState,
    history: List[AnyResult],
    target: RegenerationTarget,
    result: AnyResult,
    feedback: List[CheckFailure],
    day_index: Optional[int] = None,
) -> Decision:
    attempt_number = state.used(target) + 1
    attempts = dict(state.attempts)
    attempts[target] = attempt_number
    retry = RegenerationAttempt(
        target=target,
        attempt_number=attempt_number,
        max_attempts=state.budgets.for_target(target),
        previous_result=result,
        day_index=day_index,
        feedback=feedback,
    )
    logger.info(
        f"Decision: RETRY {target.value} attempt {attempt_number}/{retry.max_attempts}"
        + (f" (day {day_index + 1})" if day_index is not None else ""),
        extra={"attempt": attempt_number, "target": target.value},
    )
    return Decision(
        action=Action.RETRY,
        state=RegenerationState.RETRYING,
        retry=retry,
        history=history,
        next_state=state.model_copy(update={"attempts": attempts, "history": history}),
    )


def _fail(state: AttemptState, history: List[AnyResult]) -> Decision:
    logger.warning(f"Decision: FAIL after {len(history)} attempts (attempts used: {dict(state.attempts)})")
    return Decision(
        action=Action.FAIL,
        state=RegenerationState.FAILED,
        history=history,
        next_state=state.model_copy(update={"history": history}),
    )


def _plan_target(state: AttemptState, result: PlanValidationResult) -> Optional[tuple]:
    """Pick the cheapest target that can still repair the plan, or None when budgets are spent."""
    failing = result.failing_days
    if len(failing) == 1 and state.remaining(RegenerationTarget.SINGLE_DAY) > 0:
        day = failing[0]
        # The replacement day must also clear the variety gate it may be breaking
        feedback = [*result.per_day_results[day].critical_failures, *result.variety_check.critical_failures]
        return RegenerationTarget.SINGLE_DAY, feedback, day
    if state.remaining(RegenerationTarget.WHOLE_PLAN) > 0:
        return RegenerationTarget.WHOLE_PLAN, result.critical_failures, None
    return None


def decide(
    candidate: Union[Meal, Plan],
    validation_result: AnyResult,
    attempt_state: AttemptState,
) -> Decision:
    """Decide the next action for a validated candidate.

    Args:
        candidate: The Meal or Plan that was validated.
        validation_result: Result of `evaluate` for that candidate.
        attempt_state: Attempts used so far and prior results.

    Returns:
        Decision with the action, target (for RETRY), full history and next state.

    Raises:
        InvalidInputError: If candidate, result and state kinds do not match.
    """
    is_plan = isinstance(candidate, Plan)
    if is_plan != (attempt_state.kind == "plan") or is_plan != isinstance(validation_result, PlanValidationResult):
        raise InvalidInputError(
            f"Mismatched decision inputs: candidate={type(candidate).__name__}, "
            f"result={type(validation_result).__name__}, kind={attempt_state.kind}"
        )

    history = [*attempt_state.history, validation_result]

    if validation_result.passed and not validation_result.critical_failures:
        logger.info(f"Decision: ACCEPT after {len(history)} attempts")
        return Decision(
            action=Action.ACCEPT,
            state=RegenerationState.ACCEPTED,
            history=history,
            next_state=attempt_state.model_copy(update={"history": history}),
        )

    if not is_plan:
        if attempt_state.remaining(RegenerationTarget.WHOLE_MEAL) > 0:
            return _retry(
                attempt_state,
                history,
                RegenerationTarget.WHOLE_MEAL,
                validation_result,
                list(validation_result.critical_failures),
            )
        return _fail(attempt_state, history)

    choice = _plan_target(attempt_state, validation_result)
    if choice is None:
        return _fail(attempt_state, history)
    target, feedback, day_index = choice
    return _retry(attempt_state, history, target, validation_result, list(feedback), day_index)
