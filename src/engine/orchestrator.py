"""Generation orchestrator: cache lookup, generate, validate, decide, persist.

Wraps the pure validators and the regeneration controller in the async retry
loop that talks to the external collaborators:

- MealGenerator: produces candidates (may raise GenerationError / TimeoutError)
- PersistenceStore: receives accepted outcomes
- ResultCache: get/set of accepted candidates keyed by build_key()

Each generator call is a suspension point bounded by `timeout_seconds` and raced
against an optional cancellation event. Nothing is saved or cached unless the
controller reached ACCEPTED.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field

from src.cache.keys import DEFAULT_BUCKET_SIZE, DEFAULT_PREFIX, build_key
from src.engine.evaluate import RulesArg, evaluate
from src.engine.parsing import parse_meal, parse_plan
from src.engine.regeneration import Action, AnyResult, AttemptState, RegenerationState, decide
from src.models.models import Meal, Plan, RegenerationAttempt, RegenerationTarget
from src.models.rules import AttemptBudgets, MealRequest, NutritionTargets, VarietyPolicy
from src.utils.config import config
from src.utils.errors import BudgetExhausted, InvalidInputError, RequestCancelled, ValidationFailure
from src.utils.logger import logger, request_logger


class MealGenerator(Protocol):
    """External AI meal generator."""

    async def generate(self, request: MealRequest, attempt: Optional[RegenerationAttempt] = None) -> Any:
        """Return a Meal/Plan (or its dict/JSON form) for the request."""

    async def generate_day(
        self, request: MealRequest, day_index: int, plan: Plan, attempt: RegenerationAttempt
    ) -> Any:
        """Return a replacement Meal for one day of `plan`."""


class PersistenceStore(Protocol):
    async def save(self, outcome: "GenerationOutcome") -> None: ...


class ResultCache(Protocol):
    async def get(self, key: str) -> Optional[Mapping[str, Any]]: ...

    async def set(self, key: str, value: Mapping[str, Any], ttl: int) -> None: ...


class GenerationOutcome(BaseModel):
    """Accepted candidate with the result that accepted it."""

    model_config = ConfigDict(frozen=True)

    candidate: Union[Plan, Meal]
    result: AnyResult
    cache_key: str
    from_cache: bool = False
    history: List[AnyResult] = Field(default_factory=list)
    attempts: Dict[RegenerationTarget, int] = Field(default_factory=dict)


class GenerationOrchestrator:
    """Drive a request through generation and validation until accepted or exhausted."""

    def __init__(
        self,
        generator: MealGenerator,
        targets: NutritionTargets,
        rules: RulesArg = None,
        variety_policy: Optional[VarietyPolicy] = None,
        budgets: Optional[AttemptBudgets] = None,
        store: Optional[PersistenceStore] = None,
        cache: Optional[ResultCache] = None,
        timeout_seconds: float = 60.0,
        cache_ttl_seconds: int = 86400,
        key_prefix: str = DEFAULT_PREFIX,
        bucket_size: int = DEFAULT_BUCKET_SIZE,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            generator: External meal generator.
            targets: Macro targets for every meal.
            rules: MethodRules or a mapping keyed by cooking method.
            variety_policy: Variety gate thresholds (plans only).
            budgets: Attempt budgets per regeneration target.
            store: Optional persistence for accepted outcomes.
            cache: Optional cache for accepted candidates.
            timeout_seconds: Upper bound for each generator call.
            cache_ttl_seconds: TTL passed to cache.set().
            key_prefix: Prefix for cache keys.
            bucket_size: Calorie bucket width for cache keys.

        Raises:
            ValueError: If timeout_seconds is not positive.
        """
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got: {timeout_seconds}")

        self.generator = generator
        self.targets = targets
        self.rules = rules
        self.variety_policy = variety_policy or VarietyPolicy()
        self.budgets = budgets or AttemptBudgets()
        self.store = store
        self.cache = cache
        self.timeout_seconds = timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.key_prefix = key_prefix
        self.bucket_size = bucket_size

    def _parse(self, raw: Any, kind: str) -> Union[Meal, Plan]:
        if kind == "plan":
            return raw if isinstance(raw, Plan) else parse_plan(raw)
        return raw if isinstance(raw, Meal) else parse_meal(raw)

    async def _call(self, call: Awaitable[Any], cancel_event: Optional[asyncio.Event]) -> Any:
        """Await a generator call with the timeout, aborting if the request is cancelled."""
        task = asyncio.ensure_future(call)
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self.timeout_seconds, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled("Request cancelled while waiting for the generator")
        if task in done:
            return task.result()
        raise TimeoutError(f"Generator did not respond within {self.timeout_seconds}s")

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RequestCancelled("Request cancelled before a candidate was accepted")

    async def _from_cache(self, key: str, kind: str) -> Optional[GenerationOutcome]:
        """Return a cached candidate if it still passes the current configuration."""
        if self.cache is None:
            return None
        cached = await self.cache.get(key)
        if not cached:
            return None
        try:
            candidate = self._parse(dict(cached), kind)
            result = evaluate(candidate, self.targets, self.rules, self.variety_policy)
        except InvalidInputError as e:
            logger.warning(f"Ignoring malformed cache entry {key}: {e}")
            return None
        if not result.passed:
            logger.warning(f"Ignoring cache entry {key}: no longer passes validation")
            return None
        logger.info(f"Cache hit: {key}")
        return GenerationOutcome(candidate=candidate, result=result, cache_key=key, from_cache=True, history=[result])

    async def _regenerate(
        self,
        request: MealRequest,
        candidate: Union[Meal, Plan],
        attempt: RegenerationAttempt,
        cancel_event: Optional[asyncio.Event],
    ) -> Union[Meal, Plan]:
        if attempt.target == RegenerationTarget.SINGLE_DAY:
            raw = await self._call(
                self.generator.generate_day(request, attempt.day_index, candidate, attempt), cancel_event
            )
            day = raw if isinstance(raw, Meal) else parse_meal(raw)
            # Variety is re-analyzed on the reassembled plan by the next evaluate()
            return candidate.replace_day(attempt.day_index, day)
        raw = await self._call(self.generator.generate(request, attempt), cancel_event)
        return self._parse(raw, request.kind)

    async def run(self, request: MealRequest, cancel_event: Optional[asyncio.Event] = None) -> GenerationOutcome:
        """Produce an accepted meal or plan for a request.

        Args:
            request: Generation request; `kind` selects meal or plan.
            cancel_event: Set by the caller to abandon the request.

        Returns:
            GenerationOutcome with the accepted candidate and full history.

        Raises:
            InvalidInputError: If the generator returns a malformed candidate (never retried).
            BudgetExhausted: If critical failures persist after every allowed attempt.
            RequestCancelled: If cancel_event is set before acceptance.
            TimeoutError: If a generator call exceeds timeout_seconds.
        """
        request_id = uuid.uuid4().hex[:8]
        log = request_logger(request_id, request.user_id)
        key = build_key(request, prefix=self.key_prefix, bucket_size=self.bucket_size)

        cached = await self._from_cache(key, request.kind)
        if cached is not None:
            return cached

        state = AttemptState.start(request.kind, self.budgets)
        last_target = state.primary_target
        phase = RegenerationState.PENDING
        log.info(f"Generating {request.kind} ({phase.value})")
        candidate = self._parse(await self._call(self.generator.generate(request, None), cancel_event), request.kind)

        while True:
            self._check_cancelled(cancel_event)
            phase = RegenerationState.VALIDATING
            log.debug(f"State: {phase.value}")
            result = evaluate(candidate, self.targets, self.rules, self.variety_policy)
            decision = decide(candidate, result, state)
            state = decision.next_state

            if decision.action == Action.ACCEPT:
                self._check_cancelled(cancel_event)
                if isinstance(candidate, Plan):
                    candidate = candidate.model_copy(
                        update={"per_day_results": result.per_day_results, "variety_result": result.variety_result}
                    )
                outcome = GenerationOutcome(
                    candidate=candidate,
                    result=result,
                    cache_key=key,
                    history=decision.history,
                    attempts=dict(state.attempts),
                )
                if self.store is not None:
                    await self.store.save(outcome)
                if self.cache is not None:
                    await self.cache.set(key, candidate.model_dump(mode="json"), self.cache_ttl_seconds)
                log.info(f"Accepted {request.kind} after {len(decision.history)} attempts")
                return outcome

            if decision.action == Action.FAIL:
                log.error(f"Regeneration budget exhausted for {request.kind}", extra={"target": last_target.value})
                raise BudgetExhausted(decision.history, target=last_target.value) from ValidationFailure(result)

            attempt = decision.retry
            last_target = attempt.target
            log.warning(
                f"Retrying {attempt.target.value} ({attempt.attempt_number}/{attempt.max_attempts}): "
                f"{[f.check_name for f in attempt.feedback]}",
                extra={"attempt": attempt.attempt_number, "target": attempt.target.value},
            )
            candidate = await self._regenerate(request, candidate, attempt, cancel_event)


def initialize_orchestrator(
    generator: MealGenerator,
    store: Optional[PersistenceStore] = None,
    cache: Optional[ResultCache] = None,
) -> GenerationOrchestrator:
    """Build an orchestrator from the environment configuration.

    The cache is ignored when ENABLE_CACHE is false.
    """
    if cache is not None and not config.ENABLE_CACHE:
        logger.info("Result cache disabled (ENABLE_CACHE=false)")
        cache = None

    return GenerationOrchestrator(
        generator,
        config.nutrition_targets(),
        rules=config.method_rules(),
        variety_policy=config.variety_policy(),
        budgets=config.attempt_budgets(),
        store=store,
        cache=cache,
        timeout_seconds=config.GENERATION_TIMEOUT_SECONDS,
        cache_ttl_seconds=config.CACHE_TTL_SECONDS,
        key_prefix=config.CACHE_KEY_PREFIX,
        bucket_size=config.CALORIE_BUCKET_SIZE,
    )
