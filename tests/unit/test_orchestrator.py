"""Unit tests for the async generation orchestrator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.engine.orchestrator import GenerationOrchestrator
from src.models.models import RegenerationTarget
from src.models.rules import DEFAULT_METHOD_RULES, AttemptBudgets, MealRequest
from src.utils.errors import BudgetExhausted, GenerationError, InvalidInputError, RequestCancelled, ValidationFailure
from tests.unit.factories import build_meal, build_plan


LOW_PROTEIN = {"protein_g": 120}


class FakeGenerator:
    """Returns queued candidates in order and records every call."""

    def __init__(self, meals=None, days=None, delay=0.0):
        self.meals = list(meals or [])
        self.days = list(days or [])
        self.delay = delay
        self.calls = []
        self.day_calls = []

    async def generate(self, request, attempt=None):
        self.calls.append(attempt)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.meals.pop(0) if len(self.meals) > 1 else self.meals[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def generate_day(self, request, day_index, plan, attempt):
        self.day_calls.append((day_index, attempt))
        return self.days.pop(0)


class DictCache:
    def __init__(self, data=None):
        self.data = dict(data or {})
        self.sets = []

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ttl):
        self.sets.append((key, ttl))
        self.data[key] = value


@pytest.fixture
def meal_request():
    return MealRequest(kind="meal", cooking_method="pressure_cooker", calorie_target=2300, user_id="42")


@pytest.fixture
def plan_request():
    return MealRequest(kind="plan", cooking_method="pressure_cooker", calorie_target=2300)


def _orchestrator(generator, targets, **kwargs):
    kwargs.setdefault("rules", DEFAULT_METHOD_RULES)
    return GenerationOrchestrator(generator, targets, **kwargs)


class TestMealGeneration:
    """Meal requests run through validate/decide until accepted or exhausted."""

    @pytest.mark.asyncio
    async def test_accepts_first_candidate(self, targets, meal_request):
        generator = FakeGenerator([build_meal()])
        store = AsyncMock()
        cache = DictCache()

        outcome = await _orchestrator(generator, targets, store=store, cache=cache, cache_ttl_seconds=60).run(
            meal_request
        )

        assert outcome.result.passed is True
        assert outcome.from_cache is False
        assert len(outcome.history) == 1
        assert outcome.attempts == {RegenerationTarget.WHOLE_MEAL: 1}
        assert generator.calls == [None]
        store.save.assert_awaited_once_with(outcome)
        assert cache.sets == [(outcome.cache_key, 60)]

    @pytest.mark.asyncio
    async def test_retries_until_valid(self, targets, meal_request):
        failing = build_meal(summary=LOW_PROTEIN)
        generator = FakeGenerator([failing, failing, build_meal()])

        outcome = await _orchestrator(generator, targets).run(meal_request)

        assert outcome.result.passed is True
        assert len(outcome.history) == 3
        assert [r.passed for r in outcome.history] == [False, False, True]
        assert generator.calls[0] is None
        retry = generator.calls[1]
        assert retry.target == RegenerationTarget.WHOLE_MEAL
        assert retry.attempt_number == 2
        assert retry.feedback[0].check_name == "protein band"

    @pytest.mark.asyncio
    async def test_budget_exhausted_raises_with_history(self, targets, meal_request):
        generator = FakeGenerator([build_meal(summary=LOW_PROTEIN)])
        store = AsyncMock()
        cache = DictCache()

        with pytest.raises(BudgetExhausted) as exc_info:
            await _orchestrator(generator, targets, store=store, cache=cache).run(meal_request)

        assert len(exc_info.value.history) == 3
        assert exc_info.value.target == "whole_meal"
        assert isinstance(exc_info.value.__cause__, ValidationFailure)
        assert "protein band" in str(exc_info.value.__cause__)
        assert len(generator.calls) == 3
        store.save.assert_not_awaited()
        assert cache.sets == []

    @pytest.mark.asyncio
    async def test_custom_budget(self, targets, meal_request):
        generator = FakeGenerator([build_meal(summary=LOW_PROTEIN)])

        with pytest.raises(BudgetExhausted):
            await _orchestrator(generator, targets, budgets=AttemptBudgets(whole_meal=1)).run(meal_request)

        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_output_is_not_retried(self, targets, meal_request):
        generator = FakeGenerator([{"name": "broken"}])

        with pytest.raises(InvalidInputError, match="Malformed meal"):
            await _orchestrator(generator, targets).run(meal_request)

        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_accepts_json_output(self, targets, meal_request):
        generator = FakeGenerator([build_meal().model_dump_json()])

        outcome = await _orchestrator(generator, targets).run(meal_request)

        assert outcome.candidate.name == "Chicken Rice Bowl"

    @pytest.mark.asyncio
    async def test_generator_error_propagates(self, targets, meal_request):
        generator = FakeGenerator([GenerationError("model unavailable")])

        with pytest.raises(GenerationError, match="model unavailable"):
            await _orchestrator(generator, targets).run(meal_request)


class TestPlanGeneration:
    @pytest.mark.asyncio
    async def test_single_day_repair(self, targets, plan_request):
        plan = build_plan()
        broken = plan.replace_day(
            3, build_meal(name="Meal 4", primary_protein="pork", cuisine_type="japanese", summary=LOW_PROTEIN)
        )
        replacement = build_meal(name="Fixed Meal 4", primary_protein="pork", cuisine_type="japanese")
        generator = FakeGenerator([broken], days=[replacement])

        outcome = await _orchestrator(generator, targets).run(plan_request)

        assert outcome.result.passed is True
        assert len(generator.calls) == 1
        day_index, attempt = generator.day_calls[0]
        assert day_index == 3
        assert attempt.target == RegenerationTarget.SINGLE_DAY
        assert outcome.candidate.days[3].name == "Fixed Meal 4"
        assert len(outcome.candidate.per_day_results) == 7
        assert outcome.candidate.variety_result is not None

    @pytest.mark.asyncio
    async def test_budget_exhausted_reports_last_retry_target(self, targets, plan_request):
        bad_day = build_meal(name="Meal 4", primary_protein="pork", cuisine_type="japanese", summary=LOW_PROTEIN)
        broken = build_plan().replace_day(3, bad_day)
        generator = FakeGenerator([broken], days=[bad_day])
        budgets = AttemptBudgets(whole_plan=1, single_day=1)

        with pytest.raises(BudgetExhausted) as exc_info:
            await _orchestrator(generator, targets, budgets=budgets).run(plan_request)

        assert exc_info.value.target == "single_day"
        assert "last target: single_day" in str(exc_info.value)
        assert len(exc_info.value.history) == 2

    @pytest.mark.asyncio
    async def test_variety_failure_regenerates_whole_plan(self, targets, plan_request):
        monotone = build_plan(proteins=["chicken"] * 7, cuisines=["mexican"] * 7)
        generator = FakeGenerator([monotone, build_plan()])

        outcome = await _orchestrator(generator, targets).run(plan_request)

        assert outcome.result.passed is True
        assert generator.day_calls == []
        assert generator.calls[1].target == RegenerationTarget.WHOLE_PLAN


class TestCacheAndLifecycle:
    @pytest.mark.asyncio
    async def test_cache_hit_skips_generator(self, targets, meal_request):
        first = FakeGenerator([build_meal()])
        cache = DictCache()
        await _orchestrator(first, targets, cache=cache).run(meal_request)

        second = FakeGenerator([build_meal()])
        outcome = await _orchestrator(second, targets, cache=cache).run(meal_request)

        assert outcome.from_cache is True
        assert second.calls == []

    @pytest.mark.asyncio
    async def test_stale_cache_entry_is_revalidated(self, targets, meal_request):
        cache = DictCache()
        orchestrator = _orchestrator(FakeGenerator([build_meal()]), targets, cache=cache)
        key = (await orchestrator.run(meal_request)).cache_key
        cache.data[key] = build_meal(summary=LOW_PROTEIN).model_dump(mode="json")

        generator = FakeGenerator([build_meal()])
        outcome = await _orchestrator(generator, targets, cache=cache).run(meal_request)

        assert outcome.from_cache is False
        assert generator.calls == [None]

    @pytest.mark.asyncio
    async def test_cancel_event_aborts_request(self, targets, meal_request):
        generator = FakeGenerator([build_meal()], delay=5)
        store = AsyncMock()
        cancel_event = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            cancel_event.set()

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(RequestCancelled):
            await _orchestrator(generator, targets, store=store).run(meal_request, cancel_event=cancel_event)
        await canceller

        store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generator_timeout(self, targets, meal_request):
        generator = FakeGenerator([build_meal()], delay=5)

        with pytest.raises(TimeoutError):
            await _orchestrator(generator, targets, timeout_seconds=0.01).run(meal_request)

    def test_non_positive_timeout_rejected(self, targets):
        with pytest.raises(ValueError, match="timeout_seconds"):
            GenerationOrchestrator(FakeGenerator([build_meal()]), targets, timeout_seconds=0)
