"""Unit tests for the nutrition validator."""

import json
import random

import pytest

from src.engine.parsing import parse_meal
from src.models.models import Ingredient
from src.utils.errors import InvalidInputError
from src.validators.nutrition import validate_nutrition
from tests.unit.factories import BASE_INGREDIENTS, build_meal


def _names(failures):
    return [f.check_name for f in failures]


class TestNutritionScenarios:
    """End-to-end macro scenarios."""

    def test_meal_on_target_passes(self, targets):
        """2300/145/250/78/32 with exact ingredient sums passes with no failures."""
        result = validate_nutrition(build_meal(), targets)

        assert result.passed is True
        assert result.critical_failures == []
        assert result.non_critical_failures == []

    def test_low_protein_fails_protein_band(self, targets):
        """Protein 120 fails only the protein band with expected 130-160."""
        ingredients = [dict(i) for i in BASE_INGREDIENTS]
        ingredients[0]["protein_g"] = 95  # itemized protein now sums to 120
        meal = build_meal(ingredients=ingredients, summary={"protein_g": 120})

        result = validate_nutrition(meal, targets)

        assert result.passed is False
        assert len(result.critical_failures) == 1
        failure = result.critical_failures[0]
        assert failure.check_name == "protein band"
        assert failure.expected == "130-160"
        assert failure.actual == "120"

    def test_calories_outside_tolerance(self, targets):
        """2500 kcal is more than 5% over 2300."""
        result = validate_nutrition(build_meal(summary={"calories": 2500}), targets)

        assert "calorie range" in _names(result.critical_failures)
        assert result.passed is False

    def test_calories_at_tolerance_edge_pass(self, targets):
        """Exactly 5% over the target is still in range."""
        result = validate_nutrition(build_meal(summary={"calories": 2415}), targets)

        assert "calorie range" not in _names(result.critical_failures)

    @pytest.mark.parametrize(
        "field,value,check",
        [
            ("carbs_g", 300, "carbs band"),
            ("carbs_g", 200, "carbs band"),
            ("fat_g", 95, "fat band"),
            ("fat_g", 60, "fat band"),
            ("protein_g", 170, "protein band"),
        ],
    )
    def test_macro_bands_are_critical(self, targets, field, value, check):
        result = validate_nutrition(build_meal(summary={field: value}), targets)

        assert check in _names(result.critical_failures)
        assert result.passed is False

    def test_low_fiber_is_non_critical(self, targets):
        """Fiber below the floor is recorded but does not block acceptance."""
        result = validate_nutrition(build_meal(summary={"fiber_g": 12}), targets)

        assert result.passed is True
        assert _names(result.non_critical_failures) == ["fiber floor"]
        assert result.non_critical_failures[0].expected == ">=30"


class TestIngredientReconciliation:
    """Reported totals must match the itemized ingredients."""

    def test_exact_sum_passes(self, targets):
        result = validate_nutrition(build_meal(), targets)
        assert "ingredient reconciliation" not in _names(result.critical_failures)

    def test_inconsistent_totals_fail_even_when_in_range(self, targets):
        """Summary in range but ingredients add up to far less is critical."""
        ingredients = [dict(i) for i in BASE_INGREDIENTS]
        ingredients[0]["calories"] = 800  # itemized sum 1900 vs reported 2300

        result = validate_nutrition(build_meal(ingredients=ingredients), targets)

        assert _names(result.critical_failures) == ["ingredient reconciliation"]
        assert result.critical_failures[0].actual == "1900"

    def test_within_five_percent_passes(self, targets):
        ingredients = [dict(i) for i in BASE_INGREDIENTS]
        ingredients[0]["calories"] = 1100  # itemized 2200, 4.3% under

        result = validate_nutrition(build_meal(ingredients=ingredients), targets)

        assert "ingredient reconciliation" not in _names(result.critical_failures)

    @pytest.mark.parametrize("seed", range(5))
    def test_reconciliation_holds_for_any_exact_breakdown(self, targets, seed):
        """Any non-negative breakdown whose sum equals the summary reconciles."""
        rng = random.Random(seed)
        calories = [round(rng.uniform(0, 900), 1) for _ in range(rng.randint(1, 8))]
        ingredients = [
            {"name": f"item {i}", "quantity": 100, "unit": "g", "calories": c, "protein_g": 0, "carbs_g": 0, "fat_g": 0}
            for i, c in enumerate(calories)
        ]
        meal = build_meal(ingredients=ingredients, summary={"calories": sum(calories)})

        result = validate_nutrition(meal, targets)

        assert "ingredient reconciliation" not in _names(result.critical_failures)


class TestOrderIndependence:
    """Macro checks do not depend on ingredient or instruction order."""

    @pytest.mark.parametrize("seed", range(5))
    def test_shuffled_ingredients_same_outcome(self, targets, seed):
        rng = random.Random(seed)
        for summary in ({}, {"protein_g": 120}, {"calories": 2600}):
            original = build_meal(summary=summary)
            ingredients = [i.model_dump() for i in original.ingredients]
            instructions = [s.model_dump() for s in original.instructions]
            rng.shuffle(ingredients)
            rng.shuffle(instructions)
            shuffled = build_meal(summary=summary, ingredients=ingredients, instructions=instructions)

            before = validate_nutrition(original, targets)
            after = validate_nutrition(shuffled, targets)

            assert before.passed == after.passed
            assert _names(before.critical_failures) == _names(after.critical_failures)


class TestInvalidInput:
    """Malformed meals raise InvalidInputError instead of failing checks."""

    def test_empty_ingredients_raise(self, targets):
        with pytest.raises(InvalidInputError, match="no ingredients"):
            validate_nutrition(build_meal(ingredients=[]), targets)

    def test_negative_quantity_raises(self, targets):
        ingredients = [dict(i) for i in BASE_INGREDIENTS]
        ingredients[1]["quantity"] = -5

        with pytest.raises(InvalidInputError, match="negative quantity"):
            validate_nutrition(build_meal(ingredients=ingredients), targets)

    def test_negative_calories_raise(self, targets):
        ingredients = [dict(i) for i in BASE_INGREDIENTS]
        ingredients[2]["calories"] = -40

        with pytest.raises(InvalidInputError, match="negative calories"):
            validate_nutrition(build_meal(ingredients=ingredients), targets)

    def test_invalid_input_error_is_value_error(self, targets):
        """Callers catching ValueError also catch malformed candidates."""
        meal = build_meal()
        meal.ingredients.append(
            Ingredient(name="oil", quantity=10, unit="ml", calories=-1, protein_g=0, carbs_g=0, fat_g=0)
        )
        with pytest.raises(ValueError):
            validate_nutrition(meal, targets)

    def test_nan_summary_from_generator_json_raises(self, targets):
        """Bare NaN literals in generator JSON never pass the calorie checks."""
        data = build_meal().model_dump(mode="json")
        data["nutrition_summary"]["calories"] = float("nan")
        payload = json.dumps(data)
        assert '"calories": NaN' in payload

        meal = parse_meal(payload)

        with pytest.raises(InvalidInputError, match="non-finite calories"):
            validate_nutrition(meal, targets)

    @pytest.mark.parametrize("field", ["quantity", "calories", "protein_g", "fiber_g"])
    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_non_finite_ingredient_values_raise(self, targets, field, value):
        ingredients = [dict(i) for i in BASE_INGREDIENTS]
        ingredients[0][field] = value

        with pytest.raises(InvalidInputError, match="non-finite"):
            validate_nutrition(build_meal(ingredients=ingredients), targets)
