"""Nutrition validator: macro bands and ingredient reconciliation for a single meal."""

import math
from typing import List

from src.models.models import CheckFailure, Meal, ValidationResult
from src.models.rules import NutritionTargets
from src.utils.errors import InvalidInputError
from src.utils.logger import logger


# Reported totals must match the itemized ingredients within this relative tolerance
RECONCILIATION_TOLERANCE = 0.05

MACRO_FIELDS = ("calories", "protein_g", "carbs_g", "fat_g", "fiber_g")


def _fmt(value: float) -> str:
    """Render a number without a trailing .0 for whole values."""
    return f"{value:g}"


def _require_well_formed(meal: Meal) -> None:
    """Raise InvalidInputError for empty or negative ingredient data."""
    if not meal.ingredients:
        raise InvalidInputError(f"Meal '{meal.name}' has no ingredients")

    for ingredient in meal.ingredients:
        if not math.isfinite(ingredient.quantity):
            raise InvalidInputError(f"Ingredient '{ingredient.name}' has non-finite quantity {ingredient.quantity}")
        if ingredient.quantity < 0:
            raise InvalidInputError(f"Ingredient '{ingredient.name}' has negative quantity {ingredient.quantity}")
        for field in MACRO_FIELDS:
            value = getattr(ingredient, field)
            if not math.isfinite(value):
                raise InvalidInputError(f"Ingredient '{ingredient.name}' has non-finite {field} {value}")
            if value < 0:
                raise InvalidInputError(f"Ingredient '{ingredient.name}' has negative {field} {value}")

    for field in MACRO_FIELDS:
        value = getattr(meal.nutrition_summary, field)
        if not math.isfinite(value):
            raise InvalidInputError(f"Meal '{meal.name}' reports non-finite {field} {value}")
        if value < 0:
            raise InvalidInputError(f"Meal '{meal.name}' reports negative {field} {value}")


def _check_band(
    name: str, value: float, low: float, high: float, failures: List[CheckFailure]
) -> None:
    if not (low <= value <= high):
        failures.append(CheckFailure(check_name=name, expected=f"{_fmt(low)}-{_fmt(high)}", actual=_fmt(value)))


def validate_nutrition(meal: Meal, targets: NutritionTargets) -> ValidationResult:
    """Check a meal's macro totals against the targets and its ingredient breakdown.

    Critical: calorie range, protein/carbs/fat bands, ingredient reconciliation.
    Non-critical: fiber floor.

    Args:
        meal: Candidate meal.
        targets: Explicit macro targets for this call.

    Returns:
        ValidationResult with `passed` derived from the critical failures.

    Raises:
        InvalidInputError: If ingredients are empty or contain negative values.
    """
    _require_well_formed(meal)

    summary = meal.nutrition_summary
    critical: List[CheckFailure] = []
    non_critical: List[CheckFailure] = []

    allowed = targets.calorie_target * targets.calorie_tolerance_pct
    if abs(summary.calories - targets.calorie_target) > allowed:
        critical.append(
            CheckFailure(
                check_name="calorie range",
                expected=f"{_fmt(targets.calorie_target)}±{_fmt(round(allowed, 2))}",
                actual=_fmt(summary.calories),
            )
        )

    _check_band("protein band", summary.protein_g, targets.protein_min_g, targets.protein_max_g, critical)
    _check_band("carbs band", summary.carbs_g, targets.carbs_min_g, targets.carbs_max_g, critical)
    _check_band("fat band", summary.fat_g, targets.fat_min_g, targets.fat_max_g, critical)

    if summary.fiber_g < targets.fiber_min_g:
        non_critical.append(
            CheckFailure(check_name="fiber floor", expected=f">={_fmt(targets.fiber_min_g)}", actual=_fmt(summary.fiber_g))
        )

    itemized = sum(ingredient.calories for ingredient in meal.ingredients)
    if abs(itemized - summary.calories) > summary.calories * RECONCILIATION_TOLERANCE:
        critical.append(
            CheckFailure(
                check_name="ingredient reconciliation",
                expected=f"{_fmt(summary.calories)}±{int(RECONCILIATION_TOLERANCE * 100)}%",
                actual=_fmt(round(itemized, 2)),
            )
        )

    result = ValidationResult.build(
        critical,
        non_critical,
        checks_run=[
            "calorie range",
            "protein band",
            "carbs band",
            "fat band",
            "fiber floor",
            "ingredient reconciliation",
        ],
    )
    logger.debug(
        f"Nutrition check '{meal.name}': passed={result.passed}, "
        f"critical={len(critical)}, non_critical={len(non_critical)}"
    )
    return result
