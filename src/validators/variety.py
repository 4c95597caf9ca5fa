"""Variety analyzer for 7-day plans.

`analyze_variety` computes the metrics; `check_variety` is the gate built on top.
The consecutive-repeat rule is evaluated independently of the aggregate score,
so a plan with a high score still fails when two adjacent days share a protein
or cuisine.
"""

from collections import Counter
from typing import List, Optional

from src.models.models import (
    PLAN_DAYS,
    CheckFailure,
    ConsecutiveRepeat,
    Plan,
    ValidationResult,
    VarietyResult,
    normalize_label,
)
from src.models.rules import VarietyPolicy
from src.utils.errors import InvalidInputError
from src.utils.logger import logger


# Six adjacent pairs, two attributes each
MAX_CONSECUTIVE_REPEATS = 2 * (PLAN_DAYS - 1)


def _consecutive(values: List[str], attribute: str) -> List[ConsecutiveRepeat]:
    return [
        ConsecutiveRepeat(day_index=i, attribute=attribute)
        for i in range(1, len(values))
        if values[i] == values[i - 1]
    ]


def variety_score(
    unique_proteins: int,
    unique_cuisines: int,
    duplicate_names: int,
    consecutive_repeats: int,
    policy: VarietyPolicy,
) -> float:
    """Weighted variety score clamped to [0, 10]. Non-decreasing in unique counts."""
    weights = policy.weights
    terms = (
        (weights.protein, unique_proteins / PLAN_DAYS),
        (weights.cuisine, unique_cuisines / PLAN_DAYS),
        (weights.duplicates, 1 - duplicate_names / PLAN_DAYS),
        (weights.consecutive, 1 - consecutive_repeats / MAX_CONSECUTIVE_REPEATS),
    )
    total_weight = sum(weight for weight, _ in terms)
    score = 10 * sum(weight * value for weight, value in terms) / total_weight
    return max(0.0, min(10.0, score))


def analyze_variety(plan: Plan, policy: Optional[VarietyPolicy] = None) -> VarietyResult:
    """Compute cross-day diversity metrics for a plan.

    Args:
        plan: Plan with exactly seven days.
        policy: Supplies the score weights; defaults to VarietyPolicy().

    Returns:
        VarietyResult with counts, duplicates, consecutive repeats and score.

    Raises:
        InvalidInputError: If the plan does not have exactly seven days.
    """
    if len(plan.days) != PLAN_DAYS:
        raise InvalidInputError(f"Plan must have exactly {PLAN_DAYS} days, got {len(plan.days)}")

    policy = policy or VarietyPolicy()

    proteins = [normalize_label(meal.primary_protein) for meal in plan.days]
    cuisines = [normalize_label(meal.cuisine_type) for meal in plan.days]
    names = Counter(normalize_label(meal.name) for meal in plan.days)

    duplicates = {name for name, count in names.items() if count > 1}
    repeats = _consecutive(proteins, "protein") + _consecutive(cuisines, "cuisine")
    repeats.sort(key=lambda repeat: (repeat.day_index, repeat.attribute != "protein"))

    unique_proteins = len(set(proteins))
    unique_cuisines = len(set(cuisines))
    score = variety_score(unique_proteins, unique_cuisines, len(duplicates), len(repeats), policy)

    logger.debug(
        f"Variety: proteins={unique_proteins}, cuisines={unique_cuisines}, "
        f"duplicates={len(duplicates)}, repeats={len(repeats)}, score={score:.2f}"
    )
    return VarietyResult(
        unique_protein_count=unique_proteins,
        unique_cuisine_count=unique_cuisines,
        duplicate_meal_names=duplicates,
        consecutive_repeats=repeats,
        variety_score=round(score, 4),
    )


def check_variety(result: VarietyResult, policy: Optional[VarietyPolicy] = None) -> ValidationResult:
    """Apply the variety thresholds to computed metrics."""
    policy = policy or VarietyPolicy()
    critical: List[CheckFailure] = []
    non_critical: List[CheckFailure] = []

    if result.unique_protein_count < policy.min_unique_proteins:
        critical.append(
            CheckFailure(
                check_name="protein variety",
                expected=f">={policy.min_unique_proteins}",
                actual=str(result.unique_protein_count),
            )
        )
    if result.unique_cuisine_count < policy.min_unique_cuisines:
        critical.append(
            CheckFailure(
                check_name="cuisine variety",
                expected=f">={policy.min_unique_cuisines}",
                actual=str(result.unique_cuisine_count),
            )
        )

    if len(result.consecutive_repeats) > policy.max_consecutive_repeats:
        for repeat in result.consecutive_repeats:
            critical.append(
                CheckFailure(
                    check_name=f"consecutive {repeat.attribute} repeat",
                    expected=f"day {repeat.day_index + 1} differs from day {repeat.day_index}",
                    actual=f"same {repeat.attribute} on days {repeat.day_index} and {repeat.day_index + 1}",
                )
            )

    if result.variety_score < policy.min_variety_score:
        critical.append(
            CheckFailure(
                check_name="variety score",
                expected=f">={policy.min_variety_score:g}",
                actual=f"{result.variety_score:.2f}",
            )
        )

    if result.duplicate_meal_names:
        non_critical.append(
            CheckFailure(
                check_name="duplicate meal names",
                expected="7 distinct meals",
                actual=", ".join(sorted(result.duplicate_meal_names)),
            )
        )

    return ValidationResult.build(
        critical,
        non_critical,
        checks_run=[
            "protein variety",
            "cuisine variety",
            "consecutive repeats",
            "variety score",
            "duplicate meal names",
        ],
    )
