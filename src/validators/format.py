"""Format compliance checker: pattern-based rules for a meal's cooking instructions.

Rules only apply when the meal targets the method they were authored for.
Presence alone is not enough: ordering rules compare match positions, so a
duration step written before the seal step fails even though both exist.
"""

import re
from typing import Dict, List, Optional

from src.models.models import LIQUID_UNIT_ML, SOLID_UNIT_ML, CheckFailure, Meal, ValidationResult
from src.models.rules import MethodRules, PatternKind, PatternRule
from src.utils.errors import InvalidInputError
from src.utils.logger import logger


def instruction_text(meal: Meal) -> str:
    """Concatenate instruction texts in step order.

    Raises:
        InvalidInputError: If step numbers are duplicated or not positive.
    """
    steps = [step.step for step in meal.instructions]
    if any(number < 1 for number in steps):
        raise InvalidInputError(f"Meal '{meal.name}' has non-positive step numbers: {steps}")
    if len(set(steps)) != len(steps):
        raise InvalidInputError(f"Meal '{meal.name}' has duplicate step numbers: {steps}")

    ordered = sorted(meal.instructions, key=lambda step: step.step)
    return "\n".join(step.text for step in ordered)


def find_pattern(rule: PatternRule, text: str) -> Optional[int]:
    """Return the start offset of the first match of `rule` in `text`, or None."""
    if rule.kind == PatternKind.REGEX:
        match = re.search(rule.pattern, text, flags=re.IGNORECASE)
        return match.start() if match else None

    position = text.lower().find(rule.pattern.lower())
    return position if position >= 0 else None


def liquid_volume_ml(meal: Meal) -> float:
    """Sum of ingredient quantities with liquid units, in millilitres."""
    return sum(
        ingredient.quantity * LIQUID_UNIT_ML[ingredient.unit]
        for ingredient in meal.ingredients
        if ingredient.unit in LIQUID_UNIT_ML
    )


def total_volume_ml(meal: Meal) -> float:
    """Estimated total ingredient volume: liquids plus solids at 1 g ~ 1 ml. Pieces are ignored."""
    solids = sum(
        ingredient.quantity * SOLID_UNIT_ML[ingredient.unit]
        for ingredient in meal.ingredients
        if ingredient.unit in SOLID_UNIT_ML
    )
    return liquid_volume_ml(meal) + solids


def validate_format(meal: Meal, method_rules: MethodRules) -> ValidationResult:
    """Check a meal's instructions against the rules for its cooking method.

    Args:
        meal: Candidate meal.
        method_rules: Rules authored for one cooking method.

    Returns:
        ValidationResult; passes immediately when the meal uses another method.
    """
    if meal.cooking_method != method_rules.cooking_method:
        logger.debug(
            f"Format check skipped for '{meal.name}': rules target {method_rules.cooking_method.value}, "
            f"meal uses {meal.cooking_method.value}"
        )
        return ValidationResult.build([], checks_run=[])

    text = instruction_text(meal)
    critical: List[CheckFailure] = []
    checks: List[str] = []

    positions: Dict[str, Optional[int]] = {}
    for rule in method_rules.required_patterns:
        check_name = f"missing {rule.name}"
        checks.append(check_name)
        positions[rule.name] = find_pattern(rule, text)
        if positions[rule.name] is None:
            critical.append(
                CheckFailure(
                    check_name=check_name,
                    expected=f"{rule.name} present" + (f" ({rule.reason})" if rule.reason else ""),
                    actual="not found",
                )
            )

    for ordering in method_rules.ordering:
        check_name = f"{ordering.before} before {ordering.after}"
        checks.append(check_name)
        before = positions.get(ordering.before)
        after = positions.get(ordering.after)
        # Missing patterns are already reported above
        if before is None or after is None:
            continue
        if before > after:
            critical.append(
                CheckFailure(
                    check_name=check_name,
                    expected=ordering.reason or f"{ordering.before} precedes {ordering.after}",
                    actual=f"{ordering.after} at offset {after} precedes {ordering.before} at offset {before}",
                )
            )

    checks.append("liquid minimum")
    liquid = liquid_volume_ml(meal)
    if liquid < method_rules.min_liquid_volume_ml:
        critical.append(
            CheckFailure(
                check_name="liquid minimum",
                expected=f">={method_rules.min_liquid_volume_ml:g} ml",
                actual=f"{liquid:g} ml",
            )
        )

    if method_rules.vessel_capacity_ml:
        checks.append("fill ratio")
        limit = method_rules.vessel_capacity_ml * method_rules.max_fill_ratio
        volume = total_volume_ml(meal)
        if volume > limit:
            critical.append(
                CheckFailure(
                    check_name="fill ratio",
                    expected=f"<={limit:.0f} ml ({method_rules.max_fill_ratio:.0%} of {method_rules.vessel_capacity_ml:g} ml)",
                    actual=f"{volume:g} ml",
                )
            )

    result = ValidationResult.build(critical, checks_run=checks)
    logger.debug(f"Format check '{meal.name}': passed={result.passed}, critical={len(critical)}")
    return result
