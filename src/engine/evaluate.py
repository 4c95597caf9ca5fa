"""Single entry point that runs the applicable validators over a candidate.

A Meal gets nutrition + format checks. A Plan gets the same per day, then
`analyze_variety` and the variety gate on the whole week.
"""

from typing import Mapping, Optional, Union

from src.models.models import CookingMethod, Meal, Plan, PlanValidationResult, ValidationResult
from src.models.rules import MethodRules, NutritionTargets, VarietyPolicy
from src.utils.errors import InvalidInputError
from src.utils.logger import logger
from src.validators.format import validate_format
from src.validators.nutrition import validate_nutrition
from src.validators.variety import analyze_variety, check_variety


RulesArg = Union[MethodRules, Mapping[CookingMethod, MethodRules], None]


def _rules_for(meal: Meal, rules: RulesArg) -> Optional[MethodRules]:
    if rules is None or isinstance(rules, MethodRules):
        return rules
    return rules.get(meal.cooking_method)


def evaluate_meal(meal: Meal, targets: NutritionTargets, rules: RulesArg = None) -> ValidationResult:
    """Run nutrition and format checks on one meal."""
    nutrition = validate_nutrition(meal, targets)
    method_rules = _rules_for(meal, rules)
    if method_rules is None:
        return nutrition
    return ValidationResult.merge(nutrition, validate_format(meal, method_rules))


def evaluate_plan(
    plan: Plan,
    targets: NutritionTargets,
    rules: RulesArg = None,
    policy: Optional[VarietyPolicy] = None,
) -> PlanValidationResult:
    """Run per-day checks plus variety analysis on a 7-day plan."""
    policy = policy or VarietyPolicy()
    variety = analyze_variety(plan, policy)
    per_day = [evaluate_meal(meal, targets, rules) for meal in plan.days]
    gate = check_variety(variety, policy)
    passed = all(result.passed for result in per_day) and gate.passed
    return PlanValidationResult(
        per_day_results=per_day,
        variety_result=variety,
        variety_check=gate,
        passed=passed,
    )


def evaluate(
    candidate: Union[Meal, Plan],
    targets: NutritionTargets,
    rules: RulesArg = None,
    policy: Optional[VarietyPolicy] = None,
) -> Union[ValidationResult, PlanValidationResult]:
    """Validate a Meal or a Plan.

    Args:
        candidate: Meal or Plan produced by the generator.
        targets: Macro targets applied to every meal.
        rules: MethodRules for one method, or a mapping keyed by cooking method.
        policy: Variety thresholds and score weights (plans only).

    Returns:
        ValidationResult for a Meal, PlanValidationResult for a Plan.

    Raises:
        InvalidInputError: If the candidate is malformed or of an unknown type.
    """
    if isinstance(candidate, Plan):
        result = evaluate_plan(candidate, targets, rules, policy)
        logger.info(
            f"Plan evaluated: passed={result.passed}, failing_days={result.failing_days}, "
            f"variety_score={result.variety_result.variety_score:.2f}"
        )
        return result
    if isinstance(candidate, Meal):
        result = evaluate_meal(candidate, targets, rules)
        logger.info(
            f"Meal '{candidate.name}' evaluated: passed={result.passed}, "
            f"critical={[f.check_name for f in result.critical_failures]}"
        )
        return result
    raise InvalidInputError(f"Unsupported candidate type: {type(candidate).__name__}")
