"""Data models for AI-generated OMAD meals, 7-day plans and validation results.

Defines Pydantic models for candidate meals/plans produced by the external generator
and for the immutable results produced by the validators.
All models use Pydantic v2 so malformed generator output fails at the boundary.
"""

import re
from enum import Enum
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


PLAN_DAYS = 7


class CookingMethod(str, Enum):
    """Cooking methods a generated meal can target."""

    PRESSURE_COOKER = "pressure_cooker"
    AIR_FRYER = "air_fryer"


class Unit(str, Enum):
    """Ingredient quantity units."""

    G = "g"
    KG = "kg"
    ML = "ml"
    L = "l"
    CUP = "cup"
    TBSP = "tbsp"
    TSP = "tsp"
    PIECE = "piece"


# Millilitres per liquid unit
LIQUID_UNIT_ML = {
    Unit.ML: 1.0,
    Unit.L: 1000.0,
    Unit.CUP: 240.0,
    Unit.TBSP: 15.0,
    Unit.TSP: 5.0,
}

# Solids counted at 1 g ~ 1 ml when estimating vessel fill
SOLID_UNIT_ML = {
    Unit.G: 1.0,
    Unit.KG: 1000.0,
}

# Keyword -> protein category, matched as whole words (optional plural) against the richest-protein ingredient
PROTEIN_KEYWORDS = (
    ("chicken", "chicken"),
    ("turkey", "turkey"),
    ("beef", "beef"),
    ("steak", "beef"),
    ("pork", "pork"),
    ("bacon", "pork"),
    ("lamb", "lamb"),
    ("salmon", "fish"),
    ("cod", "fish"),
    ("tuna", "fish"),
    ("tilapia", "fish"),
    ("fish", "fish"),
    ("shrimp", "shellfish"),
    ("prawn", "shellfish"),
    ("tofu", "tofu"),
    ("tempeh", "tempeh"),
    ("lentil", "legumes"),
    ("chickpea", "legumes"),
    ("bean", "legumes"),
    ("egg", "eggs"),
)


def normalize_label(value: Optional[str]) -> str:
    """Lower-case a label and collapse internal whitespace."""
    return " ".join((value or "").split()).lower()


def derive_primary_protein(ingredients: List["Ingredient"]) -> Optional[str]:
    """Derive the primary protein category from the ingredient with the most protein.

    Falls back to the ingredient's own normalized name when no keyword matches.
    """
    if not ingredients:
        return None
    richest = max(ingredients, key=lambda ing: ing.protein_g)
    name = normalize_label(richest.name)
    for keyword, category in PROTEIN_KEYWORDS:
        if re.search(rf"\b{keyword}s?\b", name):
            return category
    return name


class Ingredient(BaseModel):
    """Single itemized ingredient with its macro contribution.

    Non-negativity is checked by the nutrition validator, which reports it as
    InvalidInputError instead of a schema error.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Annotated[str, Field(min_length=1, max_length=200, description="Ingredient name")]
    quantity: Annotated[float, Field(description="Amount in `unit`")]
    unit: Annotated[Unit, Field(description="Quantity unit (g, kg, ml, l, cup, tbsp, tsp, piece)")]
    calories: Annotated[float, Field(description="kcal contributed by this ingredient")]
    protein_g: Annotated[float, Field(description="Protein in grams")]
    carbs_g: Annotated[float, Field(description="Carbohydrates in grams")]
    fat_g: Annotated[float, Field(description="Fat in grams")]
    fiber_g: Annotated[float, Field(0.0, description="Fiber in grams")]


class InstructionStep(BaseModel):
    """Numbered cooking instruction."""

    model_config = ConfigDict(str_strip_whitespace=True)

    step: Annotated[int, Field(description="1-based step number")]
    text: Annotated[str, Field(min_length=1, max_length=2000, description="Instruction text")]


class NutritionSummary(BaseModel):
    """Reported meal totals."""

    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    fiber_g: float = 0.0


class Meal(BaseModel):
    """Candidate OMAD meal produced by the external generator.

    `primary_protein` is derived from the ingredients when the generator omits it.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Annotated[str, Field(min_length=1, max_length=200, description="Meal name")]
    cooking_method: Annotated[CookingMethod, Field(description="Cooking method the recipe targets")]
    ingredients: Annotated[List[Ingredient], Field(default_factory=list, description="Itemized ingredients")]
    instructions: Annotated[
        List[InstructionStep], Field(default_factory=list, description="Numbered cooking steps")
    ]
    nutrition_summary: Annotated[NutritionSummary, Field(description="Reported meal totals")]
    cuisine_type: Annotated[str, Field(min_length=1, max_length=100, description="Cuisine label")]
    primary_protein: Annotated[
        Optional[str], Field(None, max_length=100, description="Main protein category (derived if omitted)")
    ]

    @model_validator(mode="after")
    def fill_primary_protein(self) -> "Meal":
        """Derive primary_protein from ingredients when not supplied."""
        if not self.primary_protein:
            self.primary_protein = derive_primary_protein(self.ingredients)
        return self


class CheckFailure(BaseModel):
    """One failed check with the expected and observed values."""

    model_config = ConfigDict(frozen=True)

    check_name: str
    expected: str
    actual: str


class ValidationResult(BaseModel):
    """Outcome of one validation pass. Never mutated after construction."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    critical_failures: List[CheckFailure] = Field(default_factory=list)
    non_critical_failures: List[CheckFailure] = Field(default_factory=list)
    checks_run: List[str] = Field(default_factory=list, description="Names of every check evaluated")

    @model_validator(mode="after")
    def validate_passed_flag(self) -> "ValidationResult":
        """Ensure `passed` agrees with the critical failures."""
        if self.passed == bool(self.critical_failures):
            raise ValueError("passed must be True exactly when there are no critical failures")
        return self

    @classmethod
    def build(
        cls,
        critical: List[CheckFailure],
        non_critical: Optional[List[CheckFailure]] = None,
        checks_run: Optional[List[str]] = None,
    ) -> "ValidationResult":
        """Create a result whose `passed` flag is derived from the critical failures."""
        return cls(
            passed=not critical,
            critical_failures=list(critical),
            non_critical_failures=list(non_critical or []),
            checks_run=list(checks_run or []),
        )

    @classmethod
    def merge(cls, *results: "ValidationResult") -> "ValidationResult":
        """Combine several results (e.g. nutrition and format) into one."""
        critical: List[CheckFailure] = []
        non_critical: List[CheckFailure] = []
        checks: List[str] = []
        for result in results:
            critical.extend(result.critical_failures)
            non_critical.extend(result.non_critical_failures)
            checks.extend(result.checks_run)
        return cls.build(critical, non_critical, checks)


class ConsecutiveRepeat(BaseModel):
    """Same protein or cuisine on day `day_index` as on the previous day."""

    model_config = ConfigDict(frozen=True)

    day_index: Annotated[int, Field(ge=1, le=PLAN_DAYS - 1)]
    attribute: Literal["protein", "cuisine"]


class VarietyResult(BaseModel):
    """Cross-day diversity metrics for a 7-day plan."""

    model_config = ConfigDict(frozen=True)

    unique_protein_count: Annotated[int, Field(ge=0, le=PLAN_DAYS)]
    unique_cuisine_count: Annotated[int, Field(ge=0, le=PLAN_DAYS)]
    duplicate_meal_names: set[str] = Field(default_factory=set)
    consecutive_repeats: List[ConsecutiveRepeat] = Field(default_factory=list)
    variety_score: Annotated[float, Field(ge=0.0, le=10.0)]


class Plan(BaseModel):
    """Candidate 7-day plan. Day count is checked by the analyzer, not here."""

    days: List[Meal]
    per_day_results: List[ValidationResult] = Field(default_factory=list)
    variety_result: Optional[VarietyResult] = None

    def replace_day(self, day_index: int, meal: Meal) -> "Plan":
        """Return a new plan with one day swapped and stale results dropped."""
        days = list(self.days)
        days[day_index] = meal
        return Plan(days=days)


class PlanValidationResult(BaseModel):
    """Per-day results plus the variety metrics and gate for a whole plan."""

    model_config = ConfigDict(frozen=True)

    per_day_results: List[ValidationResult]
    variety_result: VarietyResult
    variety_check: ValidationResult
    passed: bool

    @model_validator(mode="after")
    def validate_passed_flag(self) -> "PlanValidationResult":
        """Ensure `passed` requires every day and the variety gate to pass."""
        expected = all(r.passed for r in self.per_day_results) and self.variety_check.passed
        if self.passed != expected:
            raise ValueError("passed must be True exactly when every day and the variety gate pass")
        return self

    @property
    def failing_days(self) -> List[int]:
        """Indices of days with at least one critical failure."""
        return [i for i, r in enumerate(self.per_day_results) if not r.passed]

    @property
    def critical_failures(self) -> List[CheckFailure]:
        """Every critical failure across days (prefixed with the day) and the variety gate."""
        failures = [
            CheckFailure(check_name=f"day {i + 1}: {f.check_name}", expected=f.expected, actual=f.actual)
            for i, r in enumerate(self.per_day_results)
            for f in r.critical_failures
        ]
        failures.extend(self.variety_check.critical_failures)
        return failures


class RegenerationTarget(str, Enum):
    """Granularity at which a retry is requested."""

    WHOLE_MEAL = "whole_meal"
    SINGLE_DAY = "single_day"
    WHOLE_PLAN = "whole_plan"


class RegenerationAttempt(BaseModel):
    """Retry request handed back to the generator."""

    model_config = ConfigDict(frozen=True)

    target: RegenerationTarget
    attempt_number: Annotated[int, Field(ge=1, description="Attempt this retry will be for this target")]
    max_attempts: Annotated[int, Field(ge=1)]
    previous_result: ValidationResult | PlanValidationResult
    day_index: Annotated[Optional[int], Field(None, ge=0, le=PLAN_DAYS - 1)]
    feedback: List[CheckFailure] = Field(default_factory=list, description="Flaws the regeneration must fix")
