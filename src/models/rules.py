"""Explicit configuration structs passed into every validator call.

Targets, method rules, variety thresholds and attempt budgets are plain
Pydantic models so a single authoritative source (see src.utils.config)
decides every numeric threshold at the call site.
"""

from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.models import CookingMethod, RegenerationTarget


class NutritionTargets(BaseModel):
    """Daily OMAD macro targets for one meal."""

    model_config = ConfigDict(frozen=True)

    calorie_target: Annotated[int, Field(ge=0, description="Target kcal for the single daily meal")]
    calorie_tolerance_pct: Annotated[float, Field(gt=0.0, lt=1.0, description="Allowed relative deviation")]
    protein_min_g: Annotated[float, Field(ge=0)]
    protein_max_g: Annotated[float, Field(ge=0)]
    carbs_min_g: Annotated[float, Field(ge=0)]
    carbs_max_g: Annotated[float, Field(ge=0)]
    fat_min_g: Annotated[float, Field(ge=0)]
    fat_max_g: Annotated[float, Field(ge=0)]
    fiber_min_g: Annotated[float, Field(ge=0)]

    @model_validator(mode="after")
    def validate_bands(self) -> "NutritionTargets":
        """Each macro band must have min <= max."""
        for macro in ("protein", "carbs", "fat"):
            low = getattr(self, f"{macro}_min_g")
            high = getattr(self, f"{macro}_max_g")
            if low > high:
                raise ValueError(f"{macro}_min_g ({low}) must not exceed {macro}_max_g ({high})")
        return self


class PatternKind(str, Enum):
    """How a required pattern is matched against the instruction text."""

    PHRASE = "phrase"
    REGEX = "regex"


class PatternRule(BaseModel):
    """Pattern that must appear somewhere in the concatenated instructions."""

    model_config = ConfigDict(frozen=True)

    name: Annotated[str, Field(min_length=1, description="Short label used in failure names")]
    pattern: Annotated[str, Field(min_length=1)]
    kind: PatternKind = PatternKind.PHRASE
    reason: Annotated[str, Field("", description="Why the step matters, reported on failure")]


class OrderingRule(BaseModel):
    """Pattern `before` must match earlier in the text than pattern `after`."""

    model_config = ConfigDict(frozen=True)

    before: str
    after: str
    reason: str = ""


class MethodRules(BaseModel):
    """Format rules authored for one cooking method."""

    model_config = ConfigDict(frozen=True)

    cooking_method: CookingMethod
    required_patterns: List[PatternRule] = Field(default_factory=list)
    ordering: List[OrderingRule] = Field(default_factory=list)
    min_liquid_volume_ml: Annotated[float, Field(0.0, ge=0)]
    vessel_capacity_ml: Annotated[Optional[float], Field(None, gt=0)]
    max_fill_ratio: Annotated[float, Field(1.0, gt=0.0, le=1.0)]

    @model_validator(mode="after")
    def validate_ordering_names(self) -> "MethodRules":
        """Ordering rules may only reference declared patterns."""
        names = {rule.name for rule in self.required_patterns}
        for rule in self.ordering:
            for name in (rule.before, rule.after):
                if name not in names:
                    raise ValueError(f"Ordering rule references unknown pattern: {name}")
        return self


PRESSURE_COOKER_RULES = MethodRules(
    cooking_method=CookingMethod.PRESSURE_COOKER,
    required_patterns=[
        PatternRule(
            name="seal step",
            kind=PatternKind.REGEX,
            pattern=(
                r"\b(?:lock|seal)(?:ed|ing|s)?\b[^.\n]*?\b(?:lid|valve)\b"
                r"|\b(?:lid|valve)\b[^.\n]*?\b(?:lock|seal)(?:ed|ing|s)?\b"
            ),
            reason="the lid must be locked and the valve set to sealing before pressure builds",
        ),
        PatternRule(
            name="pressure duration",
            kind=PatternKind.REGEX,
            pattern=r"\b(?:pressure[- ]cook|cook on (?:high|low) pressure)\b[^.\n]*?\bfor\s+\d+\s*(?:minutes?|mins?)\b",
            reason="a timed pressure-cook step with an explicit number of minutes is required",
        ),
        PatternRule(
            name="pressure release",
            kind=PatternKind.REGEX,
            pattern=r"\b(?:natural|quick)[- ](?:pressure )?release\b",
            reason="the recipe must say how to release pressure before opening",
        ),
    ],
    ordering=[
        OrderingRule(
            before="seal step",
            after="pressure duration",
            reason="missing sealed-vessel confirmation before timed-cook step",
        ),
        OrderingRule(
            before="pressure duration",
            after="pressure release",
            reason="pressure must be released after the timed cook, not before",
        ),
    ],
    min_liquid_volume_ml=240.0,
    vessel_capacity_ml=5700.0,
    max_fill_ratio=2 / 3,
)

AIR_FRYER_RULES = MethodRules(
    cooking_method=CookingMethod.AIR_FRYER,
    required_patterns=[
        PatternRule(
            name="temperature",
            kind=PatternKind.REGEX,
            pattern=r"\b\d{3}\s*°?\s*(?:F|C)\b",
            reason="air-fry steps need an explicit temperature",
        ),
        PatternRule(
            name="air fry duration",
            kind=PatternKind.REGEX,
            pattern=r"\bair[- ]fry\b[^.\n]*?\bfor\s+\d+\s*(?:minutes?|mins?)\b",
            reason="a timed air-fry step with an explicit number of minutes is required",
        ),
    ],
    ordering=[
        OrderingRule(
            before="temperature",
            after="air fry duration",
            reason="the temperature must be set before the timed air-fry step",
        ),
    ],
    min_liquid_volume_ml=0.0,
    vessel_capacity_ml=5500.0,
    max_fill_ratio=0.5,
)

DEFAULT_METHOD_RULES = {
    CookingMethod.PRESSURE_COOKER: PRESSURE_COOKER_RULES,
    CookingMethod.AIR_FRYER: AIR_FRYER_RULES,
}


def default_method_rules(method: CookingMethod) -> MethodRules:
    """Return the built-in rules for a cooking method."""
    return DEFAULT_METHOD_RULES[CookingMethod(method)]


class VarietyWeights(BaseModel):
    """Weights of the four variety-score terms. Normalized by their sum."""

    model_config = ConfigDict(frozen=True)

    protein: Annotated[float, Field(0.3, ge=0)]
    cuisine: Annotated[float, Field(0.3, ge=0)]
    duplicates: Annotated[float, Field(0.2, ge=0)]
    consecutive: Annotated[float, Field(0.2, ge=0)]

    @model_validator(mode="after")
    def validate_total(self) -> "VarietyWeights":
        """At least one weight must be positive."""
        if self.protein + self.cuisine + self.duplicates + self.consecutive <= 0:
            raise ValueError("variety weights must not all be zero")
        return self


class VarietyPolicy(BaseModel):
    """Thresholds for the plan variety gate."""

    model_config = ConfigDict(frozen=True)

    min_unique_proteins: Annotated[int, Field(3, ge=1, le=7)]
    min_unique_cuisines: Annotated[int, Field(3, ge=1, le=7)]
    min_variety_score: Annotated[float, Field(5.0, ge=0.0, le=10.0)]
    max_consecutive_repeats: Annotated[int, Field(0, ge=0, description="Tolerated consecutive-day repeats")]
    weights: VarietyWeights = Field(default_factory=VarietyWeights)


class AttemptBudgets(BaseModel):
    """Maximum attempts per regeneration target. The first generation counts as attempt 1."""

    model_config = ConfigDict(frozen=True)

    whole_meal: Annotated[int, Field(3, ge=1)]
    whole_plan: Annotated[int, Field(3, ge=1)]
    single_day: Annotated[int, Field(2, ge=0, description="Targeted single-day repairs per plan")]

    def for_target(self, target: RegenerationTarget) -> int:
        """Budget for a regeneration target."""
        return getattr(self, RegenerationTarget(target).value)


class MealRequest(BaseModel):
    """Request forwarded to the generator.

    Only cooking_method, dietary_restrictions, preferred_proteins, calorie_target
    and kind are semantically relevant for caching; the rest is volatile.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Annotated[str, Field("meal", pattern="^(meal|plan)$")]
    cooking_method: CookingMethod
    dietary_restrictions: List[str] = Field(default_factory=list)
    preferred_proteins: List[str] = Field(default_factory=list)
    calorie_target: Annotated[int, Field(ge=0)]
    user_id: Optional[str] = None
    message: Optional[str] = None
    requested_at: Optional[str] = None

    @field_validator("dietary_restrictions", "preferred_proteins", mode="before")
    @classmethod
    def split_csv(cls, value):
        """Accept comma-separated strings as well as lists."""
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value
