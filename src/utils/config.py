"""Configuration management for the meal validation engine.

Loads environment variables from system environment and .env file.
Priority order: system environment > .env file > hardcoded defaults

Validators never read this module: callers build explicit structs with the
factory methods below and pass them into every call.
"""

import os

from dotenv import load_dotenv

from src.models.models import CookingMethod
from src.models.rules import (
    AttemptBudgets,
    MethodRules,
    NutritionTargets,
    VarietyPolicy,
    VarietyWeights,
    default_method_rules,
)


# Load .env file (if exists, silently continues if missing)
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        """Initialize configuration from environment variables."""
        # Nutrition targets for the single daily meal (OMAD). Defaults: 2300 kcal ±5%
        self.CALORIE_TARGET: int = int(os.getenv("CALORIE_TARGET", "2300"))
        self.CALORIE_TOLERANCE_PCT: float = float(os.getenv("CALORIE_TOLERANCE_PCT", "0.05"))
        self.PROTEIN_MIN_G: float = float(os.getenv("PROTEIN_MIN_G", "130"))
        self.PROTEIN_MAX_G: float = float(os.getenv("PROTEIN_MAX_G", "160"))
        self.CARBS_MIN_G: float = float(os.getenv("CARBS_MIN_G", "230"))
        self.CARBS_MAX_G: float = float(os.getenv("CARBS_MAX_G", "280"))
        self.FAT_MIN_G: float = float(os.getenv("FAT_MIN_G", "70"))
        self.FAT_MAX_G: float = float(os.getenv("FAT_MAX_G", "90"))
        # Fiber floor is reported but never blocks acceptance
        self.FIBER_MIN_G: float = float(os.getenv("FIBER_MIN_G", "30"))

        # Variety gate. Cuisine minimum is 3 by default; some deployments use 4
        self.MIN_UNIQUE_PROTEINS: int = int(os.getenv("MIN_UNIQUE_PROTEINS", "3"))
        self.MIN_UNIQUE_CUISINES: int = int(os.getenv("MIN_UNIQUE_CUISINES", "3"))
        self.MIN_VARIETY_SCORE: float = float(os.getenv("MIN_VARIETY_SCORE", "5.0"))
        # Variety score weights (normalized by their sum)
        self.VARIETY_WEIGHT_PROTEIN: float = float(os.getenv("VARIETY_WEIGHT_PROTEIN", "0.3"))
        self.VARIETY_WEIGHT_CUISINE: float = float(os.getenv("VARIETY_WEIGHT_CUISINE", "0.3"))
        self.VARIETY_WEIGHT_DUPLICATES: float = float(os.getenv("VARIETY_WEIGHT_DUPLICATES", "0.2"))
        self.VARIETY_WEIGHT_CONSECUTIVE: float = float(os.getenv("VARIETY_WEIGHT_CONSECUTIVE", "0.2"))

        # Attempt budgets: the first generation counts as attempt 1
        self.MAX_MEAL_ATTEMPTS: int = int(os.getenv("MAX_MEAL_ATTEMPTS", "3"))
        self.MAX_PLAN_ATTEMPTS: int = int(os.getenv("MAX_PLAN_ATTEMPTS", "3"))
        # Targeted single-day repairs per plan (cheaper than a full 7-day regeneration)
        self.MAX_DAY_REPAIRS: int = int(os.getenv("MAX_DAY_REPAIRS", "2"))

        # Generator call timeout in seconds
        self.GENERATION_TIMEOUT_SECONDS: float = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60"))

        # Cache settings for accepted results
        self.ENABLE_CACHE: bool = _flag("ENABLE_CACHE", "true")
        self.CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "86400"))
        self.CACHE_KEY_PREFIX: str = os.getenv("CACHE_KEY_PREFIX", "omad")
        # Calorie targets within the same bucket share cache entries
        self.CALORIE_BUCKET_SIZE: int = int(os.getenv("CALORIE_BUCKET_SIZE", "100"))

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any value is out of range.
        """
        if self.CALORIE_TARGET <= 0:
            raise ValueError(f"CALORIE_TARGET must be positive, got: {self.CALORIE_TARGET}")
        if not (0.0 < self.CALORIE_TOLERANCE_PCT < 1.0):
            raise ValueError(
                f"CALORIE_TOLERANCE_PCT must be between 0 and 1 (exclusive), got: {self.CALORIE_TOLERANCE_PCT}"
            )
        for macro in ("PROTEIN", "CARBS", "FAT"):
            low = getattr(self, f"{macro}_MIN_G")
            high = getattr(self, f"{macro}_MAX_G")
            if low < 0 or low > high:
                raise ValueError(f"{macro}_MIN_G/{macro}_MAX_G must satisfy 0 <= min <= max, got: {low}-{high}")
        if self.FIBER_MIN_G < 0:
            raise ValueError(f"FIBER_MIN_G must be non-negative, got: {self.FIBER_MIN_G}")
        if not (1 <= self.MIN_UNIQUE_PROTEINS <= 7):
            raise ValueError(f"MIN_UNIQUE_PROTEINS must be between 1 and 7, got: {self.MIN_UNIQUE_PROTEINS}")
        if not (1 <= self.MIN_UNIQUE_CUISINES <= 7):
            raise ValueError(f"MIN_UNIQUE_CUISINES must be between 1 and 7, got: {self.MIN_UNIQUE_CUISINES}")
        if not (0.0 <= self.MIN_VARIETY_SCORE <= 10.0):
            raise ValueError(f"MIN_VARIETY_SCORE must be between 0 and 10, got: {self.MIN_VARIETY_SCORE}")
        weights = (
            self.VARIETY_WEIGHT_PROTEIN,
            self.VARIETY_WEIGHT_CUISINE,
            self.VARIETY_WEIGHT_DUPLICATES,
            self.VARIETY_WEIGHT_CONSECUTIVE,
        )
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise ValueError(f"Variety weights must be non-negative and not all zero, got: {weights}")
        if self.MAX_MEAL_ATTEMPTS < 1:
            raise ValueError(f"MAX_MEAL_ATTEMPTS must be at least 1, got: {self.MAX_MEAL_ATTEMPTS}")
        if self.MAX_PLAN_ATTEMPTS < 1:
            raise ValueError(f"MAX_PLAN_ATTEMPTS must be at least 1, got: {self.MAX_PLAN_ATTEMPTS}")
        if self.MAX_DAY_REPAIRS < 0:
            raise ValueError(f"MAX_DAY_REPAIRS must be non-negative, got: {self.MAX_DAY_REPAIRS}")
        if self.GENERATION_TIMEOUT_SECONDS <= 0:
            raise ValueError(
                f"GENERATION_TIMEOUT_SECONDS must be positive, got: {self.GENERATION_TIMEOUT_SECONDS}"
            )
        if self.CACHE_TTL_SECONDS < 1:
            raise ValueError(f"CACHE_TTL_SECONDS must be at least 1 second, got: {self.CACHE_TTL_SECONDS}")
        if self.CALORIE_BUCKET_SIZE < 1:
            raise ValueError(f"CALORIE_BUCKET_SIZE must be at least 1, got: {self.CALORIE_BUCKET_SIZE}")

    def nutrition_targets(self) -> NutritionTargets:
        """Build the macro targets struct."""
        return NutritionTargets(
            calorie_target=self.CALORIE_TARGET,
            calorie_tolerance_pct=self.CALORIE_TOLERANCE_PCT,
            protein_min_g=self.PROTEIN_MIN_G,
            protein_max_g=self.PROTEIN_MAX_G,
            carbs_min_g=self.CARBS_MIN_G,
            carbs_max_g=self.CARBS_MAX_G,
            fat_min_g=self.FAT_MIN_G,
            fat_max_g=self.FAT_MAX_G,
            fiber_min_g=self.FIBER_MIN_G,
        )

    def variety_policy(self) -> VarietyPolicy:
        """Build the variety gate thresholds and score weights."""
        return VarietyPolicy(
            min_unique_proteins=self.MIN_UNIQUE_PROTEINS,
            min_unique_cuisines=self.MIN_UNIQUE_CUISINES,
            min_variety_score=self.MIN_VARIETY_SCORE,
            weights=VarietyWeights(
                protein=self.VARIETY_WEIGHT_PROTEIN,
                cuisine=self.VARIETY_WEIGHT_CUISINE,
                duplicates=self.VARIETY_WEIGHT_DUPLICATES,
                consecutive=self.VARIETY_WEIGHT_CONSECUTIVE,
            ),
        )

    def attempt_budgets(self) -> AttemptBudgets:
        """Build the per-target attempt budgets."""
        return AttemptBudgets(
            whole_meal=self.MAX_MEAL_ATTEMPTS,
            whole_plan=self.MAX_PLAN_ATTEMPTS,
            single_day=self.MAX_DAY_REPAIRS,
        )

    def method_rules(self) -> dict[CookingMethod, MethodRules]:
        """Built-in format rules for every cooking method."""
        return {method: default_method_rules(method) for method in CookingMethod}


# Create module-level config instance and validate immediately
config = Config()
config.validate()
