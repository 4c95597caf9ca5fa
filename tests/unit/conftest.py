"""Shared fixtures for unit tests: OMAD targets, meal and plan factories."""

import pytest

from src.models.models import Meal, Plan
from src.models.rules import NutritionTargets
from tests.unit.factories import build_meal, build_plan


@pytest.fixture
def targets() -> NutritionTargets:
    """OMAD targets: 2300 kcal ±5%, P 130-160, C 230-280, F 70-90, fiber >= 30."""
    return NutritionTargets(
        calorie_target=2300,
        calorie_tolerance_pct=0.05,
        protein_min_g=130,
        protein_max_g=160,
        carbs_min_g=230,
        carbs_max_g=280,
        fat_min_g=70,
        fat_max_g=90,
        fiber_min_g=30,
    )


@pytest.fixture
def meal() -> Meal:
    return build_meal()


@pytest.fixture
def plan() -> Plan:
    return build_plan()
