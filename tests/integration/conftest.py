"""Pytest configuration for integration tests.

Loads .env and pins the engine settings the end-to-end scenarios assume,
before the module-level config is first imported.
"""

import os
from pathlib import Path

from dotenv import load_dotenv


PINNED_SETTINGS = {
    "CALORIE_TARGET": "2300",
    "CALORIE_TOLERANCE_PCT": "0.05",
    "PROTEIN_MIN_G": "130",
    "PROTEIN_MAX_G": "160",
    "MIN_UNIQUE_PROTEINS": "3",
    "MIN_UNIQUE_CUISINES": "3",
    "MAX_MEAL_ATTEMPTS": "3",
    "MAX_PLAN_ATTEMPTS": "3",
    "MAX_DAY_REPAIRS": "2",
    "GENERATION_TIMEOUT_SECONDS": "5",
    "ENABLE_CACHE": "true",
    "CACHE_KEY_PREFIX": "omad-it",
}


def pytest_configure(config):
    """Load .env (in project root), then override it with the pinned settings."""
    env_path = Path(__file__).parent.parent.parent / ".env"
    load_dotenv(env_path)
    os.environ.update(PINNED_SETTINGS)
    os.environ.setdefault("LOG_LEVEL", "WARNING")
