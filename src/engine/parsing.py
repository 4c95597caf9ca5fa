"""Boundary parsing of generator output into Meal / Plan models.

Accepts dicts or JSON strings, including JSON wrapped in a Markdown code fence
as LLMs tend to return it. Any schema problem becomes InvalidInputError.
"""

import json
import re
from typing import Any, Union

from pydantic import ValidationError

from src.models.models import Meal, Plan
from src.utils.errors import InvalidInputError
from src.utils.logger import logger


_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


def load_payload(raw: Union[str, bytes, dict, list]) -> Any:
    """Decode a JSON payload, stripping a surrounding ```json fence if present."""
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError(f"Candidate is not valid UTF-8: {e}") from e
    if not isinstance(raw, str):
        raise InvalidInputError(f"Unsupported payload type: {type(raw).__name__}")

    match = _FENCE.match(raw)
    text = match.group(1) if match else raw
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError) as e:
        raise InvalidInputError(f"Candidate is not valid JSON: {e}") from e


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}" for err in error.errors()
    )


def parse_meal(raw: Union[str, bytes, dict]) -> Meal:
    """Parse one meal candidate.

    Raises:
        InvalidInputError: If the payload is not JSON or misses required fields.
    """
    data = load_payload(raw)
    try:
        return Meal.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Rejected malformed meal candidate: {_describe(e)}")
        raise InvalidInputError(f"Malformed meal: {_describe(e)}") from e


def parse_plan(raw: Union[str, bytes, dict, list]) -> Plan:
    """Parse a plan candidate given as `{"days": [...]}` or a bare list of meals.

    The seven-day requirement is enforced later by the variety analyzer.
    """
    data = load_payload(raw)
    if isinstance(data, list):
        data = {"days": data}
    try:
        return Plan.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Rejected malformed plan candidate: {_describe(e)}")
        raise InvalidInputError(f"Malformed plan: {_describe(e)}") from e
