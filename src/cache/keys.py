"""Deterministic cache/dedup keys for generation requests.

Only semantically relevant fields take part: kind, cooking method, dietary
restrictions, preferred proteins and a calorie bucket. User ids, message text
and timestamps are dropped so equivalent requests share a key.
"""

import hashlib
import json
from typing import Any, Dict, Iterable, Mapping, Union

from src.models.rules import MealRequest


DEFAULT_BUCKET_SIZE = 100
DEFAULT_PREFIX = "omad"


def _normalized_set(values: Iterable[str]) -> list[str]:
    return sorted({" ".join(str(v).split()).lower() for v in values if str(v).strip()})


def normalize_request(
    request: Union[MealRequest, Mapping[str, Any]],
    bucket_size: int = DEFAULT_BUCKET_SIZE,
) -> Dict[str, Any]:
    """Reduce a request to the fields that determine the generated result."""
    if not isinstance(request, MealRequest):
        request = MealRequest.model_validate(dict(request))
    if bucket_size < 1:
        raise ValueError(f"bucket_size must be at least 1, got: {bucket_size}")

    return {
        "kind": request.kind,
        "cooking_method": request.cooking_method.value,
        "dietary_restrictions": _normalized_set(request.dietary_restrictions),
        "preferred_proteins": _normalized_set(request.preferred_proteins),
        "calorie_bucket": request.calorie_target // bucket_size * bucket_size,
    }


def build_key(
    request: Union[MealRequest, Mapping[str, Any]],
    prefix: str = DEFAULT_PREFIX,
    bucket_size: int = DEFAULT_BUCKET_SIZE,
) -> str:
    """Build a stable cache key: `<prefix>:<kind>:<sha256 of the normalized request>`."""
    normalized = normalize_request(request, bucket_size)
    canonical = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{prefix}:{normalized['kind']}:{digest}"
