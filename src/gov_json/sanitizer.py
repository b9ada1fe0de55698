# SPDX-License-Identifier: Apache-2.0
"""
Structural normalization of parsed JSON. Pure, never fails, never drops data.

``sanitize`` only reshapes (key casing, pricing aliases, numeric pricing
values, scopes lists) so the rule checks see canonical input.
``enforce_env_ref_contract`` rewrites ``"key": "env_ref:VAR"`` pairs and is
applied to repaired payloads only.
"""

from __future__ import annotations

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

INPUT_PRICE_KEY = "input_per_1M"
OUTPUT_PRICE_KEY = "output_per_1M"
PRICING_KEYS = (INPUT_PRICE_KEY, OUTPUT_PRICE_KEY)

# Lowercased alias -> canonical pricing key
PRICING_ALIASES: dict[str, str] = {
    "inputper1m": INPUT_PRICE_KEY,
    "outputper1m": OUTPUT_PRICE_KEY,
}

SCOPES_KEY = "scopes"
ENV_REF_SUFFIX = "_env_ref"

_UPPER = re.compile(r"[A-Z]")
_NUMERIC = re.compile(r"^\s*-?\d+(?:\.\d+)?\s*$")
_SCOPE_SPLIT = re.compile(r"[,\s]+")
_ENV_REF_VALUE = re.compile(r"^env_ref:(.+)$", re.IGNORECASE | re.DOTALL)


# ============================================================================
# Key helpers
# ============================================================================


def to_snake_case(key: str) -> str:
    """camelCase -> snake_case ("clientId" -> "client_id")."""
    snake = _UPPER.sub(lambda m: "_" + m.group(0), key).lower()
    return snake[1:] if snake.startswith("_") else snake


def canonical_key(key: str) -> str:
    """Name a key takes after sanitization (collisions aside)."""
    alias = PRICING_ALIASES.get(key.lower())
    if alias is not None:
        return alias
    if _UPPER.search(key) and "_" not in key:
        return to_snake_case(key)
    return key


def parse_number(value: str) -> int | float | None:
    """Number for a numeric-looking string, else None."""
    if not _NUMERIC.match(value):
        return None
    stripped = value.strip()
    if "." in stripped:
        return float(stripped)
    return int(stripped)


# ============================================================================
# Public API
# ============================================================================


def sanitize(value: Any) -> Any:
    """Depth-first normalization preserving array/object shape."""
    if isinstance(value, list):
        return [sanitize(item) for item in value]
    if not isinstance(value, dict):
        return value

    result: dict[str, Any] = {}
    for key, item in value.items():
        new_key = canonical_key(key)
        if new_key != key and (new_key in value or new_key in result):
            # Renaming would overwrite a sibling
            new_key = key
        elif new_key != key:
            logger.debug("renamed key %r -> %r", key, new_key)

        if new_key in PRICING_KEYS and isinstance(item, str):
            number = parse_number(item)
            if number is not None:
                item = number

        if new_key == SCOPES_KEY and isinstance(item, str):
            item = [token for token in _SCOPE_SPLIT.split(item) if token]

        result[new_key] = sanitize(item)
    return result


def enforce_env_ref_contract(value: Any) -> Any:
    """Rewrite ``"key": "env_ref:VAR"`` to ``"key_env_ref": "VAR"``."""
    if isinstance(value, list):
        return [enforce_env_ref_contract(item) for item in value]
    if not isinstance(value, dict):
        return value

    result: dict[str, Any] = {}
    for key, item in value.items():
        if isinstance(item, str):
            match = _ENV_REF_VALUE.match(item)
            if match:
                base = canonical_key(key)
                new_key = base if base.endswith(ENV_REF_SUFFIX) else base + ENV_REF_SUFFIX
                if new_key == key or (new_key not in value and new_key not in result):
                    logger.debug("env_ref rewrite %r -> %r", key, new_key)
                    result[new_key] = match.group(1)
                    continue
                # A sibling already holds the reference; keep both as they are
                logger.debug("env_ref rewrite of %r skipped, %r exists", key, new_key)
        result[key] = enforce_env_ref_contract(item)
    return result
