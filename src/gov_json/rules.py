# SPDX-License-Identifier: Apache-2.0
"""
Hard-rule checks over sanitized JSON. Pure module, no I/O.

Every check walks the whole tree and accumulates; nothing short-circuits.
Paths use dot notation for object keys and ``[i]`` for array items, rooted
at the value passed in (the root itself has the empty path).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator

from gov_json.sanitizer import ENV_REF_SUFFIX, INPUT_PRICE_KEY, OUTPUT_PRICE_KEY
from gov_json.secret_patterns import is_masked_placeholder


# ============================================================================
# Data structures
# ============================================================================


@dataclass(frozen=True, slots=True)
class Violation:
    kind: str
    path: str
    detail: str
    message: str = field(default="")

    def __str__(self) -> str:
        return self.message or self.detail


@dataclass(frozen=True, slots=True)
class Node:
    path: str
    key: str | None  # None for array items and the root
    value: Any
    parent_is_object: bool


# ============================================================================
# Rule tables
# ============================================================================

# (name, pattern, message) for malformed env reference shapes
ENV_REF_SHAPES: tuple[tuple[str, re.Pattern[str], str], ...] = (
    ("env_ref_colon", re.compile(r"env_ref:", re.IGNORECASE), "env_ref: inside a string"),
    ("env_ref_dot", re.compile(r"env_ref\.", re.IGNORECASE), "env_ref. inside a string"),
    ("env_ref_slash", re.compile(r"env_ref/", re.IGNORECASE), "env_ref/ inside a string"),
)

# Compared against keys lowercased with "-" and "_" removed
SENSITIVE_FRAGMENTS: tuple[str, ...] = (
    "apikey",
    "clientsecret",
    "clientid",
    "secretkey",
    "accesstoken",
    "refreshtoken",
    "anonkey",
    "servicerole",
    "privatekey",
    "password",
    "senha",
)

REQUIRED_NON_EMPTY: frozenset[str] = frozenset({
    "client_id_env_ref",
    "client_secret_env_ref",
    "api_key_env_ref",
    "anon_key_env_ref",
})

PRICING_KEY = "pricing"
PRICING_CANONICAL: dict[str, str] = {
    "inputper1m": INPUT_PRICE_KEY,
    "outputper1m": OUTPUT_PRICE_KEY,
}

NUMERIC_FIELD_HINTS: tuple[str, ...] = (
    "count", "limit", "amount", "month", "minute", "executions", "calls",
)
NUMERIC_FIELD_EXCLUSIONS: tuple[str, ...] = (
    "id", "uuid", "phone", "token", "key", "secret", "ref",
)
NEGATIVE_ALLOWED_HINTS: tuple[str, ...] = ("offset", "diff")

_NUMERIC_STRING = re.compile(r"^-?\d+(?:\.\d+)?$")
_NEGATIVE_INT_STRING = re.compile(r"^-\d+$")


# ============================================================================
# Tree walking
# ============================================================================


def join_path(path: str, key: str | int) -> str:
    if isinstance(key, int):
        return f"{path}[{key}]"
    return f"{path}.{key}" if path else key


def walk(value: Any, path: str = "") -> Iterator[Node]:
    """Depth-first pre-order visit of every node below ``value``."""
    if isinstance(value, dict):
        for key, item in value.items():
            child = join_path(path, key)
            yield Node(child, key, item, True)
            yield from walk(item, child)
    elif isinstance(value, list):
        for index, item in enumerate(value):
            child = join_path(path, index)
            yield Node(child, None, item, False)
            yield from walk(item, child)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize_key(key: str) -> str:
    return key.lower().replace("-", "").replace("_", "")


def _suggested_env_key(key: str) -> str:
    return key if key.endswith(ENV_REF_SUFFIX) else key + ENV_REF_SUFFIX


# ============================================================================
# Checks
# ============================================================================


def check_env_ref_syntax(value: Any) -> list[Violation]:
    """Strings (keys or values) using a forbidden separator after env_ref."""
    violations: list[Violation] = []
    for node in walk(value):
        texts = []
        if node.key is not None:
            texts.append(node.key)
        if isinstance(node.value, str):
            texts.append(node.value)
        for text in texts:
            for _name, pattern, label in ENV_REF_SHAPES:
                if pattern.search(text):
                    target = _suggested_env_key(node.key) if node.key else "*_env_ref"
                    violations.append(Violation(
                        kind="env_ref_syntax",
                        path=node.path,
                        detail=label,
                        message=(
                            f'Field "{node.path}": {label}; use a "{target}" field '
                            "holding the environment variable name"
                        ),
                    ))
                    break
    return violations


def check_sensitive_fields(value: Any) -> list[Violation]:
    """Sensitive keys holding literal values instead of env references."""
    violations: list[Violation] = []
    for node in walk(value):
        key = node.key
        if key is None or key.endswith(ENV_REF_SUFFIX):
            continue
        normalized = _normalize_key(key)
        if not any(fragment in normalized for fragment in SENSITIVE_FRAGMENTS):
            continue
        if not isinstance(node.value, str) or not node.value:
            continue
        if is_masked_placeholder(node.value):
            continue
        violations.append(Violation(
            kind="sensitive_field",
            path=node.path,
            detail=f"literal value in sensitive field {key!r}",
            message=(
                f'Field "{node.path}" should be "{key}{ENV_REF_SUFFIX}" '
                "holding the environment variable name"
            ),
        ))
    return violations


def check_required_fields(value: Any) -> list[Violation]:
    violations: list[Violation] = []
    for node in walk(value):
        if node.key in REQUIRED_NON_EMPTY and node.value in ("", None):
            violations.append(Violation(
                kind="required_empty",
                path=node.path,
                detail="empty required field",
                message=f'Required field "{node.path}" must not be empty',
            ))
    return violations


def check_pricing_format(value: Any) -> list[Violation]:
    """``pricing`` objects must use exactly input_per_1M / output_per_1M."""
    violations: list[Violation] = []
    for node in walk(value):
        if node.key != PRICING_KEY or not isinstance(node.value, dict):
            continue
        pricing = node.value
        for sub_key in pricing:
            expected = PRICING_CANONICAL.get(_normalize_key(sub_key))
            if expected is not None and sub_key != expected:
                violations.append(Violation(
                    kind="pricing_key",
                    path=node.path,
                    detail=f"{sub_key!r} should be {expected!r}",
                    message=f'{node.path}: use exactly "{expected}" (found "{sub_key}")',
                ))
        for canonical in (INPUT_PRICE_KEY, OUTPUT_PRICE_KEY):
            if canonical in pricing and not _is_number(pricing[canonical]):
                path = join_path(node.path, canonical)
                violations.append(Violation(
                    kind="pricing_type",
                    path=path,
                    detail="pricing value must be a number",
                    message=f"{path}: must be a number",
                ))
    return violations


def check_scalar_types(value: Any) -> list[Violation]:
    """Numbers, booleans and negatives smuggled in as strings."""
    violations: list[Violation] = []
    for node in walk(value):
        if node.key is None or not isinstance(node.value, str):
            continue
        key = node.key.lower()
        text = node.value

        numeric_field = any(h in key for h in NUMERIC_FIELD_HINTS)
        excluded = any(e in key for e in NUMERIC_FIELD_EXCLUSIONS)
        if _NUMERIC_STRING.match(text) and numeric_field and not excluded:
            violations.append(Violation(
                kind="numeric_string",
                path=node.path,
                detail=f"{text!r} is a string",
                message=f'Field "{node.path}": value "{text}" should be a number, not a string',
            ))

        if text.lower() in ("true", "false"):
            violations.append(Violation(
                kind="boolean_string",
                path=node.path,
                detail=f"{text!r} is a string",
                message=f'Field "{node.path}": value "{text}" should be a boolean, not a string',
            ))

        if _NEGATIVE_INT_STRING.match(text) and int(text) < 0:
            if not any(h in key for h in NEGATIVE_ALLOWED_HINTS):
                violations.append(Violation(
                    kind="negative_value",
                    path=node.path,
                    detail=f"negative value {text!r}",
                    message=f'Field "{node.path}": negative value "{text}" may be invalid',
                ))
    return violations


CHECKS = (
    check_env_ref_syntax,
    check_sensitive_fields,
    check_required_fields,
    check_pricing_format,
    check_scalar_types,
)


# ============================================================================
# Public API
# ============================================================================


def validate_hard_rules(value: Any) -> list[Violation]:
    """Run every check in order and return all violations found."""
    violations: list[Violation] = []
    for check in CHECKS:
        violations.extend(check(value))
    return violations


def violations_to_dicts(violations: list[Violation]) -> list[dict]:
    """Serialize violations for JSON response."""
    return [
        {"kind": v.kind, "path": v.path, "detail": v.detail, "message": str(v)}
        for v in violations
    ]
