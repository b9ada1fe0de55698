# SPDX-License-Identifier: Apache-2.0
"""Unit tests for the hard-rule checks."""

import pytest

from gov_json.rules import (
    Violation,
    check_env_ref_syntax,
    check_pricing_format,
    check_required_fields,
    check_scalar_types,
    check_sensitive_fields,
    validate_hard_rules,
    violations_to_dicts,
    walk,
)
from gov_json.sanitizer import sanitize


def kinds(violations):
    return [v.kind for v in violations]


# ============================================================================
# Tree walking
# ============================================================================


def test_walk_paths():
    value = {"a": [{"b": 1}, 2], "c": {"d": None}}
    paths = [node.path for node in walk(value)]
    assert paths == ["a", "a[0]", "a[0].b", "a[1]", "c", "c.d"]


def test_walk_keys_only_for_object_members():
    nodes = list(walk([{"k": "v"}]))
    assert nodes[0].key is None
    assert not nodes[0].parent_is_object
    assert nodes[1].key == "k"
    assert nodes[1].parent_is_object


def test_walk_scalar_root_yields_nothing():
    assert list(walk("text")) == []


# ============================================================================
# Worked examples
# ============================================================================


def test_env_ref_string_after_sanitize():
    value = sanitize({"apiKey": "env_ref:MY_KEY"})
    assert value == {"api_key": "env_ref:MY_KEY"}
    violations = validate_hard_rules(value)
    assert kinds(violations) == ["env_ref_syntax", "sensitive_field"]
    assert all(v.path == "api_key" for v in violations)
    assert "api_key_env_ref" in str(violations[0])


def test_numeric_and_boolean_strings():
    violations = validate_hard_rules({"count": "5", "enabled": "true"})
    assert [(v.kind, v.path) for v in violations] == [
        ("numeric_string", "count"),
        ("boolean_string", "enabled"),
    ]


def test_pricing_aliases_flagged_before_sanitize():
    value = {"pricing": {"inputPer1M": 10, "outputPer1M": 20}}
    violations = validate_hard_rules(value)
    assert kinds(violations) == ["pricing_key", "pricing_key"]
    messages = " ".join(str(v) for v in violations)
    assert '"input_per_1M"' in messages
    assert '"output_per_1M"' in messages


def test_pricing_aliases_clean_after_sanitize():
    value = sanitize({"pricing": {"inputPer1M": "10", "outputPer1M": 20}})
    assert validate_hard_rules(value) == []


# ============================================================================
# env_ref syntax
# ============================================================================


@pytest.mark.parametrize("text", ["env_ref:X", "ENV_REF.X", "env_ref/X", "see env_ref:X"])
def test_env_ref_shapes(text):
    violations = check_env_ref_syntax({"secret_name": text})
    assert kinds(violations) == ["env_ref_syntax"]
    assert "secret_name_env_ref" in violations[0].message


def test_env_ref_in_array_item():
    violations = check_env_ref_syntax({"refs": ["ok", "env_ref/A"]})
    assert [v.path for v in violations] == ["refs[1]"]
    assert "*_env_ref" in violations[0].message


def test_env_ref_in_key():
    violations = check_env_ref_syntax({"env_ref:TOKEN": "x"})
    assert [v.path for v in violations] == ["env_ref:TOKEN"]


def test_canonical_env_ref_field_passes():
    assert check_env_ref_syntax({"api_key_env_ref": "OPENAI_API_KEY"}) == []


# ============================================================================
# Sensitive fields
# ============================================================================


@pytest.mark.parametrize("key", [
    "api_key", "client-secret", "clientId", "access_token", "refresh_token",
    "anon_key", "service_role", "private_key", "password", "senha", "aws_secret_key",
])
def test_sensitive_keys_with_literals(key):
    violations = check_sensitive_fields({key: "literal"})
    assert kinds(violations) == ["sensitive_field"]
    assert f"{key}_env_ref" in violations[0].message


def test_sensitive_nested_path():
    violations = check_sensitive_fields({"providers": [{"api_key": "abc"}]})
    assert [v.path for v in violations] == ["providers[0].api_key"]


def test_masked_placeholder_is_allowed():
    assert check_sensitive_fields({"api_key": "[OPENAI_KEY_MASKED]"}) == []


def test_empty_and_non_string_values_skipped():
    assert check_sensitive_fields({"password": "", "api_key": 123, "client_id": None}) == []


def test_env_ref_suffix_keys_skipped():
    assert check_sensitive_fields({"client_secret_env_ref": "CLIENT_SECRET"}) == []


# ============================================================================
# Required fields
# ============================================================================


def test_required_fields_empty_or_null():
    violations = check_required_fields({
        "client_id_env_ref": "",
        "nested": {"api_key_env_ref": None},
        "anon_key_env_ref": "ANON",
    })
    assert [v.path for v in violations] == ["client_id_env_ref", "nested.api_key_env_ref"]
    assert violations[0].message == 'Required field "client_id_env_ref" must not be empty'


def test_required_fields_absent_is_fine():
    assert check_required_fields({"name": "x"}) == []


# ============================================================================
# Pricing
# ============================================================================


def test_pricing_value_must_be_number():
    violations = check_pricing_format({"pricing": {"input_per_1M": "ten", "output_per_1M": 2}})
    assert [(v.kind, v.path) for v in violations] == [("pricing_type", "pricing.input_per_1M")]


def test_pricing_boolean_is_not_a_number():
    violations = check_pricing_format({"pricing": {"input_per_1M": True}})
    assert kinds(violations) == ["pricing_type"]


def test_pricing_extra_keys_allowed():
    value = {"pricing": {"input_per_1M": 1, "output_per_1M": 2, "currency": "USD"}}
    assert check_pricing_format(value) == []


def test_pricing_ignored_outside_pricing_object():
    assert check_pricing_format({"inputPer1M": 1, "pricing": "free"}) == []


# ============================================================================
# Scalar types
# ============================================================================


def test_numeric_hint_excluded_for_identifiers():
    assert check_scalar_types({"account_id": "12345"}) == []


def test_numeric_string_in_non_hinted_field_ignored():
    assert check_scalar_types({"zip": "01234"}) == []


def test_boolean_string_any_case():
    assert kinds(check_scalar_types({"flag": "FALSE"})) == ["boolean_string"]


def test_negative_values():
    assert kinds(check_scalar_types({"balance": "-5"})) == ["negative_value"]
    assert kinds(check_scalar_types({"limit": "-5"})) == ["numeric_string", "negative_value"]
    assert check_scalar_types({"offset": "-5", "time_diff": "-2"}) == []


def test_scalar_checks_ignore_real_types():
    assert check_scalar_types({"count": 5, "enabled": True, "balance": -5}) == []


# ============================================================================
# Aggregation
# ============================================================================


def test_clean_payload_has_no_violations():
    value = {
        "name": "provider",
        "api_key_env_ref": "OPENAI_API_KEY",
        "pricing": {"input_per_1M": 1.5, "output_per_1M": 6},
        "scopes": ["read"],
        "max_calls": 10,
    }
    assert validate_hard_rules(value) == []


def test_violation_str_prefers_message():
    assert str(Violation("k", "p", "detail", "message")) == "message"
    assert str(Violation("k", "p", "detail")) == "detail"


def test_violations_to_dicts():
    dicts = violations_to_dicts([Violation("required_empty", "a", "empty", "msg")])
    assert dicts == [{"kind": "required_empty", "path": "a", "detail": "empty", "message": "msg"}]
