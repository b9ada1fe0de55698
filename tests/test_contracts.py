# SPDX-License-Identifier: Apache-2.0
"""Tests for intent classification and output contracts."""

import pytest

from gov_json.contracts import (
    CONTRACT_TEMPLATES,
    JSON_ONLY_INSTRUCTIONS,
    ContractType,
    IntentClassifier,
    build_contract_prompt,
    classify,
    get_contract,
    is_incident,
    is_json_requested,
)


@pytest.fixture
def classifier() -> IntentClassifier:
    return IntentClassifier()


# ============================================================================
# Intent detection
# ============================================================================


class TestDetectIntent:
    @pytest.mark.parametrize("request_text, expected", [
        ("Create a spreadsheet with last month's sales", ContractType.ACTION_EXECUTION),
        ("pode criar planilha de vendas?", ContractType.ACTION_EXECUTION),
        ("Please send an email to the team", ContractType.ACTION_EXECUTION),
        ("me mostre o json da configuração", ContractType.JSON_FIX),
        ("Show me the JSON for this provider", ContractType.JSON_FIX),
        ("what is the payload for this webhook", ContractType.JSON_FIX),
        ("Why does the console print this?", ContractType.LOG_ANALYSIS),
        ("here is the stack trace from prod", ContractType.LOG_ANALYSIS),
        ("analise a planilha de custos", ContractType.SPREADSHEET_ANALYSIS),
        ("Analyze the spreadsheet and tell me the trend", ContractType.SPREADSHEET_ANALYSIS),
        ("What's a good name for a cat?", ContractType.GENERAL),
    ])
    def test_keywords(self, classifier, request_text, expected):
        assert classifier.detect_intent(request_text) is expected

    def test_keywords_match_whole_words(self, classifier):
        assert classifier.detect_intent("update the catalog entries") is ContractType.GENERAL

    def test_action_beats_json(self, classifier):
        text = "create a spreadsheet and show me the json"
        assert classifier.detect_intent(text) is ContractType.ACTION_EXECUTION

    def test_json_beats_logs(self, classifier):
        text = "show me the json from these logs"
        assert classifier.detect_intent(text) is ContractType.JSON_FIX

    @pytest.mark.parametrize("kind, expected", [
        ("text/plain", ContractType.LOG_ANALYSIS),
        ("application/x-log", ContractType.LOG_ANALYSIS),
        ("image/png", ContractType.VISUAL_TROUBLESHOOTING),
        ("text/csv", ContractType.SPREADSHEET_ANALYSIS),
        ("application/vnd.ms-excel", ContractType.SPREADSHEET_ANALYSIS),
        ("application/pdf", ContractType.DOC_SUMMARY),
        ("application/octet-stream", ContractType.GENERAL),
    ])
    def test_attachment_kinds(self, classifier, kind, expected):
        assert classifier.detect_intent("take a look", True, [kind]) is expected

    def test_attachment_kinds_ignored_without_flag(self, classifier):
        assert classifier.detect_intent("take a look", False, ["image/png"]) is ContractType.GENERAL

    def test_keyword_beats_image_attachment(self, classifier):
        result = classifier.detect_intent("the console shows this", True, ["image/png"])
        assert result is ContractType.LOG_ANALYSIS

    def test_injected_keyword_table(self):
        custom = IntentClassifier(keywords={"action_execution": ("deploy",)})
        assert custom.detect_intent("deploy it now") is ContractType.ACTION_EXECUTION
        assert custom.detect_intent("show me the json") is ContractType.GENERAL


# ============================================================================
# Flags
# ============================================================================


class TestFlags:
    @pytest.mark.parametrize("text", ["give me the JSON", "quero o payload", "formato de dados", "raw data please"])
    def test_json_requested(self, text):
        assert is_json_requested(text)

    def test_json_not_requested(self):
        assert not is_json_requested("summarize this for me")

    @pytest.mark.parametrize("text", ["Está errado, refaça", "você se confundiu", "That's wrong", "please check again"])
    def test_incident(self, text):
        assert is_incident(text)

    def test_not_incident(self):
        assert not is_incident("thanks, looks right")


# ============================================================================
# Contracts
# ============================================================================


class TestContracts:
    def test_every_type_has_a_template(self):
        for contract_type in ContractType:
            assert CONTRACT_TEMPLATES[contract_type].contract_type is contract_type
            assert CONTRACT_TEMPLATES[contract_type].output_rules

    def test_templates_are_read_only(self):
        with pytest.raises(TypeError):
            CONTRACT_TEMPLATES[ContractType.GENERAL] = None

    def test_json_only_json_fix_uses_strict_instructions(self):
        contract = get_contract(ContractType.JSON_FIX, json_only=True)
        assert contract.template.system_instructions == JSON_ONLY_INSTRUCTIONS
        assert contract.output_rules == CONTRACT_TEMPLATES[ContractType.JSON_FIX].output_rules

    def test_json_only_other_contract_keeps_instructions(self):
        contract = get_contract(ContractType.LOG_ANALYSIS, json_only=True)
        assert contract.json_only
        assert contract.template is CONTRACT_TEMPLATES[ContractType.LOG_ANALYSIS]

    def test_classify_sets_json_only(self):
        contract = classify("give me the json")
        assert contract.contract_type is ContractType.JSON_FIX
        assert contract.json_only

    def test_classify_general(self):
        contract = classify("hello there")
        assert contract.contract_type is ContractType.GENERAL
        assert not contract.json_only
        assert contract.template.system_instructions.startswith("OUTPUT PROTOCOL")

    def test_to_dict(self):
        data = get_contract(ContractType.DOC_SUMMARY).to_dict()
        assert data["contract_type"] == "doc_summary"
        assert data["json_only"] is False
        assert isinstance(data["output_rules"], list)
        assert data["system_instructions"]


# ============================================================================
# Prompt building
# ============================================================================


class TestBuildContractPrompt:
    def test_header_and_numbered_rules(self):
        prompt = build_contract_prompt(get_contract(ContractType.JSON_FIX))
        assert prompt.startswith("=== OUTPUT CONTRACT: JSON_FIX ===")
        assert "MANDATORY OUTPUT RULES:" in prompt
        assert "1. 100% snake_case keys" in prompt
        assert "JSON ONLY MODE" not in prompt
        assert "INCIDENT PROTOCOL" not in prompt

    def test_json_only_footer(self):
        prompt = build_contract_prompt(get_contract(ContractType.JSON_FIX, json_only=True))
        assert prompt.endswith("JSON ONLY MODE: return ONLY the JSON.")

    def test_incident_protocol(self):
        prompt = build_contract_prompt(get_contract(ContractType.GENERAL), incident=True)
        assert "INCIDENT PROTOCOL ACTIVE" in prompt
