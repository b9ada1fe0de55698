# SPDX-License-Identifier: Apache-2.0
"""
Output contracts: intent classification and per-contract instructions.

The classifier looks only at the user's request and attachment kinds, never
at the model's answer. Keyword phrases match on word boundaries against the
lowercased request; the first matching rule wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping


class ContractType(str, Enum):
    JSON_FIX = "json_fix"
    DOC_SUMMARY = "doc_summary"
    SPREADSHEET_ANALYSIS = "spreadsheet_analysis"
    VISUAL_TROUBLESHOOTING = "visual_troubleshooting"
    LOG_ANALYSIS = "log_analysis"
    ACTION_EXECUTION = "action_execution"
    GENERAL = "general"


# ============================================================================
# Data structures
# ============================================================================


@dataclass(frozen=True, slots=True)
class ContractTemplate:
    contract_type: ContractType
    system_instructions: str
    output_rules: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Contract:
    contract_type: ContractType
    json_only: bool
    template: ContractTemplate

    @property
    def output_rules(self) -> tuple[str, ...]:
        return self.template.output_rules

    def to_dict(self) -> dict:
        return {
            "contract_type": self.contract_type.value,
            "json_only": self.json_only,
            "system_instructions": self.template.system_instructions,
            "output_rules": list(self.template.output_rules),
        }


# ============================================================================
# Keyword tables (pt-BR + English)
# ============================================================================

INTENT_KEYWORDS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "action_execution": (
        "criar planilha", "gerar planilha", "crie uma planilha", "faz uma planilha",
        "faça uma planilha", "criar documento", "gerar doc", "gerar documento",
        "enviar email", "agendar evento",
        "create spreadsheet", "create a spreadsheet", "make a sheet",
        "build a spreadsheet", "create a document", "send an email",
        "schedule an event", "schedule a meeting",
    ),
    "json_fix": (
        "traga um json", "traga o json", "me mostre o json", "formato json",
        "payload", "estrutura de dados", "gerar json", "api response",
        "raw data", "json format", "show me the json", "return the json",
        "give me the json",
    ),
    "log_analysis": (
        "log", "logs", "console", "stack trace", "stacktrace", "traceback",
        "exception", "debug", "warning", "error log",
    ),
    "spreadsheet_analysis": (
        "analise a planilha", "detalhe a tabela", "estatísticas da planilha",
        "o que tem nesse excel", "análise de dados",
        "analyze the spreadsheet", "spreadsheet analysis", "data analysis",
    ),
    "incident": (
        "está errado", "não foi isso que eu pedi", "corrija isso", "re-audite",
        "verifique novamente", "você se confundiu",
        "that's wrong", "that is wrong", "not what i asked", "check again",
    ),
})

JSON_REQUEST_MARKERS: tuple[str, ...] = ("json", "formato de dados", "payload", "raw data")


# ============================================================================
# Contract templates
# ============================================================================

MASTER_INSTRUCTION = """\
OUTPUT PROTOCOL (mandatory):
A) Never show JSON, schemas or technical logs unless the user explicitly asks for them.
B) Answer in the user's language.
C) Classify the request before answering.
D) Read and extract only what is needed.
E) Technical output uses snake_case keys and never contains secrets.
F) Answer exactly what was asked.
G) If something cannot be done yet, say so plainly.
H) Deliver a human, actionable answer."""

_TEMPLATES: dict[ContractType, ContractTemplate] = {
    ContractType.JSON_FIX: ContractTemplate(
        ContractType.JSON_FIX,
        f"{MASTER_INSTRUCTION}\nReturn the final corrected JSON followed by a short "
        "checklist (at most 6 items) of recommended validations.",
        (
            "100% snake_case keys",
            'Forbidden: "env_ref:NAME" as a string value. Always use *_env_ref: "NAME"',
            "Pricing keys are exactly input_per_1M and output_per_1M",
            "Required fields (such as client_id_env_ref) are never empty",
            "Never leak real tokens, JWTs or sk- keys",
        ),
    ),
    ContractType.DOC_SUMMARY: ContractTemplate(
        ContractType.DOC_SUMMARY,
        f"{MASTER_INSTRUCTION}\nSummarize the document around its purpose. "
        "Never paste the whole document.",
        (
            "Executive summary (3-6 lines)",
            "Key data (bullets)",
            "Points of attention and recommended actions",
            "References (pages or excerpts, at most 3-5)",
        ),
    ),
    ContractType.VISUAL_TROUBLESHOOTING: ContractTemplate(
        ContractType.VISUAL_TROUBLESHOOTING,
        f"{MASTER_INSTRUCTION}\nTreat this as visual troubleshooting. Focus on what "
        "was highlighted or evidenced.",
        (
            "What was highlighted and what the evidence shows",
            "Probable cause (top 1-3)",
            "Step-by-step fix and how to verify it",
            "No general summary when something was highlighted",
        ),
    ),
    ContractType.SPREADSHEET_ANALYSIS: ContractTemplate(
        ContractType.SPREADSHEET_ANALYSIS,
        f"{MASTER_INSTRUCTION}\nWhen asked for detail, explain in rich, friendly text. "
        "Do not use JSON by default.",
        (
            "Explain the content in natural language",
            "Highlight trends and insights without technical IDs",
            "Actionable improvement suggestions",
            "JSON only when explicitly requested",
        ),
    ),
    ContractType.LOG_ANALYSIS: ContractTemplate(
        ContractType.LOG_ANALYSIS,
        f"{MASTER_INSTRUCTION}\nIdentify the root error and its impact.",
        (
            "Root error detected",
            "Context and impact",
            "Exact fix and how to validate it",
        ),
    ),
    ContractType.ACTION_EXECUTION: ContractTemplate(
        ContractType.ACTION_EXECUTION,
        f"{MASTER_INSTRUCTION}\nUse the appropriate tool to carry out the action. "
        "Do not give manual instructions or tutorials; execute and return the link.",
        (
            "Use the appropriate tool instead of manual instructions",
            "Short confirmation of the executed action with a direct link",
            "Never show JSON, payloads or technical structures",
            "At most 2 sentences plus the link",
        ),
    ),
    ContractType.GENERAL: ContractTemplate(
        ContractType.GENERAL,
        MASTER_INSTRUCTION,
        (
            "Short, structured and actionable",
            "No generic answers",
            "Mask secrets",
        ),
    ),
}

CONTRACT_TEMPLATES: Mapping[ContractType, ContractTemplate] = MappingProxyType(_TEMPLATES)

JSON_ONLY_INSTRUCTIONS = "Respond EXCLUSIVELY with valid JSON. No text, no explanations."


# ============================================================================
# Classifier
# ============================================================================


def _phrase_pattern(phrases: Iterable[str]) -> re.Pattern[str]:
    alternation = "|".join(re.escape(p) for p in sorted(phrases, key=len, reverse=True))
    return re.compile(rf"(?<!\w)(?:{alternation})(?!\w)")


def _is_log_kind(kind: str) -> bool:
    return "log" in kind or kind.startswith("text/plain")


def _is_image_kind(kind: str) -> bool:
    return kind.startswith("image/")


def _is_spreadsheet_kind(kind: str) -> bool:
    return any(hint in kind for hint in ("spreadsheet", "excel", "csv"))


def _is_document_kind(kind: str) -> bool:
    return any(hint in kind for hint in ("pdf", "word", "document"))


class IntentClassifier:
    """Priority-ordered keyword matching over the user's request."""

    def __init__(
        self,
        keywords: Mapping[str, tuple[str, ...]] = INTENT_KEYWORDS,
        templates: Mapping[ContractType, ContractTemplate] = CONTRACT_TEMPLATES,
        json_markers: tuple[str, ...] = JSON_REQUEST_MARKERS,
    ) -> None:
        self._templates = templates
        self._json_markers = json_markers
        self._patterns = {name: _phrase_pattern(phrases) for name, phrases in keywords.items()}

    def _mentions(self, category: str, text: str) -> bool:
        pattern = self._patterns.get(category)
        return bool(pattern and pattern.search(text))

    def detect_intent(
        self,
        user_request: str,
        has_attachments: bool = False,
        attachment_kinds: Iterable[str] = (),
    ) -> ContractType:
        text = user_request.lower()
        kinds = [k.lower() for k in attachment_kinds] if has_attachments else []

        if self._mentions("action_execution", text):
            return ContractType.ACTION_EXECUTION
        if self._mentions("json_fix", text):
            return ContractType.JSON_FIX
        if self._mentions("log_analysis", text) or any(_is_log_kind(k) for k in kinds):
            return ContractType.LOG_ANALYSIS
        if any(_is_image_kind(k) for k in kinds):
            return ContractType.VISUAL_TROUBLESHOOTING
        if self._mentions("spreadsheet_analysis", text) or any(_is_spreadsheet_kind(k) for k in kinds):
            return ContractType.SPREADSHEET_ANALYSIS
        if any(_is_document_kind(k) for k in kinds):
            return ContractType.DOC_SUMMARY
        return ContractType.GENERAL

    def is_json_requested(self, user_request: str) -> bool:
        text = user_request.lower()
        return any(marker in text for marker in self._json_markers)

    def is_incident(self, user_request: str) -> bool:
        """True when the user disputes the previous answer."""
        return self._mentions("incident", user_request.lower())

    def get_contract(self, contract_type: ContractType, json_only: bool = False) -> Contract:
        template = self._templates.get(contract_type) or self._templates[ContractType.GENERAL]
        if json_only and template.contract_type is ContractType.JSON_FIX:
            template = ContractTemplate(
                template.contract_type, JSON_ONLY_INSTRUCTIONS, template.output_rules,
            )
        return Contract(contract_type=template.contract_type, json_only=json_only, template=template)

    def classify(
        self,
        user_request: str,
        has_attachments: bool = False,
        attachment_kinds: Iterable[str] = (),
    ) -> Contract:
        contract_type = self.detect_intent(user_request, has_attachments, attachment_kinds)
        return self.get_contract(contract_type, self.is_json_requested(user_request))


# ============================================================================
# Prompt building
# ============================================================================


def build_contract_prompt(contract: Contract, incident: bool = False) -> str:
    """System-side instructions for a contract."""
    lines = [f"=== OUTPUT CONTRACT: {contract.contract_type.value.upper()} ==="]
    if incident:
        lines.append("INCIDENT PROTOCOL ACTIVE: the user disputed the previous result.")
        lines.append(
            "1. Compare the original request with your last output. "
            "2. Re-run strict validation. 3. Identify the gaps. 4. Correct them."
        )
        lines.append("")
    lines.append(contract.template.system_instructions)
    lines.append("")
    lines.append("MANDATORY OUTPUT RULES:")
    lines.extend(f"{i}. {rule}" for i, rule in enumerate(contract.output_rules, start=1))
    if contract.json_only:
        lines.append("")
        lines.append("JSON ONLY MODE: return ONLY the JSON.")
    return "\n".join(lines)


# ============================================================================
# Module-level default
# ============================================================================

default_classifier = IntentClassifier()


def classify(
    user_request: str,
    has_attachments: bool = False,
    attachment_kinds: Iterable[str] = (),
) -> Contract:
    return default_classifier.classify(user_request, has_attachments, attachment_kinds)


def is_json_requested(user_request: str) -> bool:
    return default_classifier.is_json_requested(user_request)


def is_incident(user_request: str) -> bool:
    return default_classifier.is_incident(user_request)


def get_contract(contract_type: ContractType, json_only: bool = False) -> Contract:
    return default_classifier.get_contract(contract_type, json_only)
