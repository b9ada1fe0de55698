# SPDX-License-Identifier: Apache-2.0
"""
Referee-voice summaries and response formatting for governed output.

Pure functions, no I/O, no side effects. Turn validation outcomes into
short human-readable verdicts, and model text into chat markdown plus a
short spoken script for voice mode.

Referee voice rules:
  - No "I think", no personality in verdicts
  - Lead with verdict: "Blocked:", "Needs attention:", "OK:"
  - JSON is never read aloud
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Any

from gov_json.contracts import ContractType
from gov_json.extractor import extract
from gov_json.governance import ValidationOutcome
from gov_json.secret_patterns import mask_secrets

# Violation kinds that make output unusable as-is
BLOCKING_KINDS = frozenset({"invalid_json", "sensitive_field", "env_ref_syntax", "required_empty"})

VOICE_WORD_LIMIT = 55
VOICE_TRUNCATE_AT = 50
VOICE_SUMMARY_WORDS = 45


# =============================================================================
# Status pill
# =============================================================================


def derive_status_pill(outcome: ValidationOutcome) -> str:
    """Traffic-light status: 'ok', 'needs_attention', or 'blocked'.

    Priority order (first match wins):
      blocked         - unparseable JSON, leaked or malformed credentials,
                        empty required references
      needs_attention - any other violation, or secrets were masked
      ok              - otherwise
    """
    for v in outcome.violations:
        if v.kind in BLOCKING_KINDS:
            return "blocked"

    if outcome.violations or outcome.secrets_detected:
        return "needs_attention"

    return "ok"


# =============================================================================
# One-sentence summary
# =============================================================================


def derive_one_sentence(outcome: ValidationOutcome) -> str:
    """One-sentence referee-voice summary of a validation outcome."""
    pill = derive_status_pill(outcome)

    if pill == "blocked":
        if any(v.kind == "invalid_json" for v in outcome.violations):
            return "Blocked: JSON does not parse."
        blocking = [v for v in outcome.violations if v.kind in BLOCKING_KINDS]
        n = len(blocking)
        word = "violation" if n == 1 else "violations"
        return f"Blocked: {n} hard-rule {word}."

    if pill == "needs_attention":
        if outcome.violations:
            n = len(outcome.violations)
            return f"Needs attention: {n} violation(s)."
        return f"Needs attention: {len(outcome.secrets_masked)} secret rule(s) masked."

    if not outcome.json_found:
        return "OK: no JSON to check."
    return "OK: JSON conforms to all hard rules."


# =============================================================================
# Response formatting
# =============================================================================


@dataclass(frozen=True, slots=True)
class FormattedResponse:
    markdown: str
    voice_script: str
    detail_payload: dict[str, Any]
    has_json: bool
    json_data: Any
    secrets_warning: bool


_CONTRACT_VOICE: dict[ContractType, str] = {
    ContractType.LOG_ANALYSIS: "I analyzed the logs and found the root cause. The fix is in the chat.",
    ContractType.SPREADSHEET_ANALYSIS: "I processed the spreadsheet and listed the findings in the chat.",
    ContractType.DOC_SUMMARY: "I summarized the document with its key points and recommended actions.",
    ContractType.VISUAL_TROUBLESHOOTING: "I found the problem in the screenshot and detailed the fix step by step.",
    ContractType.ACTION_EXECUTION: "The requested action is done. The details are in the chat.",
}

_FENCE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
_BRACE_BLOCK = re.compile(r"\{.*\}", re.DOTALL)
_BRACKET_BLOCK = re.compile(r"\[.*\]", re.DOTALL)
_CHANGE_SECTION = re.compile(
    r"(?:changes|alterações|modificações|corrigido|fixed)(.*?)(?:\n\n|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_BULLET = re.compile(r"^\s*[-•*]\s*\S", re.MULTILINE)


def _change_summary(text: str) -> str:
    match = _CHANGE_SECTION.search(text)
    if match:
        items = _BULLET.findall(match.group(1))
        if items:
            return f"I made {len(items)} main corrections."
    return "Check the changes in the chat."


def _summarize_for_voice(text: str) -> str:
    clean = _FENCE_BLOCK.sub("", text)
    clean = _BRACE_BLOCK.sub("", clean)
    clean = _BRACKET_BLOCK.sub("", clean)

    lines = [line.strip() for line in clean.split("\n") if line.strip()]
    if not lines:
        return "The answer is available in the chat."

    result = ""
    for line in lines:
        combined = f"{result} {line}".strip()
        if len(combined.split()) > VOICE_SUMMARY_WORDS:
            break
        result = combined
    return result or lines[0][:150]


def build_voice_script(
    text: str,
    contract_type: ContractType,
    has_json: bool,
    secrets_detected: bool = False,
) -> str:
    """Short spoken script (roughly 20 seconds) for voice mode."""
    script = ""
    if secrets_detected:
        script = "Heads up: I removed some sensitive data for safety. "

    if has_json and contract_type is ContractType.JSON_FIX:
        script += "Done! I generated the corrected JSON and left it in the chat for you to copy. "
        script += _change_summary(text)
        return script.strip()

    script += _CONTRACT_VOICE.get(contract_type) or _summarize_for_voice(text)

    words = script.split()
    if len(words) > VOICE_WORD_LIMIT:
        script = " ".join(words[:VOICE_TRUNCATE_AT]) + "... The full details are in the chat."
    return script.strip()


def format_response(
    text: str,
    contract_type: ContractType,
    secrets_detected: bool = False,
    json_only: bool = False,
) -> FormattedResponse:
    """Chat markdown, voice script and detail payload for one response."""
    extraction = extract(text)
    has_json = extraction.found
    json_data = extraction.payload if has_json else None

    markdown = mask_secrets(text).masked_text if secrets_detected else text
    voice_script = build_voice_script(text, contract_type, has_json, secrets_detected)

    detail_payload: dict[str, Any] = {
        "type": contract_type.value,
        "content": json_data if json_only and has_json else markdown,
        "timestamp": int(time.time() * 1000),
    }
    if has_json:
        detail_payload["json_data"] = json_data

    return FormattedResponse(
        markdown=markdown,
        voice_script=voice_script,
        detail_payload=detail_payload,
        has_json=has_json,
        json_data=json_data,
        secrets_warning=secrets_detected,
    )
