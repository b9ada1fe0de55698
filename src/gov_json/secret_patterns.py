# SPDX-License-Identifier: Apache-2.0
"""
Credential detection and masking. Pure module, no external deps.

Each rule matches one credential shape and replaces every occurrence with a
fixed uppercase tag ("[BEARER_TOKEN_MASKED]", ...). Rules run in declaration
order over the progressively masked text, so overlapping shapes are settled
by whichever rule is declared first.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Pattern

logger = logging.getLogger(__name__)


# ============================================================================
# Data structures
# ============================================================================


@dataclass(frozen=True, slots=True)
class SecretRule:
    name: str
    pattern: Pattern[str]
    message: str

    @property
    def tag(self) -> str:
        return f"[{self.name.upper()}_MASKED]"


@dataclass(frozen=True, slots=True)
class SecretFinding:
    rule_name: str
    occurrence_count: int

    def describe(self) -> str:
        return f"{self.rule_name}: {self.occurrence_count} occurrence(s)"


@dataclass(frozen=True, slots=True)
class MaskResult:
    masked_text: str
    findings: list[SecretFinding]

    @property
    def detected(self) -> bool:
        return bool(self.findings)


# ============================================================================
# Rules
# ============================================================================

SECRET_RULES: tuple[SecretRule, ...] = (
    SecretRule(
        "jwt",
        re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}", re.IGNORECASE),
        "JWT detected",
    ),
    SecretRule(
        "openai_key",
        re.compile(r"sk-[A-Za-z0-9]{20,}", re.IGNORECASE),
        "OpenAI API key detected",
    ),
    SecretRule(
        "google_key",
        re.compile(r"AIza[A-Za-z0-9_-]{35}", re.IGNORECASE),
        "Google API key detected",
    ),
    SecretRule(
        "aws_key",
        re.compile(r"AKIA[A-Z0-9]{16}", re.IGNORECASE),
        "AWS access key detected",
    ),
    SecretRule(
        "private_key",
        re.compile(r"-----BEGIN\s+(?:RSA\s+)?PRIVATE\s+KEY-----", re.IGNORECASE),
        "Private key detected",
    ),
    SecretRule(
        "bearer_token",
        re.compile(r"Bearer\s+[A-Za-z0-9_-]{20,}", re.IGNORECASE),
        "Bearer token detected",
    ),
    SecretRule(
        "supabase_key",
        re.compile(r"sbp_[A-Za-z0-9]{40,}", re.IGNORECASE),
        "Supabase key detected",
    ),
    SecretRule(
        "github_token",
        re.compile(r"ghp_[A-Za-z0-9]{36}", re.IGNORECASE),
        "GitHub token detected",
    ),
    SecretRule(
        "stripe_key",
        re.compile(r"sk_live_[A-Za-z0-9]{24,}", re.IGNORECASE),
        "Stripe key detected",
    ),
)

_PLACEHOLDER = re.compile(r"^\[[A-Z0-9_]+_MASKED\]$")


# ============================================================================
# Public API
# ============================================================================


def mask_secrets(text: str, rules: tuple[SecretRule, ...] = SECRET_RULES) -> MaskResult:
    """Replace every credential-shaped substring with its rule tag."""
    masked = text
    findings: list[SecretFinding] = []
    for rule in rules:
        masked, count = rule.pattern.subn(rule.tag, masked)
        if count:
            logger.debug("masked %d %s match(es)", count, rule.name)
            findings.append(SecretFinding(rule_name=rule.name, occurrence_count=count))
    return MaskResult(masked_text=masked, findings=findings)


def contains_secret(text: str, rules: tuple[SecretRule, ...] = SECRET_RULES) -> bool:
    return any(rule.pattern.search(text) for rule in rules)


def is_masked_placeholder(value: str) -> bool:
    """True for tags produced by mask_secrets, e.g. "[JWT_MASKED]"."""
    return bool(_PLACEHOLDER.match(value))


def findings_to_dicts(findings: list[SecretFinding]) -> list[dict]:
    """Serialize findings for JSON response."""
    return [
        {"rule": f.rule_name, "occurrences": f.occurrence_count}
        for f in findings
    ]
