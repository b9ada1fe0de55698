# SPDX-License-Identifier: Apache-2.0
"""
End-to-end governance of one model response.

    classify request -> auto-repair under the contract -> format -> audit

Callers hand in the raw model text, the user's original request, and a
chat_fn used only for repair rounds.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from gov_json.contracts import (
    Contract,
    ContractType,
    IntentClassifier,
    build_contract_prompt,
    default_classifier,
)
from gov_json.governance import ChatFn, GovernancePolicy, auto_repair
from gov_json.summaries import format_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GovernanceAudit:
    contract_type: ContractType
    json_only: bool
    validation_passed: bool
    retry_attempts: int
    secrets_detected: bool
    violations: list[str]
    timestamp: float
    duration_ms: int

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["contract_type"] = self.contract_type.value
        return data


@dataclass(frozen=True, slots=True)
class GovernanceResult:
    text: str
    markdown: str
    voice_script: str
    detail_payload: dict[str, Any]
    contract: Contract
    valid: bool
    retry_attempts: int
    violations: list[str]
    secrets_detected: bool
    secrets_masked: list[str]
    audit: GovernanceAudit


async def govern(
    raw_response: str,
    user_request: str,
    chat_fn: ChatFn,
    *,
    attachment_kinds: Iterable[str] = (),
    policy: GovernancePolicy | None = None,
    classifier: IntentClassifier | None = None,
) -> GovernanceResult:
    """Apply contract selection, validation, repair and formatting."""
    started = time.monotonic()
    policy = policy or GovernancePolicy()
    classifier = classifier or default_classifier
    kinds = list(attachment_kinds)

    contract = classifier.classify(user_request, bool(kinds), kinds)
    logger.debug("contract %s (json_only=%s)", contract.contract_type.value, contract.json_only)

    repair = await auto_repair(
        raw_response,
        chat_fn,
        policy.max_retries,
        json_only=contract.json_only,
        contract=contract,
        policy=policy,
    )
    outcome = repair.outcome
    formatted = format_response(
        repair.final_text,
        contract.contract_type,
        secrets_detected=outcome.secrets_detected,
        json_only=contract.json_only,
    )

    audit = GovernanceAudit(
        contract_type=contract.contract_type,
        json_only=contract.json_only,
        validation_passed=outcome.valid,
        retry_attempts=repair.attempts,
        secrets_detected=outcome.secrets_detected,
        violations=outcome.messages,
        timestamp=time.time(),
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    logger.info(
        "governed response: contract=%s valid=%s retries=%d secrets=%s in %dms",
        contract.contract_type.value, audit.validation_passed, audit.retry_attempts,
        audit.secrets_detected, audit.duration_ms,
    )

    return GovernanceResult(
        text=repair.final_text,
        markdown=formatted.markdown,
        voice_script=formatted.voice_script,
        detail_payload=formatted.detail_payload,
        contract=contract,
        valid=outcome.valid,
        retry_attempts=repair.attempts,
        violations=outcome.messages,
        secrets_detected=outcome.secrets_detected,
        secrets_masked=outcome.secrets_masked,
        audit=audit,
    )


def enrich_prompt(
    user_request: str,
    attachment_kinds: Iterable[str] = (),
    classifier: IntentClassifier | None = None,
) -> str:
    """Prefix the user's request with the instructions of its contract."""
    classifier = classifier or default_classifier
    kinds = list(attachment_kinds)
    contract = classifier.classify(user_request, bool(kinds), kinds)
    header = build_contract_prompt(contract, incident=classifier.is_incident(user_request))
    return f"{header}\n\n=== USER REQUEST ===\n{user_request}"
