# SPDX-License-Identifier: Apache-2.0
"""
Governance orchestrator: one-shot validation and the bounded repair loop.

validate(text):
    locate JSON -> scan raw payload for secrets -> parse -> sanitize ->
    hard rules -> unwanted-raw-JSON policy. Never raises for bad input.

auto_repair(text, chat_fn, max_retries):
    re-prompts the model with the violation list until the output validates
    or the rounds run out. Rounds are sequential; a failing, timed-out or
    cancelled chat call ends the loop with a best-effort result.

Configuration via environment variables (GovernancePolicy.from_env):
    GOVJSON_DOMINANCE_RATIO   - JSON share of the text above which bare JSON is unwanted (default: 0.7)
    GOVJSON_MIN_HUMAN_RUN     - letters in a row that count as human prose (default: 10)
    GOVJSON_MAX_RETRIES       - repair rounds (default: 2)
    GOVJSON_REPAIR_ECHO_LIMIT - max chars of the bad JSON echoed in repair prompts (default: 2000)
    GOVJSON_CHAT_TIMEOUT      - seconds per repair call, empty = no limit (default: "")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Union

from gov_json.contracts import Contract
from gov_json.extractor import JsonRegion, embed, extract, locate, try_parse
from gov_json.rules import Violation, validate_hard_rules
from gov_json.sanitizer import enforce_env_ref_contract, sanitize
from gov_json.secret_patterns import mask_secrets

logger = logging.getLogger(__name__)

ChatFn = Callable[[str], Union[str, Awaitable[str]]]


# ============================================================================
# Exceptions
# ============================================================================


class GovernanceError(Exception):
    """Base exception for governance operations."""


class GovernancePolicyError(GovernanceError):
    """Raised for invalid policy values or loop bounds."""


class RepairAbortedError(GovernanceError):
    """Raised inside the repair loop when a call times out or is cancelled."""


# ============================================================================
# Policy
# ============================================================================


@dataclass(frozen=True, slots=True)
class GovernancePolicy:
    dominance_ratio: float = 0.7
    min_human_run: int = 10
    max_retries: int = 2
    repair_echo_limit: int = 2000
    chat_timeout: float | None = None

    def __post_init__(self) -> None:
        if not 0 < self.dominance_ratio <= 1:
            raise GovernancePolicyError(f"dominance_ratio must be in (0, 1], got {self.dominance_ratio}")
        if self.min_human_run < 1:
            raise GovernancePolicyError(f"min_human_run must be >= 1, got {self.min_human_run}")
        if self.max_retries < 0:
            raise GovernancePolicyError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.repair_echo_limit < 1:
            raise GovernancePolicyError(f"repair_echo_limit must be >= 1, got {self.repair_echo_limit}")
        if self.chat_timeout is not None and self.chat_timeout <= 0:
            raise GovernancePolicyError(f"chat_timeout must be > 0, got {self.chat_timeout}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GovernancePolicy:
        env = os.environ if environ is None else environ
        defaults = cls()

        def _read(name: str, cast: Callable[[str], Any], default: Any) -> Any:
            raw = env.get(name, "").strip()
            if not raw:
                return default
            try:
                return cast(raw)
            except ValueError as e:
                raise GovernancePolicyError(f"{name}: invalid value {raw!r}") from e

        return cls(
            dominance_ratio=_read("GOVJSON_DOMINANCE_RATIO", float, defaults.dominance_ratio),
            min_human_run=_read("GOVJSON_MIN_HUMAN_RUN", int, defaults.min_human_run),
            max_retries=_read("GOVJSON_MAX_RETRIES", int, defaults.max_retries),
            repair_echo_limit=_read("GOVJSON_REPAIR_ECHO_LIMIT", int, defaults.repair_echo_limit),
            chat_timeout=_read("GOVJSON_CHAT_TIMEOUT", float, defaults.chat_timeout),
        )


DEFAULT_POLICY = GovernancePolicy()


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    valid: bool
    sanitized_value: Any
    violations: list[Violation]
    secrets_detected: bool
    secrets_masked: list[str]
    json_found: bool = False
    sanitized_text: str = ""
    region: JsonRegion | None = field(default=None, repr=False)

    @property
    def messages(self) -> list[str]:
        return [str(v) for v in self.violations]


@dataclass(frozen=True, slots=True)
class RepairAttemptResult:
    final_text: str
    repaired: bool
    attempts: int
    outcome: ValidationOutcome

    @property
    def valid(self) -> bool:
        return self.outcome.valid


# ============================================================================
# Unwanted raw JSON policy
# ============================================================================

UNWANTED_JSON_MESSAGE = (
    "Unwanted raw JSON: convert this technical content into a friendly, "
    "human response without showing data structures"
)

_WHITESPACE = re.compile(r"\s+")


def is_unwanted_json(text: str, region: JsonRegion, policy: GovernancePolicy = DEFAULT_POLICY) -> bool:
    """Bare JSON dominating the text with no human prose around it."""
    # Lengths ignore whitespace so re-indenting never changes the verdict
    total = len(_WHITESPACE.sub("", text))
    if not total:
        return False
    ratio = len(_WHITESPACE.sub("", region.raw)) / total
    if ratio <= policy.dominance_ratio:
        return False
    remainder = text[:region.start] + text[region.end:]
    human_run = re.compile(r"[^\W\d_]{%d,}" % policy.min_human_run)
    return human_run.search(remainder) is None


# ============================================================================
# Validation
# ============================================================================


def validate(
    text: str,
    json_only: bool = False,
    policy: GovernancePolicy | None = None,
) -> ValidationOutcome:
    """Validate the JSON embedded in ``text``. Absent JSON is valid."""
    policy = policy or DEFAULT_POLICY
    region = locate(text)
    if region is None:
        return ValidationOutcome(
            valid=True,
            sanitized_value=None,
            violations=[],
            secrets_detected=False,
            secrets_masked=[],
            json_found=False,
            sanitized_text=text,
        )

    # Secret scan runs on the raw payload so it fires even when parsing fails
    scan = mask_secrets(region.raw)
    violations: list[Violation] = []
    sanitized_value: Any = None

    ok, parsed, error = try_parse(region.raw)
    if ok:
        sanitized_value = sanitize(parsed)
        violations.extend(validate_hard_rules(sanitized_value))
        sanitized_text = embed(region.text_before, sanitized_value, region.text_after, json_only)
    else:
        violations.append(Violation(
            kind="invalid_json",
            path="",
            detail=error,
            message=f"invalid JSON: {error}",
        ))
        sanitized_text = text

    if not json_only and is_unwanted_json(text, region, policy):
        violations.append(Violation(
            kind="unwanted_json",
            path="",
            detail="raw JSON dominates the response",
            message=UNWANTED_JSON_MESSAGE,
        ))

    if scan.detected:
        sanitized_text = mask_secrets(sanitized_text).masked_text

    return ValidationOutcome(
        valid=not violations,
        sanitized_value=sanitized_value,
        violations=violations,
        secrets_detected=scan.detected,
        secrets_masked=[f.describe() for f in scan.findings],
        json_found=True,
        sanitized_text=sanitized_text,
        region=region,
    )


# ============================================================================
# Repair
# ============================================================================

CORRECTION_RULES: tuple[str, ...] = (
    "Numeric values (counts, limits, amounts) must be numbers, not strings.",
    'Booleans must be true/false, not "true"/"false".',
    "Negative values are only allowed in offset/diff fields.",
    "Environment variable references must use *_env_ref fields holding the variable name.",
)


def build_repair_prompt(
    raw_json: str,
    violations: list[Violation] | list[str],
    contract: Contract | None = None,
    echo_limit: int = DEFAULT_POLICY.repair_echo_limit,
) -> str:
    """Prompt asking the model to return a corrected JSON payload."""
    echoed = raw_json[:echo_limit]
    if len(raw_json) > echo_limit:
        echoed += "...[truncated]"

    lines = ["The JSON below has errors that must be fixed.", "", "DETECTED ERRORS:"]
    lines.extend(f"{i}. {v}" for i, v in enumerate(violations, start=1))
    lines += ["", "JSON WITH PROBLEMS:", "```json", echoed, "```", "", "CORRECTION RULES:"]
    lines.extend(f"{i}. {rule}" for i, rule in enumerate(CORRECTION_RULES, start=1))
    if contract is not None and contract.output_rules:
        lines += ["", f"CONTRACT RULES ({contract.contract_type.value.upper()}):"]
        lines.extend(f"{i}. {rule}" for i, rule in enumerate(contract.output_rules, start=1))
    lines += ["", "Return ONLY the corrected JSON, with no explanations."]
    return "\n".join(lines)


async def _invoke(chat_fn: ChatFn, prompt: str) -> str:
    """Run ``chat_fn`` without blocking the event loop."""
    if inspect.iscoroutinefunction(chat_fn):
        return await chat_fn(prompt)
    result = await asyncio.to_thread(chat_fn, prompt)
    # A plain callable may still hand back a coroutine
    if inspect.isawaitable(result):
        return await result
    return result


async def _call_chat(
    chat_fn: ChatFn,
    prompt: str,
    timeout: float | None,
    cancel_event: asyncio.Event | None,
) -> str:
    call = asyncio.ensure_future(_invoke(chat_fn, prompt))
    waiters: set[asyncio.Future] = {call}
    stopper: asyncio.Future | None = None
    if cancel_event is not None:
        stopper = asyncio.ensure_future(cancel_event.wait())
        waiters.add(stopper)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if stopper is not None:
            stopper.cancel()
        # Also reached when the caller itself is cancelled
        if not call.done():
            call.cancel()

    if call not in done:
        reason = "cancelled" if cancel_event is not None and cancel_event.is_set() else "timed out"
        raise RepairAbortedError(f"repair call {reason}")
    return call.result()


async def auto_repair(
    text: str,
    chat_fn: ChatFn,
    max_retries: int = DEFAULT_POLICY.max_retries,
    *,
    json_only: bool = False,
    contract: Contract | None = None,
    policy: GovernancePolicy | None = None,
    cancel_event: asyncio.Event | None = None,
) -> RepairAttemptResult:
    """Re-prompt ``chat_fn`` until the JSON validates or rounds run out.

    ``chat_fn`` may be a plain function or a coroutine function. At most
    ``max_retries`` calls are made; the result is best effort either way.
    """
    if max_retries < 0:
        raise GovernancePolicyError(f"max_retries must be >= 0, got {max_retries}")
    policy = policy or DEFAULT_POLICY

    current = text
    attempts = 0
    for round_no in range(max_retries):
        outcome = validate(current, json_only, policy)
        if outcome.valid:
            return RepairAttemptResult(
                final_text=outcome.sanitized_text,
                repaired=round_no > 0,
                attempts=round_no,
                outcome=outcome,
            )

        region = outcome.region
        if region is None:
            break
        if cancel_event is not None and cancel_event.is_set():
            logger.info("repair cancelled before round %d", round_no + 1)
            break

        attempts += 1
        logger.info(
            "repair attempt %d/%d: %d violation(s)",
            attempts, max_retries, len(outcome.violations),
        )
        prompt = build_repair_prompt(region.raw, outcome.violations, contract, policy.repair_echo_limit)

        try:
            reply = await _call_chat(chat_fn, prompt, policy.chat_timeout, cancel_event)
        except Exception:
            logger.warning("repair call failed, returning best effort", exc_info=True)
            break

        repaired = extract(reply if isinstance(reply, str) else "")
        if repaired.found:
            current = embed(
                region.text_before,
                enforce_env_ref_contract(repaired.payload),
                region.text_after,
                json_only,
            )
        else:
            logger.debug("repair reply contained no JSON")

    final = validate(current, json_only, policy)
    return RepairAttemptResult(
        final_text=final.sanitized_text,
        repaired=attempts > 0,
        attempts=attempts,
        outcome=final,
    )
