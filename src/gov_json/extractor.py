# SPDX-License-Identifier: Apache-2.0
"""
JSON extraction from mixed model output.

Preference order: the first fenced code block (tagged ``json`` or untagged),
then the greedy span from the first ``{``/``[`` to the last matching closer.
A candidate that fails to parse falls through to the next strategy; parse
errors never escape this module.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterator, Union

JSONValue = Union[None, bool, int, float, str, list[Any], dict[str, Any]]

_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_BARE = re.compile(r"\{.*\}|\[.*\]", re.DOTALL)


# ============================================================================
# Data structures
# ============================================================================


@dataclass(frozen=True, slots=True)
class JsonRegion:
    raw: str  # payload text, fences stripped
    start: int  # offset of the full match (fences included)
    end: int
    text_before: str
    text_after: str
    fenced: bool


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    found: bool
    payload: JSONValue
    raw_payload: str
    text_before: str
    text_after: str
    strategy: str  # "fenced", "bare" or "none"


# ============================================================================
# Candidates
# ============================================================================


def _region(text: str, match: re.Match[str], raw: str, fenced: bool) -> JsonRegion:
    return JsonRegion(
        raw=raw,
        start=match.start(),
        end=match.end(),
        text_before=text[:match.start()].strip(),
        text_after=text[match.end():].strip(),
        fenced=fenced,
    )


def _candidates(text: str) -> Iterator[JsonRegion]:
    fenced = _FENCED.search(text)
    if fenced:
        yield _region(text, fenced, fenced.group(1).strip(), True)
    bare = _BARE.search(text)
    if bare:
        yield _region(text, bare, bare.group(0), False)


def try_parse(raw: str) -> tuple[bool, JSONValue, str]:
    """Parse raw JSON text. Returns (ok, value, error_message)."""
    try:
        return True, json.loads(raw), ""
    except ValueError as e:
        return False, None, str(e)


# ============================================================================
# Public API
# ============================================================================


def extract(text: str) -> ExtractionResult:
    """Find the first parseable JSON payload in ``text``."""
    for region in _candidates(text):
        ok, value, _ = try_parse(region.raw)
        if ok:
            return ExtractionResult(
                found=True,
                payload=value,
                raw_payload=region.raw,
                text_before=region.text_before,
                text_after=region.text_after,
                strategy="fenced" if region.fenced else "bare",
            )
    return ExtractionResult(
        found=False,
        payload=None,
        raw_payload="",
        text_before=text,
        text_after="",
        strategy="none",
    )


def locate(text: str) -> JsonRegion | None:
    """Region that looks like JSON, whether or not it parses.

    Returns the region ``extract`` would use when one parses, otherwise the
    first candidate so the caller can report and repair it.
    """
    candidates = list(_candidates(text))
    for region in candidates:
        if try_parse(region.raw)[0]:
            return region
    return candidates[0] if candidates else None


def render_json(value: JSONValue) -> str:
    """Stable pretty-printed serialization used for every re-embed."""
    return json.dumps(value, indent=2, ensure_ascii=False)


def embed(text_before: str, value: JSONValue, text_after: str, json_only: bool = False) -> str:
    """Re-embed ``value`` as a fenced JSON block between its prose spans."""
    if json_only:
        return render_json(value)
    block = "```json\n" + render_json(value) + "\n```"
    return "\n\n".join(part for part in (text_before, block, text_after) if part)
