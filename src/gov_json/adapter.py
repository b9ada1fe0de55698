# SPDX-License-Identifier: Apache-2.0
"""
HTTP adapter exposing JSON output governance.

Thin JSON-over-HTTP surface for the in-process operations: validation of
model output, intent classification, secret masking, prompt enrichment and
response formatting. It holds no chat backend, so repair rounds stay with
in-process callers of gov_json.governance.auto_repair.

Run with: uvicorn gov_json.adapter:app --host 127.0.0.1 --port 8000

Configuration via environment variables:
    GOVJSON_AUTH_TOKEN      - Bearer token for /v1/governance/ endpoints (default: "" = no auth)
    GOVJSON_DOMINANCE_RATIO, GOVJSON_MIN_HUMAN_RUN, GOVJSON_MAX_RETRIES,
    GOVJSON_REPAIR_ECHO_LIMIT, GOVJSON_CHAT_TIMEOUT
                            - governance policy, see gov_json.governance
"""

from __future__ import annotations

import hmac
import os
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from gov_json import __version__
from gov_json.contracts import ContractType, default_classifier
from gov_json.governance import GovernancePolicy, validate
from gov_json.pipeline import enrich_prompt
from gov_json.rules import violations_to_dicts
from gov_json.secret_patterns import findings_to_dicts, mask_secrets
from gov_json.summaries import derive_one_sentence, derive_status_pill, format_response

# ============================================================================
# Configuration from environment
# ============================================================================

# When set, /v1/governance/ endpoints require Authorization: Bearer <token>.
# /health and /api/info stay open either way.
GOVJSON_AUTH_TOKEN = os.environ.get("GOVJSON_AUTH_TOKEN", "")

# Policy is resolved lazily so tests can swap the environment
_policy: GovernancePolicy | None = None


def _get_policy() -> GovernancePolicy:
    global _policy
    if _policy is None:
        _policy = GovernancePolicy.from_env()
    return _policy


# ============================================================================
# Application setup
# ============================================================================

app = FastAPI(
    title="JSON Output Governance",
    description="Validation, masking and contract selection for model output",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Auth middleware, opt-in via GOVJSON_AUTH_TOKEN
# ============================================================================

# Governance calls carry raw model output, which may hold live credentials
_PROTECTED_PREFIX = "/v1/governance/"


def _bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    """Require the configured bearer token on every /v1/governance/ call."""
    if (
        GOVJSON_AUTH_TOKEN
        and request.method != "OPTIONS"  # CORS preflight carries no credentials
        and request.url.path.startswith(_PROTECTED_PREFIX)
    ):
        token = _bearer_token(request)
        if token is None:
            return JSONResponse(
                status_code=401,
                content={"detail": "Authorization header required: Bearer <token>"},
            )
        if not hmac.compare_digest(token.encode(), GOVJSON_AUTH_TOKEN.encode()):
            return JSONResponse(
                status_code=403,
                content={"detail": "Invalid auth token"},
            )
    return await call_next(request)


# ============================================================================
# Pydantic Models
# ============================================================================


class ValidateRequest(BaseModel):
    text: str
    json_only: bool = False


class ClassifyRequest(BaseModel):
    user_request: str
    attachment_kinds: list[str] = Field(default_factory=list)


class MaskRequest(BaseModel):
    text: str


class FormatRequest(BaseModel):
    text: str
    contract_type: ContractType = ContractType.GENERAL
    secrets_detected: bool = False
    json_only: bool = False


# ============================================================================
# Governance endpoints
# ============================================================================


@app.post("/v1/governance/validate")
async def validate_output(request: ValidateRequest) -> dict[str, Any]:
    outcome = validate(request.text, request.json_only, _get_policy())
    return {
        "valid": outcome.valid,
        "status": derive_status_pill(outcome),
        "summary": derive_one_sentence(outcome),
        "json_found": outcome.json_found,
        "sanitized_value": outcome.sanitized_value,
        "sanitized_text": outcome.sanitized_text,
        "violations": violations_to_dicts(outcome.violations),
        "secrets_detected": outcome.secrets_detected,
        "secrets_masked": outcome.secrets_masked,
    }


@app.post("/v1/governance/classify")
async def classify_request(request: ClassifyRequest) -> dict[str, Any]:
    kinds = request.attachment_kinds
    contract = default_classifier.classify(request.user_request, bool(kinds), kinds)
    data = contract.to_dict()
    data["incident"] = default_classifier.is_incident(request.user_request)
    return data


@app.post("/v1/governance/mask")
async def mask_text(request: MaskRequest) -> dict[str, Any]:
    result = mask_secrets(request.text)
    return {
        "masked_text": result.masked_text,
        "secrets_detected": result.detected,
        "findings": findings_to_dicts(result.findings),
    }


@app.post("/v1/governance/enrich")
async def enrich(request: ClassifyRequest) -> dict[str, Any]:
    return {"prompt": enrich_prompt(request.user_request, request.attachment_kinds)}


@app.post("/v1/governance/format")
async def format_output(request: FormatRequest) -> dict[str, Any]:
    formatted = format_response(
        request.text,
        request.contract_type,
        secrets_detected=request.secrets_detected,
        json_only=request.json_only,
    )
    return {
        "markdown": formatted.markdown,
        "voice_script": formatted.voice_script,
        "detail_payload": formatted.detail_payload,
        "has_json": formatted.has_json,
        "secrets_warning": formatted.secrets_warning,
    }


# ============================================================================
# Service endpoints
# ============================================================================


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    policy = _get_policy()
    return {
        "status": "healthy",
        "policy": {
            "dominance_ratio": policy.dominance_ratio,
            "min_human_run": policy.min_human_run,
            "max_retries": policy.max_retries,
        },
    }


@app.get("/api/info")
async def api_info() -> dict[str, Any]:
    """JSON endpoint with API info and available endpoints."""
    return {
        "name": "JSON Output Governance",
        "version": __version__,
        "auth_required": bool(GOVJSON_AUTH_TOKEN),
        "contracts": [c.value for c in ContractType],
        "endpoints": {
            "validate": "/v1/governance/validate",
            "classify": "/v1/governance/classify",
            "mask": "/v1/governance/mask",
            "enrich": "/v1/governance/enrich",
            "format": "/v1/governance/format",
            "health": "/health",
        },
    }
