"""
Validation and repair of generated character files.

Validation is schema first (CharacterConfig), then semantic rules that the
schema cannot express: when the user asks for platforms, at least one of
them needs a client, and activated clients and the model provider need credentials.
Repair is a single corrective model call; its result is validated again.
"""

from __future__ import annotations

import asyncio
import json
import re

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from core.exceptions import ParsingError, ProviderError
from core.prompts import build_repair_prompt
from models.character_models import CharacterConfig
from models.error_models import ErrorCode
from utils.logger import logger

if TYPE_CHECKING:
    from integrations.llm_provider import LLMClient

# client name -> (conversation keywords, credential keys; any one of them satisfies the client)
PLATFORM_CLIENTS: dict[str, tuple[re.Pattern[str], tuple[str, ...]]] = {
    "twitter": (
        re.compile(r"\b(twitter|tweets?|tweeting|x\.com)\b", re.IGNORECASE),
        ("TWITTER_USERNAME", "TWITTER_PASSWORD", "TWITTER_EMAIL"),
    ),
    "discord": (
        re.compile(r"\bdiscord\b", re.IGNORECASE),
        ("DISCORD_APPLICATION_ID", "DISCORD_API_TOKEN"),
    ),
    "telegram": (
        re.compile(r"\btelegram\b", re.IGNORECASE),
        ("TELEGRAM_BOT_TOKEN",),
    ),
    "farcaster": (
        re.compile(r"\b(farcaster|warpcast)\b", re.IGNORECASE),
        ("FARCASTER_FID", "FARCASTER_NEYNAR_API_KEY", "FARCASTER_NEYNAR_SIGNER_UUID"),
    ),
    "slack": (
        re.compile(r"\bslack\b", re.IGNORECASE),
        ("SLACK_APP_ID", "SLACK_BOT_TOKEN", "SLACK_SIGNING_SECRET"),
    ),
    "github": (
        re.compile(r"\bgithub\b", re.IGNORECASE),
        ("GITHUB_API_TOKEN",),
    ),
}

PROVIDER_API_KEYS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "groq": "GROQ_API_KEY",
    "google": "GOOGLE_GENERATIVE_AI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "grok": "GROK_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "together": "TOGETHER_API_KEY",
    "heurist": "HEURIST_API_KEY",
}

LOCAL_PROVIDERS = frozenset({"llama_local", "ollama"})

# A platform named after one of these, within the same clause, is declined
_NEGATION_RE = re.compile(
    r"\b(no|not|don'?t|do not|without|never|except|skip|instead of|rather than)\b",
    re.IGNORECASE,
)
_CLAUSE_SPLIT_RE = re.compile(r"[.!?;,\n]+|\bbut\b", re.IGNORECASE)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class ValidationResult:
    ok: bool
    document: CharacterConfig | None = None
    errors: list[str] = field(default_factory=list)


def extract_json(text: str) -> Any | None:
    """Parse a JSON value from model output, tolerating fences and surrounding prose.

    Returns None when nothing parseable is found.
    """
    stripped = _FENCE_RE.sub("", text.strip())
    if not stripped:
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    start, end = stripped.find("{"), stripped.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        return json.loads(stripped[start : end + 1])
    except json.JSONDecodeError:
        return None


def _schema_errors(exc: ValidationError) -> list[str]:
    errors = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"]) or "document"
        errors.append(f"{loc}: {error['msg']}")
    return errors


def _declined(clause: str, match: re.Match[str]) -> bool:
    return _NEGATION_RE.search(clause, 0, match.start()) is not None


def mentioned_platforms(conversation: str) -> list[str]:
    """Client names whose platform the conversation asks for.

    Mentions preceded by a negation in the same clause ("no Twitter",
    "Discord instead of Telegram") do not count.
    """
    wanted: list[str] = []
    for client, (pattern, _) in PLATFORM_CLIENTS.items():
        for clause in _CLAUSE_SPLIT_RE.split(conversation):
            match = pattern.search(clause)
            if match and not _declined(clause, match):
                wanted.append(client)
                break
    return wanted


def semantic_errors(document: CharacterConfig, conversation: str) -> list[str]:
    """Rules beyond the schema: required clients and credentials."""
    errors: list[str] = []
    clients = {c.strip().lower() for c in document.clients}
    secrets = document.settings.secrets

    # Any one of the requested platforms satisfies the rule
    wanted = mentioned_platforms(conversation)
    if wanted and clients.isdisjoint(wanted):
        if len(wanted) == 1:
            errors.append(f"clients: the conversation mentions {wanted[0]} but no '{wanted[0]}' client is configured")
        else:
            errors.append(
                f"clients: the conversation mentions {', '.join(wanted)} but none of those clients is configured"
            )

    for client in sorted(clients):
        if client not in PLATFORM_CLIENTS:
            continue
        keys = PLATFORM_CLIENTS[client][1]
        if not any(key in secrets for key in keys):
            errors.append(f"settings.secrets: client '{client}' needs one of {', '.join(keys)}")

    provider = document.model_provider.strip().lower()
    if not provider:
        errors.append("modelProvider: a model provider is required")
    elif provider not in LOCAL_PROVIDERS and provider in PROVIDER_API_KEYS:
        key = PROVIDER_API_KEYS[provider]
        if key not in secrets:
            errors.append(f"settings.secrets: model provider '{provider}' needs {key}")

    return errors


def validate_candidate(candidate: str | dict[str, Any] | None, conversation: str) -> ValidationResult:
    """Validate a candidate character file against the schema and the semantic rules."""
    data: Any = extract_json(candidate) if isinstance(candidate, str) else candidate
    if data is None:
        return ValidationResult(ok=False, errors=["document: output is not valid JSON"])
    if not isinstance(data, dict):
        return ValidationResult(ok=False, errors=[f"document: expected a JSON object, got {type(data).__name__}"])

    try:
        document = CharacterConfig.model_validate(data)
    except ValidationError as e:
        return ValidationResult(ok=False, errors=_schema_errors(e))

    errors = semantic_errors(document, conversation)
    if errors:
        return ValidationResult(ok=False, document=document, errors=errors)
    return ValidationResult(ok=True, document=document)


async def repair_candidate(
    llm: LLMClient,
    candidate: str,
    errors: list[str],
    conversation: str,
    timeout: float | None = None,
) -> CharacterConfig:
    """Ask the model once to correct an invalid candidate.

    Raises:
        ParsingError: If the corrected output is still invalid
        ProviderError: If the repair call fails or times out
    """
    logger.info(
        f"Repairing character file ({len(errors)} errors) with {llm.model_name}",
        stage="DOCUMENT_REPAIRING",
        provider=llm.provider.value,
    )
    prompt = build_repair_prompt(candidate, errors)
    try:
        raw = await asyncio.wait_for(llm.complete(prompt), timeout=timeout)
    except TimeoutError as e:
        raise ProviderError(llm.provider.value, f"repair timed out after {timeout}s", cause=e) from e

    result = validate_candidate(raw, conversation)
    if not result.ok or result.document is None:
        raise ParsingError(
            "Character file is still invalid after repair",
            errors=result.errors,
            raw_output=raw,
            code=ErrorCode.GENERATION_REPAIR_FAILED,
        )
    return result.document


__all__ = [
    "LOCAL_PROVIDERS",
    "PLATFORM_CLIENTS",
    "PROVIDER_API_KEYS",
    "ValidationResult",
    "extract_json",
    "mentioned_platforms",
    "repair_candidate",
    "semantic_errors",
    "validate_candidate",
]
