"""
elizaOS character file models.

CharacterConfig is the structured document produced by the document stage.
Field names are snake_case in Python and camelCase on the wire, matching
the elizaOS character file format. Unknown keys are preserved.
"""

from __future__ import annotations

import copy

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.constants import MIN_CHARACTER_ARRAY_ITEMS

PLACEHOLDER_BIO_LINE = "Details about this agent's background are still being gathered."
PLACEHOLDER_LORE_LINE = "This agent's story is still being written."
PLACEHOLDER_STYLE_LINE = "Be friendly and helpful."


class CharacterBaseModel(BaseModel):
    """Shared config: camelCase aliases, populate by field name, keep extra keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        protected_namespaces=(),
    )


class StyleGuide(CharacterBaseModel):
    all: list[str] = Field(default_factory=list)
    chat: list[str] = Field(default_factory=list)
    post: list[str] = Field(default_factory=list)


class VoiceSettings(CharacterBaseModel):
    model: str | None = None


class CharacterSettings(CharacterBaseModel):
    secrets: dict[str, str] = Field(default_factory=dict)
    voice: VoiceSettings | None = None


class CharacterConfig(CharacterBaseModel):
    """An elizaOS agent persona definition."""

    name: str
    bio: list[str] = Field(min_length=MIN_CHARACTER_ARRAY_ITEMS)
    lore: list[str] = Field(min_length=MIN_CHARACTER_ARRAY_ITEMS)
    style: StyleGuide
    model_provider: str
    settings: CharacterSettings
    clients: list[str] = Field(default_factory=list)
    plugins: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    adjectives: list[str] = Field(default_factory=list)
    knowledge: list[str] = Field(default_factory=list)
    message_examples: list[list[dict[str, Any]]] = Field(default_factory=list)
    post_examples: list[str] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """Wire form (camelCase keys) used for storage and SSE events."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReplyPayload(BaseModel):
    """Structured output of the reply stage."""

    reply: str


def empty_document() -> dict[str, Any]:
    """Document used when a session has none yet: empty arrays, blank scalars."""
    return {
        "name": "",
        "bio": [],
        "lore": [],
        "style": {"all": [], "chat": [], "post": []},
        "modelProvider": "",
        "settings": {"secrets": {}},
        "clients": [],
        "plugins": [],
        "topics": [],
        "adjectives": [],
        "knowledge": [],
        "messageExamples": [],
        "postExamples": [],
    }


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def _padded(items: list[str], filler: str) -> list[str]:
    result = list(items)
    n = 1
    while len(result) < MIN_CHARACTER_ARRAY_ITEMS:
        result.append(f"{filler} ({n})" if n > 1 else filler)
        n += 1
    return result


def _message_examples(value: Any) -> list[list[dict[str, Any]]]:
    if not isinstance(value, list):
        return []
    return [
        [turn for turn in example if isinstance(turn, dict)]
        for example in value
        if isinstance(example, list) and any(isinstance(turn, dict) for turn in example)
    ]


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def build_placeholder(current: dict[str, Any] | None = None) -> CharacterConfig:
    """Schema-conforming document for turns that carry no persona information.

    Starts from the current document, so message examples, voice settings and
    unknown keys survive. Known fields with the wrong shape are reset; bio and
    lore are padded with generic filler lines up to the minimum length.
    """
    document = copy.deepcopy(current) if current else {}
    style = _dict(document.get("style"))
    settings = _dict(document.get("settings"))
    secrets = _dict(settings.get("secrets"))

    name = document.get("name")
    model_provider = document.get("modelProvider")

    settings["secrets"] = {k: str(v) for k, v in secrets.items()}
    voice = settings.get("voice")
    if "voice" in settings and not (isinstance(voice, dict) and isinstance(voice.get("model") or "", str)):
        del settings["voice"]

    document.update(
        {
            "name": name if isinstance(name, str) else "",
            "bio": _padded(_string_list(document.get("bio")), PLACEHOLDER_BIO_LINE),
            "lore": _padded(_string_list(document.get("lore")), PLACEHOLDER_LORE_LINE),
            "style": {
                **style,
                "all": _string_list(style.get("all")) or [PLACEHOLDER_STYLE_LINE],
                "chat": _string_list(style.get("chat")),
                "post": _string_list(style.get("post")),
            },
            "modelProvider": model_provider if isinstance(model_provider, str) else "",
            "settings": settings,
            "clients": _string_list(document.get("clients")),
            "plugins": _string_list(document.get("plugins")),
            "topics": _string_list(document.get("topics")),
            "adjectives": _string_list(document.get("adjectives")),
            "knowledge": _string_list(document.get("knowledge")),
            "messageExamples": _message_examples(document.get("messageExamples")),
            "postExamples": _string_list(document.get("postExamples")),
        }
    )
    return CharacterConfig.model_validate(document)


def character_json_schema() -> dict[str, Any]:
    """JSON schema of CharacterConfig by alias, embedded in prompts."""
    return CharacterConfig.model_json_schema(by_alias=True)


__all__ = [
    "CharacterConfig",
    "CharacterSettings",
    "ReplyPayload",
    "StyleGuide",
    "VoiceSettings",
    "build_placeholder",
    "character_json_schema",
    "empty_document",
]
