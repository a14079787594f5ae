"""Tests for elizaOS character file models."""

from __future__ import annotations

from typing import Any

import pytest

from pydantic import ValidationError

from models.character_models import (
    PLACEHOLDER_BIO_LINE,
    PLACEHOLDER_STYLE_LINE,
    CharacterConfig,
    ReplyPayload,
    build_placeholder,
    character_json_schema,
    empty_document,
)


class TestCharacterConfig:
    def test_parses_camel_case_document(self, nova_document: dict[str, Any]) -> None:
        config = CharacterConfig.model_validate(nova_document)

        assert config.name == "Nova"
        assert config.model_provider == "openai"
        assert config.settings.voice is not None
        assert config.settings.voice.model == "en_US-female-medium"

    def test_to_document_round_trips_wire_names(self, nova_document: dict[str, Any]) -> None:
        document = CharacterConfig.model_validate(nova_document).to_document()

        assert document["modelProvider"] == "openai"
        assert "model_provider" not in document
        assert document["messageExamples"] == []
        assert document["bio"] == nova_document["bio"]

    def test_unknown_keys_are_kept(self, nova_document: dict[str, Any]) -> None:
        nova_document["system"] = "Stay in character."

        document = CharacterConfig.model_validate(nova_document).to_document()

        assert document["system"] == "Stay in character."

    def test_accepts_field_names(self, nova_document: dict[str, Any]) -> None:
        nova_document["model_provider"] = nova_document.pop("modelProvider")

        assert CharacterConfig.model_validate(nova_document).model_provider == "openai"

    @pytest.mark.parametrize("field", ["bio", "lore"])
    def test_bio_and_lore_need_ten_items(self, nova_document: dict[str, Any], field: str) -> None:
        nova_document[field] = nova_document[field][:9]

        with pytest.raises(ValidationError) as exc_info:
            CharacterConfig.model_validate(nova_document)

        assert exc_info.value.errors()[0]["loc"] == (field,)

    @pytest.mark.parametrize("field", ["name", "style", "modelProvider", "settings"])
    def test_required_fields(self, nova_document: dict[str, Any], field: str) -> None:
        del nova_document[field]

        with pytest.raises(ValidationError):
            CharacterConfig.model_validate(nova_document)


def test_reply_payload() -> None:
    assert ReplyPayload.model_validate({"reply": "Hi!"}).reply == "Hi!"
    with pytest.raises(ValidationError):
        ReplyPayload.model_validate({"message": "Hi!"})


def test_empty_document_shape() -> None:
    document = empty_document()

    assert document["name"] == ""
    assert document["bio"] == []
    assert document["style"] == {"all": [], "chat": [], "post": []}
    assert empty_document() is not document


class TestBuildPlaceholder:
    def test_from_nothing_is_schema_valid(self) -> None:
        placeholder = build_placeholder()

        assert len(placeholder.bio) == 10
        assert len(placeholder.lore) == 10
        assert placeholder.bio[0] == PLACEHOLDER_BIO_LINE
        assert len(set(placeholder.bio)) == 10
        assert placeholder.style.all == [PLACEHOLDER_STYLE_LINE]
        CharacterConfig.model_validate(placeholder.to_document())

    def test_keeps_existing_values(self) -> None:
        current = {
            "name": "Nova",
            "bio": ["Loves the stars", "", 42],
            "modelProvider": "anthropic",
            "clients": ["twitter"],
            "settings": {"secrets": {"TWITTER_USERNAME": "nova"}},
            "style": {"all": ["cheerful"]},
        }

        placeholder = build_placeholder(current)

        assert placeholder.name == "Nova"
        assert placeholder.bio[0] == "Loves the stars"
        assert len(placeholder.bio) == 10
        assert placeholder.model_provider == "anthropic"
        assert placeholder.clients == ["twitter"]
        assert placeholder.settings.secrets == {"TWITTER_USERNAME": "nova"}
        assert placeholder.style.all == ["cheerful"]

    def test_tolerates_malformed_nested_values(self) -> None:
        placeholder = build_placeholder({"style": "casual", "settings": None, "name": 7})

        assert placeholder.name == ""
        assert placeholder.settings.secrets == {}

    def test_keeps_examples_voice_and_unknown_keys(self, nova_document: dict[str, Any]) -> None:
        examples = [[{"user": "{{user1}}", "content": {"text": "Hi Nova"}}]]
        current = {**nova_document, "bio": [], "messageExamples": examples, "system": "You are Nova"}

        document = build_placeholder(current).to_document()

        assert document["messageExamples"] == examples
        assert document["settings"]["voice"] == {"model": "en_US-female-medium"}
        assert document["settings"]["secrets"] == nova_document["settings"]["secrets"]
        assert document["system"] == "You are Nova"
        assert document["bio"][0] == PLACEHOLDER_BIO_LINE
        assert current["bio"] == []

    def test_drops_malformed_examples_and_voice(self) -> None:
        current = {"messageExamples": ["hello", [{"user": "a"}, "x"]], "settings": {"voice": "loud"}}

        placeholder = build_placeholder(current)

        assert placeholder.message_examples == [[{"user": "a"}]]
        assert placeholder.settings.voice is None


def test_json_schema_uses_wire_names() -> None:
    schema = character_json_schema()

    assert "modelProvider" in schema["properties"]
    assert "modelProvider" in schema["required"]
    assert schema["properties"]["bio"]["minItems"] == 10
