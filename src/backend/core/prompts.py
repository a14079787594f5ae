"""
Prompt templates for Delila.
Centralizes all prompt engineering for the reply, document and repair stages.
"""

from __future__ import annotations

import json

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from core.constants import MIN_CHARACTER_ARRAY_ITEMS
from models.character_models import character_json_schema

if TYPE_CHECKING:
    from api.services.context_service import Snippet
    from api.services.session_service import Message

MAX_SNIPPET_CHARS = 2000
NO_CONTEXT_TEXT = "No additional knowledge retrieved."
NO_HISTORY_TEXT = "No messages yet."

PERSONA = (
    "You are Delila, a friendly AI companion helping users create AI agents through natural "
    "conversation. Adopt a casual, enthusiastic tone while ensuring technical accuracy.\n"
    "Your task is to help users create an elizaOS character file for their agent based on "
    "the conversation with them."
)

REPLY_FORMAT_INSTRUCTIONS = (
    'Respond with a single JSON object of the form {"reply": "<your reply>"} and nothing else. '
    "Do not wrap it in markdown fences. Escape quotes and newlines inside the reply string."
)

REPLY_PROMPT = """{persona}

In this step, you are ONLY generating a conversational reply to the user's message. You will NOT be generating the character file in this step.

### CONTEXT:
- Message History:
{history}

- Retrieved Knowledge:
{context}

- Current Character File:
{document}

When generating your reply:
1. Be friendly, helpful, and conversational
2. Ask questions to gather more information about the agent they want to create
3. Provide guidance on what information is needed for a complete character file
4. Suggest ideas based on what they've shared so far
5. Keep your reply focused on helping them create their AI agent

### FORMAT INSTRUCTIONS:
{format_instructions}

Note: Your output should ONLY include a conversational reply. The character file will be generated in a separate step.
Note: Read the message history and context carefully. Your reply continues the conversation and answers the last message; it should not read like a new conversation.
"""

DOCUMENT_PROMPT = """{persona}

### CORE RULES:
1. Conversation Flow:
- Gradually collect required technical details from the conversation
- Automatically infer dependencies (plugins/clients) from context

2. JSON Requirements:
- Mandatory fields:
  * modelProvider (+ its API key in settings.secrets)
  * At least 1 client (+ credentials in settings.secrets)
  * bio ({min_items}+ items)
  * lore ({min_items}+ items)
  * style guidelines (all/chat/post)
- Optional fields: plugins, topics, adjectives, knowledge, messageExamples, postExamples

3. Dependency Handling:
- Auto-add clients when mentioned (e.g., "Twitter" → twitter client)
- Include related plugins automatically:
  * Social media → @elizaos/plugin-social
  * NFTs → @elizaos/plugin-nft
  * Voice → @elizaos/plugin-voice
- Ensure required secrets are added for activated features (e.g. twitter → TWITTER_USERNAME, TWITTER_PASSWORD, TWITTER_EMAIL)

4. Validation Steps:
1. Verify bio and lore have ≥{min_items} items
2. Check for required clients/secrets
3. Validate model provider configuration
4. Ensure proper nesting of config objects
5. Confirm style guidelines match platform needs

### CHARACTER FILE SCHEMA:
{schema}

### CONTEXT:
- Message History:
{history}

- Retrieved Knowledge:
{context}

- Current Character File (update it, keep what is still true):
{document}

### IMPORTANT: ENSURE COMPLETE AND VALID JSON
- Your output MUST be complete, valid JSON that matches the schema
- Do not truncate or leave any fields incomplete
- Double-check that all required fields are present and valid

### FORMAT INSTRUCTIONS:
{format_instructions}

Note: If there is no information to create a character file yet, still output a complete placeholder character file so it can be parsed.
"""

REPAIR_PROMPT = """You fix elizaOS character files that failed validation.

### CHARACTER FILE SCHEMA:
{schema}

### INVALID CHARACTER FILE:
{candidate}

### VALIDATION ERRORS:
{errors}

Return the corrected character file. Keep every valid value, fix every listed error, and add
missing required content in the spirit of the existing persona.

### FORMAT INSTRUCTIONS:
{format_instructions}
"""


def document_format_instructions() -> str:
    return (
        "Respond with a single JSON object that conforms to the character file schema above and "
        "nothing else. Do not wrap it in markdown fences. Use camelCase keys exactly as in the schema."
    )


def format_history(messages: Sequence[Message]) -> str:
    """Render history as "<Role> Message: <content>" lines, oldest first."""
    if not messages:
        return NO_HISTORY_TEXT
    return "\n".join(f"{m.role.capitalize()} Message: {m.content}" for m in messages)


def format_context(snippets: Sequence[Snippet]) -> str:
    if not snippets:
        return NO_CONTEXT_TEXT
    return "\n\n".join(f"[{i}] {s.content[:MAX_SNIPPET_CHARS]}" for i, s in enumerate(snippets, start=1))


def _schema_text() -> str:
    return json.dumps(character_json_schema(), indent=2)


def build_reply_prompt(history: str, context: str, document: dict[str, Any]) -> str:
    return REPLY_PROMPT.format(
        persona=PERSONA,
        history=history,
        context=context,
        document=json.dumps(document, indent=2),
        format_instructions=REPLY_FORMAT_INSTRUCTIONS,
    )


def build_document_prompt(history: str, context: str, document: dict[str, Any]) -> str:
    return DOCUMENT_PROMPT.format(
        persona=PERSONA,
        min_items=MIN_CHARACTER_ARRAY_ITEMS,
        schema=_schema_text(),
        history=history,
        context=context,
        document=json.dumps(document, indent=2),
        format_instructions=document_format_instructions(),
    )


def build_repair_prompt(candidate: str, errors: Sequence[str]) -> str:
    return REPAIR_PROMPT.format(
        schema=_schema_text(),
        candidate=candidate,
        errors="\n".join(f"- {e}" for e in errors),
        format_instructions=document_format_instructions(),
    )


__all__ = [
    "DOCUMENT_PROMPT",
    "PERSONA",
    "REPAIR_PROMPT",
    "REPLY_FORMAT_INSTRUCTIONS",
    "REPLY_PROMPT",
    "build_document_prompt",
    "build_repair_prompt",
    "build_reply_prompt",
    "format_context",
    "format_history",
]
