"""
Delila - Conversational builder for elizaOS character files
============================================================

FastAPI backend that interviews a user about the agent they want and streams back
both a chat reply and a validated elizaOS character file over Server-Sent Events.

Key Features:
    - **SSE Streaming**: Reply deltas, partial character snapshots and typed error events
    - **Pluggable LLMs**: OpenAI, Anthropic and DeepSeek behind one streaming client
    - **Validated Output**: Pydantic schema checks plus a single repair pass
    - **Vector Context**: pgvector similarity search over elizaOS documentation
    - **Enterprise Logging**: Structured JSON logs with request and session correlation

Modules:
    api: FastAPI routes, services, middleware and dependency wiring
    core: Generation pipeline, prompts, validation, configuration constants
    models: Pydantic models for character files, API schemas and errors
    utils: Logging, database pools, caching, HTTP client factory
    integrations: LLM provider clients and the embedding service
"""
