"""
Integrations Module - External Model Providers
==============================================

Thin async wrappers around the hosted model APIs the backend talks to.

Modules:
    llm_provider: Streaming chat clients for OpenAI, Anthropic and DeepSeek
    embedding_service: Text embeddings for the vector context store

Example:
    Streaming a reply:

        from integrations.llm_provider import ProviderHandles

        handles = ProviderHandles.from_settings(settings)
        async for delta in handles.llm.stream(prompt):
            print(delta, end="")

See Also:
    :mod:`core.pipeline`: Generation stages that consume these clients
    :mod:`api.services.context_service`: Vector search built on the embedding service
"""
