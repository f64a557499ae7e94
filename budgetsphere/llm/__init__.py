"""LLM access package.

Architectural role:
    Provides provider configuration, request-payload construction, and transport
    adapters used by handlers to invoke text-generation backends.

Module split:
    - `provider_config`: environment-driven provider and model configuration.
    - `service`: canonical `(system, user) -> text` completion entrypoint.
    - `client`: provider-specific HTTP transport, response parsing, and the
      transient/fatal error split.
"""
