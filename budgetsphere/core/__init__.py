"""Core routing package.

Architectural role:
    Exposes the routing/selection engine that sits between the transport layer and
    the handler, memory, and LLM subsystems.

Composition:
    - `routing_types`: request, decision, outcome, and response contracts.
    - `errors`: routing error taxonomy.
    - `settings`: environment-driven router configuration.
    - `historical_scorer`: memory-derived handler scores.
    - `selector`: weighted aggregation and deterministic winner selection.
    - `executor`: handler execution with deadline enforcement.
    - `feedback_recorder`: background outcome persistence.
    - `engine`: the `Router` pipeline.

Determinism and side effects:
    Package import is side-effect free apart from `.env` loading in `settings`.
"""
