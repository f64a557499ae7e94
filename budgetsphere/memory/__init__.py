"""Memory subsystem package.

Architectural role:
    Groups the memory components consumed by the router:
    - `memory_context`: episode/concept/procedure records and the per-request snapshot.
    - `embedding_model`: shared embedder used for relevance ranking.
    - `context_builder`: bounded, relevance-ordered snapshot assembly.
    - `episode_store`: the store collaborator (build context, store, amend feedback).
"""
