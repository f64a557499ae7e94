"""Relevance-ranked `MemoryContext` assembly.

Architectural role:
    Converts a user's stored episodes, concepts, and procedures into the bounded
    snapshot consumed by the router for one request.

Retrieval strategy:
    - Episodes: cosine similarity between the request message and each episode's
      user message (FAISS `IndexFlatIP` over normalized embeddings). Ties keep
      the most recent episode first. Capped at `max_episodes`.
    - Concepts: similarity against `"<name> <definition>"`, capped.
    - Procedures: the requesting handler's own procedures first, then by usage
      count; capped.

Determinism and performance:
    Deterministic for fixed inputs. Runtime is linear in the number of the user's
    stored records; indexes are built per call and not persisted.
"""

from collections.abc import Sequence

import faiss

from budgetsphere.memory.embedding_model import embed, embed_batch
from budgetsphere.memory.memory_context import Concept, Episode, MemoryContext, Procedure


def _rank_by_similarity(query: str, texts: list[str]) -> list[tuple[int, float]]:
    """Return `(position, similarity)` for every text, most similar first.

    Equal similarities keep the input order (FAISS returns them by index).
    """
    if not texts:
        return []

    query_vec = embed(query)
    matrix = embed_batch(texts)
    if query_vec is None or matrix is None:
        return [(position, 0.0) for position in range(len(texts))]

    index = faiss.IndexFlatIP(matrix.shape[1])
    index.add(matrix)
    scores, positions = index.search(query_vec, len(texts))

    ranked = [
        (int(position), float(score))
        for position, score in zip(positions[0], scores[0])
        if position >= 0
    ]
    ranked.sort(key=lambda item: (-round(item[1], 6), item[0]))
    return ranked


def rank_episodes(message: str, episodes: Sequence[Episode], limit: int) -> list[Episode]:
    """Rank episodes by relevance to `message`, newest first on equal relevance."""
    newest_first = sorted(episodes, key=lambda e: e.timestamp, reverse=True)
    ranked = _rank_by_similarity(message, [e.user_message for e in newest_first])
    return [newest_first[position] for position, _ in ranked[:max(0, limit)]]


def rank_concepts(message: str, concepts: Sequence[Concept], limit: int) -> list[Concept]:
    ordered = list(concepts)
    ranked = _rank_by_similarity(message, [f"{c.name} {c.definition}" for c in ordered])
    return [ordered[position] for position, _ in ranked[:max(0, limit)]]


def rank_procedures(
    handler_name: str | None,
    procedures: Sequence[Procedure],
    limit: int,
) -> list[Procedure]:
    ordered = sorted(
        procedures,
        key=lambda p: (p.handler_pattern != handler_name, -p.usage_count, p.name),
    )
    return ordered[:max(0, limit)]


def build_memory_context(
    message: str,
    handler_name: str | None,
    episodes: Sequence[Episode],
    concepts: Sequence[Concept],
    procedures: Sequence[Procedure],
    max_episodes: int = 10,
    max_concepts: int = 5,
    max_procedures: int = 5,
    min_episodes: int = 1,
) -> MemoryContext:
    """Build a bounded, relevance-ordered snapshot for one request.

    Args:
        message: Request message used as the relevance query.
        handler_name: Handler the snapshot is built for (orders procedures);
            `None` when built for routing across all handlers.
        episodes, concepts, procedures: The user's stored records.
        max_episodes, max_concepts, max_procedures: Snapshot caps.
        min_episodes: Sufficiency threshold stored on the snapshot.

    Returns:
        Immutable `MemoryContext`.
    """
    return MemoryContext(
        episodes=tuple(rank_episodes(message, episodes, max_episodes)),
        concepts=tuple(rank_concepts(message, concepts, max_concepts)),
        procedures=tuple(rank_procedures(handler_name, procedures, max_procedures)),
        min_episodes=min_episodes,
    )
