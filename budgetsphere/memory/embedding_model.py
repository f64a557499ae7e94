"""Embedding model bootstrap for the memory subsystem.

Architectural role:
    Provides a single shared `SentenceTransformer` instance used to rank stored
    episodes and concepts by relevance to an incoming message. The loader decides
    CPU vs CUDA execution once and reuses the initialized model across calls.

Design intent:
    - Keep embedding initialization centralized.
    - Avoid duplicated model loads across modules.
    - Return float32 L2-normalized matrices ready for FAISS inner-product search.

Vector format:
    The default model is an E5 variant, so incoming messages are prefixed with
    `"query: "` and stored memory texts with `"passage: "`.
"""

import logging
import os
import re

import faiss
import numpy as np


logger = logging.getLogger(__name__)

EMBED_MODEL = os.getenv("EMBED_MODEL", "intfloat/multilingual-e5-small")
EMBED_DEVICE = os.getenv("EMBED_DEVICE", "auto")
MIN_FREE_VRAM_MB = int(os.getenv("EMBED_MIN_FREE_VRAM_MB", "800"))

QUERY_PREFIX = "query: "
PASSAGE_PREFIX = "passage: "

_model = None


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, and collapse whitespace.

    Args:
        text: Raw user or memory text.

    Returns:
        Normalized text; empty string for empty input.
    """
    if not text:
        return ""

    text = str(text).lower()
    text = re.sub(r"[^\w\s-]", " ", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def has_enough_vram(min_required_mb: int = MIN_FREE_VRAM_MB) -> bool:
    """Return whether CUDA is available with more than `min_required_mb` free."""
    import torch

    if not torch.cuda.is_available():
        return False

    free_mem, _ = torch.cuda.mem_get_info()
    free_mb = free_mem / 1024 / 1024
    logger.info("Free VRAM: %.0f MB", free_mb)
    return free_mb > min_required_mb


def _select_device() -> str:
    if EMBED_DEVICE != "auto":
        return EMBED_DEVICE
    try:
        return "cuda" if has_enough_vram() else "cpu"
    except (ImportError, RuntimeError):
        logger.exception("CUDA check failed; using CPU for embeddings")
        return "cpu"


def get_model():
    """Load and cache the shared embedding model.

    Returns:
        A `SentenceTransformer` instance on the selected device.

    Side effects:
        Imports `sentence_transformers` lazily; the first call downloads the model
        when it is not cached locally.
    """
    global _model

    if _model is not None:
        return _model

    from sentence_transformers import SentenceTransformer

    device = _select_device()
    logger.info("Loading embedding model %s on %s", EMBED_MODEL, device.upper())
    _model = SentenceTransformer(EMBED_MODEL, device=device)
    return _model


def _encode(texts: list[str]) -> np.ndarray:
    vecs = np.asarray(get_model().encode(texts, convert_to_numpy=True), dtype="float32")
    vecs = np.ascontiguousarray(vecs.reshape(len(texts), -1))
    faiss.normalize_L2(vecs)
    return vecs


def embed(text: str) -> np.ndarray | None:
    """Embed one incoming message into a normalized `(1, dimension)` matrix.

    Returns:
        Normalized matrix, or `None` when the text is empty after normalization.
    """
    normalized = normalize_text(text)
    if not normalized:
        return None
    return _encode([QUERY_PREFIX + normalized])


def embed_batch(texts: list[str]) -> np.ndarray | None:
    """Embed stored memory texts; rows keep input order.

    Returns:
        Normalized matrix, or `None` when `texts` is empty.
    """
    if not texts:
        return None
    return _encode([PASSAGE_PREFIX + normalize_text(str(t or "")) for t in texts])
