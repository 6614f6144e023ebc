"""Vector and lexical similarity helpers."""

import re

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

_WORD_RE = re.compile(r"[a-z0-9']+")


def batch_cosine_similarity(query_embedding: list[float], embeddings: list[list[float]]) -> list[float]:
    """
    Compute cosine similarity between a query and multiple embeddings.

    Args:
        query_embedding: Query embedding vector
        embeddings: Embedding vectors of the same dimension

    Returns:
        One score in [-1.0, 1.0] per embedding, in input order; zero vectors score 0.0
    """
    if not embeddings:
        return []
    if not query_embedding:
        return [0.0] * len(embeddings)

    query_vec = np.array(query_embedding, dtype=float).reshape(1, -1)
    embedding_matrix = np.array(embeddings, dtype=float)

    return cosine_similarity(query_vec, embedding_matrix)[0].tolist()


def tokenize_words(text: str) -> list[str]:
    """Lowercased words of length > 1."""
    return [w for w in _WORD_RE.findall(text.lower()) if len(w) > 1]


def content_overlap_score(text1: str, text2: str) -> float:
    """Jaccard overlap between the word sets of two texts."""
    words1 = set(tokenize_words(text1))
    words2 = set(tokenize_words(text2))
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / len(words1 | words2)


def fuzzy_overlap_score(text1: str, text2: str, min_prefix: int = 3) -> float:
    """
    Overlap that also counts words sharing a common prefix.

    "running" and "runs" match on "run". Useful for inflected forms where
    exact Jaccard underestimates similarity.
    """
    words1 = set(tokenize_words(text1))
    words2 = set(tokenize_words(text2))
    if not words1 or not words2:
        return 0.0

    matched = 0
    for w1 in words1:
        for w2 in words2:
            if w1 == w2:
                matched += 1
                break
            prefix = min(len(w1), len(w2))
            if prefix >= min_prefix and w1[:min_prefix] == w2[:min_prefix]:
                matched += 1
                break

    return matched / max(len(words1), len(words2))
