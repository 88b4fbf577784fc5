"""
Knowledge Value Objects
=======================

Stateless text and vector utilities used by ingestion and retrieval:
- chunk_text: overlapping fixed-size windows
- cosine_similarity: in-process similarity scorer
- select_context: threshold-based tier selection
"""

import math
from pathlib import PurePath
from typing import List, Optional, Sequence

from supportflow.config import RetrievalTier, TEXT_MIME_TYPES, PDF_MIME_TYPE
from supportflow.core import SimilarityException
from supportflow.knowledge.domain.entities import ScoredChunk, RetrievalResult

EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME_TYPE,
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
}


def resolve_mime_type(filename: str, declared: Optional[str]) -> Optional[str]:
    """
    Pick the MIME type ingestion will dispatch on.

    A supported declared type wins; otherwise the file extension decides.
    Returns None for formats the pipeline cannot extract.
    """
    declared = (declared or "").split(";")[0].strip().lower()
    if declared == PDF_MIME_TYPE or declared in TEXT_MIME_TYPES:
        return declared
    return EXTENSION_MIME_TYPES.get(PurePath(filename).suffix.lower())


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[str]:
    """
    Split text into overlapping windows of chunk_size characters.

    The window advances by chunk_size - overlap, floored at 1 so an
    overlap >= chunk_size still terminates. Splitting stops at the first
    window that reaches the end of the text, so the last window may be
    short but is never fully contained in its predecessor.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must not be negative")

    step = max(1, chunk_size - overlap)
    chunks = []
    start = 0
    while start < len(text):
        chunks.append(text[start:start + chunk_size])
        if start + chunk_size >= len(text):
            break
        start += step
    return chunks


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), clamped to [-1, 1].

    Raises:
        SimilarityException: On empty, zero or dimension-mismatched vectors
    """
    if len(a) == 0 or len(b) == 0:
        raise SimilarityException("Cannot compare empty vectors")
    if len(a) != len(b):
        raise SimilarityException(
            "Vector dimensions differ",
            {"left": len(a), "right": len(b)}
        )

    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        raise SimilarityException("Cannot compare a zero vector")

    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def select_context(
    candidates: List[ScoredChunk],
    high_threshold: float = 0.6,
    medium_threshold: float = 0.4,
    limit: int = 5
) -> RetrievalResult:
    """
    Bucket candidates into tiers and pick the grounding context.

    High matches win outright; medium matches are used only when there is
    no high match; otherwise nothing is selected (LOW).
    """
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    top = ranked[0].score if ranked else None

    high = [c for c in ranked if c.score >= high_threshold]
    medium = [c for c in ranked if medium_threshold <= c.score < high_threshold]

    if high:
        return RetrievalResult(selected=high[:limit], top_similarity=top, tier=RetrievalTier.HIGH)
    if medium:
        return RetrievalResult(selected=medium[:limit], top_similarity=top, tier=RetrievalTier.MEDIUM)
    return RetrievalResult(selected=[], top_similarity=top, tier=RetrievalTier.LOW)
