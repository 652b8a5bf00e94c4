"""
Clause2Case
Retrieval pipeline — paragraph chunking + cosine ranking.

Features:
    - Paragraph-preserving chunker (no overlap, oversized paragraphs kept whole)
    - Pluggable embedder capability (hash-based for dev/test, gateway for prod)
    - Top-k cosine ranking with an optional similarity threshold

Usage:
    from clause2case.ai.rag import ParagraphChunker, HashEmbedder, Retriever
    texts = ParagraphChunker.chunk(document_text, max_size=1000)
    retriever = Retriever(HashEmbedder(), top_k=5)
    chunks = retriever.embed_chunks(document_id, texts)
    ranked = retriever.select("refund approval rules", chunks)
"""

import hashlib
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ── Chunking Constants ────────────────────────────────────────────────────────

DEFAULT_CHUNK_SIZE = 1000     # characters
DEFAULT_TOP_K = 5
HASH_EMBEDDING_DIM = 256

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_TOKEN_RE = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True)
class DocumentChunk:
    """One embedded slice of a document, scoped to a single pipeline run."""

    id: str
    content: str
    embedding: tuple[float, ...]
    document_id: str | None
    chunk_index: int


# ── Chunking Engine ───────────────────────────────────────────────────────────

class ParagraphChunker:
    """
    Paragraph-aware chunker.

    Paragraphs (blank-line separated) are packed greedily into chunks of at
    most ``max_size`` characters, joined by a blank line. A paragraph that is
    itself longer than ``max_size`` becomes its own chunk and is never split.
    """

    SEPARATOR = "\n\n"

    @staticmethod
    def chunk(text: str, max_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
        """
        Split ``text`` into paragraph-preserving chunks.

        Args:
            text: Raw document text.
            max_size: Soft upper bound on chunk length in characters.

        Returns:
            Ordered list of chunk strings. Empty for empty/whitespace input.
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")

        paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT.split(text or "")]
        chunks: list[str] = []
        buffer = ""
        for para in paragraphs:
            if not para:
                continue
            if not buffer:
                buffer = para
            elif len(buffer) + len(ParagraphChunker.SEPARATOR) + len(para) > max_size:
                chunks.append(buffer)
                buffer = para
            else:
                buffer = buffer + ParagraphChunker.SEPARATOR + para
        if buffer:
            chunks.append(buffer)
        return chunks


# ── Embedders ────────────────────────────────────────────────────────────────

class Embedder(ABC):
    """Capability that turns texts into fixed-length vectors."""

    name = "abstract"

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        ...


class HashEmbedder(Embedder):
    """
    Deterministic bag-of-words embedder, no network.

    Each lower-cased token is hashed with SHA-512 into one of ``dim`` buckets
    with a signed weight, so texts sharing vocabulary land near each other.
    """

    name = "hash"

    def __init__(self, dim: int = HASH_EMBEDDING_DIM):
        self.dim = dim

    def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._embed_one(t) for t in texts]

    def _embed_one(self, text: str) -> list[float]:
        vec = [0.0] * self.dim
        for token in _TOKEN_RE.findall((text or "").lower()):
            digest = hashlib.sha512(token.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dim
            sign = 1.0 if digest[4] & 1 else -1.0
            vec[bucket] += sign
        return vec


class GatewayEmbedder(Embedder):
    """Delegates to the configured LLM provider's embedding endpoint."""

    name = "gateway"

    def __init__(self, gateway, model: str | None = None):
        self.gateway = gateway
        self.model = model

    def embed(self, texts: list[str]) -> list[list[float]]:
        return self.gateway.embed(texts, model=self.model)


# ── Retriever ────────────────────────────────────────────────────────────────

class Retriever:
    """
    Ranks document chunks against a query vector.

    Args:
        embedder: Any ``Embedder``; the retriever never depends on how
                  vectors are produced.
        top_k: Maximum number of chunks returned.
        threshold: Optional minimum similarity; ``None`` keeps everything.
    """

    def __init__(self, embedder: Embedder, top_k: int = DEFAULT_TOP_K,
                 threshold: float | None = None):
        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self.embedder = embedder
        self.top_k = top_k
        self.threshold = threshold

    def embed_chunks(self, document_id: str | None, texts: list[str]) -> list[DocumentChunk]:
        """Embed chunk texts in one batch and wrap them as ``DocumentChunk``s."""
        if not texts:
            return []
        vectors = self.embedder.embed(texts)
        return [
            DocumentChunk(
                id=f"{document_id or 'doc'}:{i}",
                content=text,
                embedding=tuple(vec),
                document_id=document_id,
                chunk_index=i,
            )
            for i, (text, vec) in enumerate(zip(texts, vectors))
        ]

    def rank(self, query_vector: list[float],
             chunks: list[DocumentChunk]) -> list[tuple[DocumentChunk, float]]:
        """
        Score every chunk, sort by similarity descending and truncate.

        Ties keep their original chunk order.
        """
        scored = [(chunk, cosine_similarity(query_vector, chunk.embedding)) for chunk in chunks]
        if self.threshold is not None:
            scored = [pair for pair in scored if pair[1] >= self.threshold]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[: self.top_k]

    def select(self, query: str, chunks: list[DocumentChunk]) -> list[tuple[DocumentChunk, float]]:
        """Embed ``query`` and return the ranked chunks."""
        if not chunks:
            return []
        query_vector = self.embedder.embed([query])[0]
        ranked = self.rank(query_vector, chunks)
        logger.debug("Retriever selected %d/%d chunks (top_k=%d threshold=%s)",
                     len(ranked), len(chunks), self.top_k, self.threshold)
        return ranked


def cosine_similarity(vec_a, vec_b) -> float:
    """Compute cosine similarity between two vectors."""
    if len(vec_a) != len(vec_b):
        return 0.0

    dot = sum(a * b for a, b in zip(vec_a, vec_b))
    norm_a = math.sqrt(sum(a * a for a in vec_a))
    norm_b = math.sqrt(sum(b * b for b in vec_b))

    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
