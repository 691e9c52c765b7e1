"""Dense retriever over the vector store.

The query is embedded with the same embedding model used at ingest time and
the store returns the nearest chunks, ties broken by id.
"""

from __future__ import annotations

from codeparity.db.models import SimilarRecord
from codeparity.db.store import VectorStore
from codeparity.exceptions import EmbeddingServiceError
from codeparity.ingest.embedding_writer import Embedder


def retrieve(
    query: str,
    store: VectorStore,
    embedder: Embedder,
    top_k: int = 5,
) -> list[SimilarRecord]:
    """Embed *query* and return the *top_k* most similar stored chunks, best-first.

    Raises:
        EmbeddingServiceError: If the query cannot be embedded.
    """
    vectors = embedder.embed_batch([query])
    if len(vectors) != 1:
        raise EmbeddingServiceError(f"expected 1 query vector, got {len(vectors)}")
    return store.query_similar(vectors[0], k=top_k)


def with_unit_chunks(
    identities: list[str],
    retrieved: list[SimilarRecord],
    store: VectorStore,
) -> list[SimilarRecord]:
    """Return the unit's own stored chunks, then the retrieved ones not among them.

    Identities without a stored payload are left out. Own chunks carry distance 0.
    """
    own = []
    for identity in identities:
        chunk = store.get(identity)
        if chunk is not None:
            own.append(SimilarRecord(chunk=chunk, distance=0.0))
    seen = {r.chunk.id for r in own}
    return own + [r for r in retrieved if r.chunk.id not in seen]


def build_unit_query(unit_name: str, locations: dict[str, list[str]]) -> str:
    """Return the retrieval query for one comparison unit.

    >>> build_unit_query("Ema", {"python": ["ema.py"]})
    'Ema implementations: python: ema.py'
    """
    parts = [
        f"{category}: {', '.join(paths)}"
        for category, paths in locations.items()
        if paths
    ]
    if not parts:
        return unit_name
    return f"{unit_name} implementations: " + "; ".join(parts)


def ensure_populated(store: VectorStore) -> None:
    """Raise RuntimeError if the store has no vectors for its model."""
    if store.count() == 0:
        raise RuntimeError(
            f"No embeddings found for model '{store.model}'. "
            "Run 'codeparity embed' first to populate the vector index."
        )
