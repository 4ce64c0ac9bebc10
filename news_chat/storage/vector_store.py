"""
Vector Store backed by Qdrant

Manages a single named Qdrant collection holding article embeddings:
collection bootstrap, upserts with caller-assigned integer ids, top-K
cosine similarity search with a score threshold, and bulk clearing.

Optimized for 768-dimensional embeddings (jina-embeddings-v2-base-en).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    Filter,
    FilterSelector,
    PointIdsList,
    PointStruct,
    VectorParams,
)

logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]


class VectorStoreError(Exception):
    """Raised when a vector store operation fails."""
    pass


@dataclass
class IndexedDocument:
    """A vector plus its payload, keyed by a caller-assigned integer id."""
    id: int
    vector: Vector
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchResult:
    """A single similarity hit; score is cosine similarity in [0, 1]."""
    id: Union[int, str]
    score: float
    payload: Dict[str, Any]


@dataclass(frozen=True)
class DocumentCount:
    """
    Best-effort document count.

    value is None when the count could not be retrieved, which is
    distinct from a collection that is genuinely empty.
    """
    value: Optional[int]

    @property
    def available(self) -> bool:
        return self.value is not None

    def as_int(self) -> int:
        return self.value if self.value is not None else 0


def _as_list(vector: Vector) -> List[float]:
    if isinstance(vector, np.ndarray):
        return vector.astype(np.float32).tolist()
    return [float(x) for x in vector]


class QdrantVectorStore:
    """
    Vector store using a Qdrant collection with cosine distance.

    Features:
    - Idempotent collection bootstrap (safe on every startup)
    - Upserts acknowledged before returning (wait=True)
    - Thresholded top-K search; tie order between equal scores is undefined
    - Clearing removes points but keeps the collection schema
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        collection_name: str = "news_articles",
        dimension: int = 768,
        timeout: int = 30,
        client: Optional[QdrantClient] = None
    ):
        """
        Initialize the Qdrant vector store.

        Args:
            url: Qdrant server URL (ignored when client is given)
            api_key: Qdrant API key
            collection_name: Name of the collection holding article vectors
            dimension: Dimension of embedding vectors (default: 768)
            timeout: Request timeout in seconds
            client: Pre-built QdrantClient (e.g. QdrantClient(":memory:") in tests)
        """
        self.collection_name = collection_name
        self.dimension = dimension
        self.client = client or QdrantClient(url=url, api_key=api_key, timeout=timeout)

    def ensure_collection(self) -> bool:
        """
        Create the collection if it does not exist yet.

        Returns:
            True if the collection was created, False if it already existed

        Raises:
            VectorStoreError: If listing or creating collections fails
        """
        try:
            existing = {
                collection.name
                for collection in self.client.get_collections().collections
            }

            if self.collection_name in existing:
                logger.info(f"Collection already exists: {self.collection_name}")
                return False

            logger.info(f"Creating collection: {self.collection_name}")
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimension,
                    distance=Distance.COSINE
                )
            )
            return True

        except Exception as e:
            raise VectorStoreError(
                f"Failed to ensure collection {self.collection_name}: {e}"
            ) from e

    def upsert(self, documents: List[IndexedDocument]) -> int:
        """
        Insert or replace documents by id.

        An existing id has its vector and payload replaced, not merged.

        Args:
            documents: Documents to write

        Returns:
            Number of documents written

        Raises:
            ValueError: If a vector has the wrong dimension
            VectorStoreError: If the write fails
        """
        if not documents:
            return 0

        points = []
        for doc in documents:
            vector = _as_list(doc.vector)
            if len(vector) != self.dimension:
                raise ValueError(
                    f"Embedding dimension ({len(vector)}) for document {doc.id} "
                    f"must match collection dimension ({self.dimension})"
                )
            points.append(PointStruct(id=doc.id, vector=vector, payload=doc.payload))

        logger.info(f"Upserting {len(points)} documents into {self.collection_name}")

        try:
            self.client.upsert(
                collection_name=self.collection_name,
                points=points,
                wait=True
            )
        except Exception as e:
            raise VectorStoreError(f"Failed to upsert documents: {e}") from e

        return len(points)

    def search(
        self,
        query_vector: Vector,
        top_k: int = 5,
        score_threshold: float = 0.7
    ) -> List[SearchResult]:
        """
        Find the documents most similar to a query vector.

        Args:
            query_vector: Query embedding
            top_k: Maximum number of results
            score_threshold: Minimum cosine similarity for a hit

        Returns:
            Results ordered by descending score; empty when nothing clears
            the threshold

        Raises:
            ValueError: If top_k is negative or the query dimension is wrong
            VectorStoreError: If the search request fails
        """
        if top_k < 0:
            raise ValueError(f"top_k must be non-negative, got {top_k}")

        if top_k == 0:
            return []

        vector = _as_list(query_vector)
        if len(vector) != self.dimension:
            raise ValueError(
                f"Query dimension ({len(vector)}) must match "
                f"collection dimension ({self.dimension})"
            )

        try:
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=top_k,
                score_threshold=score_threshold,
                with_payload=True
            )
        except Exception as e:
            raise VectorStoreError(f"Search failed: {e}") from e

        return [
            SearchResult(id=point.id, score=float(point.score), payload=point.payload or {})
            for point in response.points
        ]

    def delete_document(self, document_id: int) -> None:
        """Delete a single document by id."""
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[document_id]),
                wait=True
            )
        except Exception as e:
            raise VectorStoreError(f"Failed to delete document {document_id}: {e}") from e

    def clear(self) -> None:
        """
        Delete every document while keeping the collection itself.

        Raises:
            VectorStoreError: If the delete fails
        """
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=Filter()),
                wait=True
            )
            logger.info(f"Cleared collection {self.collection_name}")
        except Exception as e:
            raise VectorStoreError(f"Failed to clear collection: {e}") from e

    def count(self) -> DocumentCount:
        """
        Get the number of documents in the collection.

        Failures are logged and reported as an unavailable count rather
        than raised.
        """
        try:
            info = self.client.get_collection(self.collection_name)
            return DocumentCount(info.points_count or 0)
        except Exception as e:
            logger.error(f"Failed to get document count: {e}")
            return DocumentCount(None)

    def health_check(self) -> Dict[str, Any]:
        """
        Report whether Qdrant is reachable.

        Returns:
            {'status': 'healthy', 'collections': n} or
            {'status': 'unhealthy', 'error': message}
        """
        try:
            collections = self.client.get_collections().collections
            return {'status': 'healthy', 'collections': len(collections)}
        except Exception as e:
            return {'status': 'unhealthy', 'error': str(e)}

    def get_stats(self) -> Dict[str, Any]:
        """Summarize the store for reporting."""
        count = self.count()
        return {
            'collection': self.collection_name,
            'dimension': self.dimension,
            'distance': 'cosine',
            'total_documents': count.value,
            'count_available': count.available,
        }

    def close(self) -> None:
        self.client.close()

    def __repr__(self) -> str:
        return (
            f"QdrantVectorStore(collection={self.collection_name!r}, "
            f"dimension={self.dimension})"
        )
