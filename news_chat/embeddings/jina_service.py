"""
Jina Embedding Service

Generates text embeddings through the Jina embeddings HTTP API.
Provides:
- Single and batched embedding requests
- Position tracking for batches with dropped (empty) inputs
- Dimension verification
- Uniform error reporting via EmbeddingFailure
"""

import logging
from typing import List, Optional, Tuple

import numpy as np
import requests

logger = logging.getLogger(__name__)


class EmbeddingFailure(Exception):
    """Raised when an embedding request cannot be completed."""
    pass


class EmbeddingDimensionError(EmbeddingFailure):
    """Raised when embedding dimensions don't match expected value."""
    pass


class JinaEmbeddingService:
    """
    Client for the Jina embeddings API.

    Every call is a single outbound request; there is no retry and no
    caching at this layer. Empty or whitespace-only texts are rejected
    locally, before any request is sent.
    """

    DEFAULT_BASE_URL = "https://api.jina.ai/v1/embeddings"
    EXPECTED_DIMENSIONS = 768  # jina-embeddings-v2-base-en

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "jina-embeddings-v2-base-en",
        base_url: Optional[str] = None,
        dimensions: int = EXPECTED_DIMENSIONS,
        verify_dimensions: bool = True,
        timeout: int = 30,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the Jina embedding service.

        Args:
            api_key: Jina API key, sent as a bearer token
            model: Embedding model name
            base_url: Embeddings endpoint URL
            dimensions: Expected vector length
            verify_dimensions: Verify embedding dimensions match expected value
            timeout: Request timeout in seconds
            session: Optional requests session (default: module-level requests)
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url or self.DEFAULT_BASE_URL
        self.dimensions = dimensions
        self.verify_dimensions = verify_dimensions
        self.timeout = timeout
        self._http = session or requests

        logger.info(f"Initialized JinaEmbeddingService with model: {self.model}")

    def _headers(self) -> dict:
        return {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }

    def _verify_embedding_dimensions(self, embedding: np.ndarray) -> None:
        """
        Verify embedding dimensions match expected value.

        Raises:
            EmbeddingDimensionError: If dimensions don't match
        """
        if not self.verify_dimensions:
            return

        actual_dims = len(embedding)
        if actual_dims != self.dimensions:
            raise EmbeddingDimensionError(
                f"Expected {self.dimensions} dimensions, got {actual_dims}. "
                f"This may indicate an issue with the model or API."
            )

    def _request_embeddings(self, inputs: List[str]) -> List[np.ndarray]:
        """
        Send one embeddings request and return vectors in input order.

        Args:
            inputs: Non-empty, already trimmed texts

        Returns:
            One float32 vector per input

        Raises:
            EmbeddingFailure: On transport, HTTP or response format errors
        """
        try:
            response = self._http.post(
                self.base_url,
                json={
                    "model": self.model,
                    "input": inputs
                },
                headers=self._headers(),
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()['data']
        except requests.exceptions.Timeout as e:
            raise EmbeddingFailure(f"Request timed out after {self.timeout}s") from e
        except requests.exceptions.ConnectionError as e:
            raise EmbeddingFailure(
                f"Unable to connect to embedding API at {self.base_url}: {e}"
            ) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 'unknown'
            raise EmbeddingFailure(f"HTTP error {status} from embedding API: {e}") from e
        except requests.exceptions.RequestException as e:
            raise EmbeddingFailure(f"Error calling embedding API: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingFailure(f"Unexpected API response format: {e}") from e

        if not isinstance(data, list) or len(data) != len(inputs):
            received = len(data) if isinstance(data, list) else 0
            raise EmbeddingFailure(
                f"Invalid response format from embedding API: expected "
                f"{len(inputs)} embeddings, got {received}"
            )

        try:
            # The provider reports each vector's input index; don't trust response order
            ordered = sorted(
                enumerate(data),
                key=lambda pair: pair[1].get('index', pair[0])
            )
            embeddings = [
                np.array(item['embedding'], dtype=np.float32)
                for _, item in ordered
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise EmbeddingFailure(f"Unexpected API response format: {e}") from e

        for embedding in embeddings:
            self._verify_embedding_dimensions(embedding)

        return embeddings

    def embed(self, text: str) -> np.ndarray:
        """
        Generate embedding for a single text.

        Args:
            text: Input text (trimmed before sending)

        Returns:
            Embedding vector as numpy array

        Raises:
            EmbeddingFailure: If text is empty or the request fails
        """
        if not text or not text.strip():
            raise EmbeddingFailure("Text cannot be empty")

        return self._request_embeddings([text.strip()])[0]

    def embed_batch_with_positions(self, texts: List[str]) -> List[Tuple[int, np.ndarray]]:
        """
        Embed multiple texts, keeping track of which input each vector belongs to.

        Empty and whitespace-only entries are dropped before the request is sent.

        Args:
            texts: List of input texts

        Returns:
            List of (input_position, vector) pairs in input order, with
            dropped positions absent

        Raises:
            EmbeddingFailure: If no non-empty text remains or the request fails
        """
        if not texts:
            raise EmbeddingFailure("Texts array cannot be empty")

        positions = [
            i for i, text in enumerate(texts)
            if text and text.strip()
        ]
        if not positions:
            raise EmbeddingFailure("No valid texts to embed")

        dropped = len(texts) - len(positions)
        if dropped:
            logger.warning(f"Dropped {dropped} empty text(s) from embedding batch")

        vectors = self._request_embeddings([texts[i].strip() for i in positions])
        return list(zip(positions, vectors))

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """
        Embed multiple texts in one request.

        Results align with the filtered input (empty entries removed). Use
        embed_batch_with_positions when inputs must be correlated with vectors.

        Raises:
            EmbeddingFailure: If no non-empty text remains or the request fails
        """
        return [vector for _, vector in self.embed_batch_with_positions(texts)]

    def validate_api_key(self) -> bool:
        """
        Check that the configured key can embed a probe text.

        Returns:
            True if the probe request succeeded
        """
        try:
            self.embed("test")
            return True
        except EmbeddingFailure as e:
            logger.error(f"Embedding API key validation failed: {e}")
            return False

    def get_embedding_dimensions(self) -> int:
        """Return the provider's actual vector length, or the configured one on failure."""
        try:
            previous = self.verify_dimensions
            self.verify_dimensions = False
            try:
                return len(self.embed("test"))
            finally:
                self.verify_dimensions = previous
        except EmbeddingFailure as e:
            logger.error(f"Failed to get embedding dimensions: {e}")
            return self.dimensions
