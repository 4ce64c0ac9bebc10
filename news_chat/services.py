"""
Service wiring

Builds every external client from configuration, verifies the ones the
backend cannot run without, and closes them again on shutdown.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import Config, ConfigValidationError, get_config
from .embeddings.jina_service import JinaEmbeddingService
from .generation.gemini_service import GeminiService
from .ingestion.feed_fetcher import FeedFetcher
from .ingestion.pipeline import NewsIngestionPipeline
from .ingestion.rate_limiter import RateLimiter
from .query.chat_service import ChatService
from .storage.session_cache import SessionCache
from .storage.vector_store import QdrantVectorStore

logger = logging.getLogger(__name__)


class ServiceInitializationError(Exception):
    """Raised when a required external client cannot be initialized."""
    pass


@dataclass
class Services:
    """All clients used by the HTTP API, bundled for injection."""
    embedding_service: JinaEmbeddingService
    vector_store: QdrantVectorStore
    generator: GeminiService
    session_cache: SessionCache
    chat_service: ChatService

    def close(self) -> None:
        """Close network clients; errors are logged so every client gets closed."""
        for name, client in (('redis', self.session_cache), ('qdrant', self.vector_store)):
            try:
                client.close()
                logger.info(f"Closed {name} client")
            except Exception as e:
                logger.warning(f"Error closing {name} client: {e}")


def build_vector_store(config: Config) -> QdrantVectorStore:
    """Create the vector store and make sure its collection exists."""
    try:
        vector_store = QdrantVectorStore(
            url=config.qdrant_url,
            api_key=config.qdrant_api_key,
            collection_name=config.qdrant_collection,
            dimension=config.embedding_dimension,
            timeout=config.request_timeout
        )
        vector_store.ensure_collection()
    except Exception as e:
        raise ServiceInitializationError(f"Failed to initialize Qdrant: {e}") from e

    logger.info("Qdrant service initialized successfully")
    return vector_store


def build_embedding_service(config: Config) -> JinaEmbeddingService:
    return JinaEmbeddingService(
        api_key=config.jina_api_key,
        model=config.jina_model,
        base_url=config.jina_base_url,
        dimensions=config.embedding_dimension,
        timeout=config.request_timeout
    )


def build_services(config: Optional[Config] = None) -> Services:
    """
    Initialize every client the chat backend depends on.

    Raises:
        ServiceInitializationError: If credentials are missing or Redis/Qdrant
            cannot be reached
    """
    config = config or get_config()

    try:
        config.require_credentials()
    except ConfigValidationError as e:
        raise ServiceInitializationError(str(e)) from e

    try:
        session_cache = SessionCache(
            redis_url=config.redis_url,
            session_ttl=config.session_ttl,
            history_ttl=config.history_ttl
        )
        session_cache.ping()
    except Exception as e:
        raise ServiceInitializationError(f"Failed to connect to Redis: {e}") from e
    logger.info("Connected to Redis")

    vector_store = build_vector_store(config)
    embedding_service = build_embedding_service(config)

    try:
        generator = GeminiService(api_key=config.gemini_api_key, model=config.gemini_model)
    except Exception as e:
        raise ServiceInitializationError(f"Failed to initialize Gemini: {e}") from e

    chat_service = ChatService(
        embedding_service=embedding_service,
        vector_store=vector_store,
        generator=generator,
        session_cache=session_cache,
        top_k=config.search_top_k,
        score_threshold=config.score_threshold
    )

    logger.info("All services initialized successfully")
    return Services(
        embedding_service=embedding_service,
        vector_store=vector_store,
        generator=generator,
        session_cache=session_cache,
        chat_service=chat_service
    )


def build_ingestion_pipeline(
    config: Optional[Config] = None,
    show_progress: bool = False
) -> NewsIngestionPipeline:
    """
    Create an ingestion pipeline wired to the configured feeds and stores.

    Raises:
        ServiceInitializationError: If the embedding key is missing or Qdrant
            cannot be initialized
    """
    config = config or get_config()

    if not config.jina_api_key:
        raise ServiceInitializationError("Missing required configuration: JINA_API_KEY")

    return NewsIngestionPipeline(
        embedding_service=build_embedding_service(config),
        vector_store=build_vector_store(config),
        feed_urls=config.feed_urls,
        feed_fetcher=FeedFetcher(
            timeout=config.feed_timeout,
            max_retries=config.feed_max_retries,
            retry_backoff=config.feed_retry_backoff
        ),
        batch_size=config.embedding_batch_size,
        max_items_per_feed=config.max_items_per_feed,
        max_articles=config.max_articles,
        feed_limiter=RateLimiter(config.feed_delay),
        batch_limiter=RateLimiter(config.batch_delay),
        show_progress=show_progress
    )
