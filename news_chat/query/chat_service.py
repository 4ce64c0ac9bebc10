"""
Chat Service for Retrieval-Augmented Answers

Orchestrates one chat turn:
1. Input validation
2. Query embedding
3. Context retrieval from the vector store
4. Context assembly
5. Answer generation (fails soft inside the generation client)
6. History bookkeeping in the session cache
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..embeddings.jina_service import JinaEmbeddingService
from ..generation.gemini_service import GeminiService
from ..storage.session_cache import ChatMessage, SessionCache, SessionInfo, utc_now_iso
from ..storage.vector_store import QdrantVectorStore, SearchResult

logger = logging.getLogger(__name__)


class ChatValidationError(ValueError):
    """Raised when a chat request is missing its session id or message."""
    pass


class ChatProcessingError(RuntimeError):
    """Raised when a chat turn fails for any reason other than validation."""
    pass


@dataclass
class ChatReply:
    response: str
    session_id: str
    context: str = ""
    sources: int = 0

    def to_dict(self) -> dict:
        return {'response': self.response, 'sessionId': self.session_id}


def build_context(results: List[SearchResult]) -> str:
    """Join the content of each hit, in result order, separated by blank lines."""
    return '\n\n'.join(
        str(result.payload.get('content', ''))
        for result in results
    )


class ChatService:
    """
    RAG chat pipeline over news articles with per-session history.

    Each call runs its steps sequentially; no state is shared between calls
    except what lives in the vector store and the session cache.
    """

    def __init__(
        self,
        embedding_service: JinaEmbeddingService,
        vector_store: QdrantVectorStore,
        generator: GeminiService,
        session_cache: SessionCache,
        top_k: int = 5,
        score_threshold: float = 0.7
    ):
        """
        Initialize the chat service.

        Args:
            embedding_service: Embeds the user's message
            vector_store: Source of context documents
            generator: Produces the answer text
            session_cache: Stores the exchange
            top_k: Number of context documents to retrieve
            score_threshold: Minimum similarity for a retrieved document
        """
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.generator = generator
        self.session_cache = session_cache
        self.top_k = top_k
        self.score_threshold = score_threshold

    def new_session_id(self) -> str:
        return self.session_cache.new_session_id()

    def retrieve(self, message: str) -> List[SearchResult]:
        """Embed a message and fetch the most similar documents."""
        query_embedding = self.embedding_service.embed(message)
        return self.vector_store.search(
            query_embedding,
            top_k=self.top_k,
            score_threshold=self.score_threshold
        )

    def handle_message(self, session_id: Optional[str], message: Optional[str]) -> ChatReply:
        """
        Answer a message and record the exchange in the session history.

        Args:
            session_id: Session identifier
            message: The user's message

        Returns:
            ChatReply with the generated answer

        Raises:
            ChatValidationError: If session_id or message is missing
            ChatProcessingError: If retrieval or history storage fails
        """
        if not session_id or not str(session_id).strip() or not message or not str(message).strip():
            raise ChatValidationError("Session ID and message are required")

        try:
            results = self.retrieve(message)
            context = build_context(results)
            logger.info(f"Retrieved {len(results)} context documents for session {session_id}")

            response = self.generator.generate(message, context)

            self.session_cache.append_message(session_id, ChatMessage(
                user=message,
                bot=response,
                timestamp=utc_now_iso()
            ))
        except Exception as e:
            logger.exception(f"Chat error for session {session_id}: {e}")
            raise ChatProcessingError("Failed to process message") from e

        return ChatReply(
            response=response,
            session_id=session_id,
            context=context,
            sources=len(results)
        )

    def get_history(self, session_id: str) -> List[ChatMessage]:
        return self.session_cache.get_history(session_id)

    def clear_history(self, session_id: str) -> None:
        self.session_cache.clear_session(session_id)

    def session_info(self, session_id: str) -> Optional[SessionInfo]:
        return self.session_cache.session_info(session_id)
