"""
Session Cache for Chat History

Keeps ephemeral per-session chat history and a last-activity timestamp
in Redis. Both keys expire on their own; nothing here is durable.

Key layout:
    session:{id}  string, last-activity ISO timestamp, TTL = session_ttl
    history:{id}  list of JSON-encoded messages, newest at the head, TTL = history_ttl
"""

import json
import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ChatMessage:
    """One user/bot exchange."""
    user: str
    bot: str
    timestamp: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChatMessage':
        return cls(
            user=data.get('user', ''),
            bot=data.get('bot', ''),
            timestamp=data.get('timestamp', '')
        )


@dataclass
class SessionInfo:
    session_id: str
    last_activity: Optional[str]
    message_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sessionId': self.session_id,
            'lastActivity': self.last_activity,
            'messageCount': self.message_count
        }


class SessionCache:
    """
    Manages chat sessions stored in Redis.

    Features:
    - Lazy session creation on first message
    - TTL refresh on every message
    - Chronological (oldest-first) history retrieval
    - Idempotent session clearing

    Appending a message touches two keys without a transaction. Concurrent
    appends to one session are last-writer-wins; a partial failure can only
    leave a stale TTL, never corrupt stored messages.
    """

    SESSION_PREFIX = "session:"
    HISTORY_PREFIX = "history:"

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        redis_url: str = "redis://localhost:6379",
        session_ttl: int = 3600,
        history_ttl: int = 7200
    ):
        """
        Initialize the session cache.

        Args:
            client: Pre-built Redis client (must use decode_responses=True)
            redis_url: Connection URL used when no client is given
            session_ttl: Seconds before a session record expires
            history_ttl: Seconds before a history list expires
        """
        self.client = client or redis.Redis.from_url(redis_url, decode_responses=True)
        self.session_ttl = session_ttl
        self.history_ttl = history_ttl

    @staticmethod
    def new_session_id() -> str:
        """Generate a fresh random session identifier."""
        return str(uuid.uuid4())

    def session_key(self, session_id: str) -> str:
        return f"{self.SESSION_PREFIX}{session_id}"

    def history_key(self, session_id: str) -> str:
        return f"{self.HISTORY_PREFIX}{session_id}"

    def ping(self) -> bool:
        """
        Check connectivity.

        Raises:
            redis.RedisError: If Redis cannot be reached
        """
        return bool(self.client.ping())

    def append_message(self, session_id: str, message: ChatMessage) -> None:
        """
        Add a message to a session's history and refresh the session.

        Args:
            session_id: Session identifier
            message: The exchange to store
        """
        history_key = self.history_key(session_id)

        pipe = self.client.pipeline(transaction=False)
        pipe.lpush(history_key, json.dumps(message.to_dict()))
        pipe.expire(history_key, self.history_ttl)
        pipe.set(self.session_key(session_id), utc_now_iso(), ex=self.session_ttl)
        pipe.execute()

        logger.debug(f"Added message to session {session_id}")

    def get_history(self, session_id: str) -> List[ChatMessage]:
        """
        Get the conversation history for a session.

        Args:
            session_id: Session identifier

        Returns:
            Messages oldest-first; empty if the session expired or never existed
        """
        raw_messages = self.client.lrange(self.history_key(session_id), 0, -1)

        history = []
        for raw in reversed(raw_messages):
            try:
                history.append(ChatMessage.from_dict(json.loads(raw)))
            except (json.JSONDecodeError, AttributeError) as e:
                logger.warning(f"Skipping malformed history entry in session {session_id}: {e}")

        return history

    def clear_session(self, session_id: str) -> None:
        """Delete a session's history and activity record. No error if absent."""
        self.client.delete(self.history_key(session_id), self.session_key(session_id))
        logger.info(f"Cleared session {session_id}")

    def session_exists(self, session_id: str) -> bool:
        return self.client.exists(self.session_key(session_id)) == 1

    def session_info(self, session_id: str) -> Optional[SessionInfo]:
        """
        Get last activity and message count for a session.

        Returns:
            SessionInfo, or None if neither key exists
        """
        pipe = self.client.pipeline(transaction=False)
        pipe.get(self.session_key(session_id))
        pipe.llen(self.history_key(session_id))
        last_activity, message_count = pipe.execute()

        if last_activity is None and not message_count:
            return None

        return SessionInfo(
            session_id=session_id,
            last_activity=last_activity,
            message_count=int(message_count or 0)
        )

    def close(self) -> None:
        self.client.close()
