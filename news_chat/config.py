"""
Centralized Configuration Module

Provides a single source of truth for all backend configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


DEFAULT_FEED_URLS = [
    'https://feeds.bbci.co.uk/news/rss.xml',
    'https://rss.cnn.com/rss/cnn_topstories.rss',
    'https://feeds.npr.org/1001/rss.xml',
    'https://rss.cnn.com/rss/cnn_world.rss',
    'https://feeds.bbci.co.uk/news/business/rss.xml',
]


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class Config:
    """
    Centralized configuration for the news chat backend.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # Server Settings
    port: int = field(default=5000)
    host: str = field(default="0.0.0.0")
    environment: str = field(default="development")
    log_level: str = field(default="INFO")

    # Session Cache Settings
    redis_url: str = field(default="redis://localhost:6379")
    session_ttl: int = field(default=3600)
    history_ttl: int = field(default=7200)

    # Vector Store Settings
    qdrant_url: str = field(default="http://localhost:6333")
    qdrant_api_key: Optional[str] = field(default=None)
    qdrant_collection: str = field(default="news_articles")
    embedding_dimension: int = field(default=768)
    search_top_k: int = field(default=5)
    score_threshold: float = field(default=0.7)

    # Embedding Settings
    jina_api_key: Optional[str] = field(default=None)
    jina_model: str = field(default="jina-embeddings-v2-base-en")
    jina_base_url: str = field(default="https://api.jina.ai/v1/embeddings")
    embedding_batch_size: int = field(default=10)
    request_timeout: int = field(default=30)

    # Generation Settings
    gemini_api_key: Optional[str] = field(default=None)
    gemini_model: str = field(default="gemini-2.0-flash")

    # Ingestion Settings
    feed_urls: List[str] = field(default_factory=lambda: list(DEFAULT_FEED_URLS))
    feed_timeout: int = field(default=10)
    feed_max_retries: int = field(default=2)
    feed_retry_backoff: float = field(default=2.0)
    max_items_per_feed: int = field(default=10)
    max_articles: int = field(default=50)
    feed_delay: float = field(default=1.0)
    batch_delay: float = field(default=2.0)

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Server Settings
        self.port = self._get_env_int('PORT', self.port)
        self.host = self._get_env_str('HOST', self.host)
        self.environment = self._get_env_str('ENVIRONMENT', self.environment)
        self.log_level = self._get_env_str('LOG_LEVEL', self.log_level).upper()

        # Session Cache Settings
        self.redis_url = self._get_env_str('REDIS_URL', self.redis_url)
        self.session_ttl = self._get_env_int('SESSION_TTL', self.session_ttl)
        self.history_ttl = self._get_env_int('CHAT_HISTORY_TTL', self.history_ttl)

        # Vector Store Settings
        self.qdrant_url = self._get_env_str('QDRANT_URL', self.qdrant_url)
        self.qdrant_api_key = self._get_env_optional('QDRANT_API_KEY', self.qdrant_api_key)
        self.qdrant_collection = self._get_env_str('QDRANT_COLLECTION', self.qdrant_collection)
        self.embedding_dimension = self._get_env_int('EMBEDDING_DIMENSION', self.embedding_dimension)
        self.search_top_k = self._get_env_int('SEARCH_TOP_K', self.search_top_k)
        self.score_threshold = self._get_env_float('SCORE_THRESHOLD', self.score_threshold)

        # Embedding Settings
        self.jina_api_key = self._get_env_optional('JINA_API_KEY', self.jina_api_key)
        self.jina_model = self._get_env_str('JINA_MODEL', self.jina_model)
        self.jina_base_url = self._get_env_str('JINA_BASE_URL', self.jina_base_url)
        self.embedding_batch_size = self._get_env_int('EMBEDDING_BATCH_SIZE', self.embedding_batch_size)
        self.request_timeout = self._get_env_int('REQUEST_TIMEOUT', self.request_timeout)

        # Generation Settings
        self.gemini_api_key = self._get_env_optional('GEMINI_API_KEY', self.gemini_api_key)
        self.gemini_model = self._get_env_str('GEMINI_MODEL', self.gemini_model)

        # Ingestion Settings
        self.feed_urls = self._get_env_list('FEED_URLS', self.feed_urls)
        self.feed_timeout = self._get_env_int('FEED_TIMEOUT', self.feed_timeout)
        self.feed_max_retries = self._get_env_int('FEED_MAX_RETRIES', self.feed_max_retries)
        self.feed_retry_backoff = self._get_env_float('FEED_RETRY_BACKOFF', self.feed_retry_backoff)
        self.max_items_per_feed = self._get_env_int('MAX_ITEMS_PER_FEED', self.max_items_per_feed)
        self.max_articles = self._get_env_int('MAX_ARTICLES', self.max_articles)
        self.feed_delay = self._get_env_float('FEED_DELAY', self.feed_delay)
        self.batch_delay = self._get_env_float('BATCH_DELAY', self.batch_delay)

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_optional(self, key: str, default: Optional[str]) -> Optional[str]:
        """Get optional string value; blank values count as unset."""
        value = os.getenv(key)
        if value is None:
            return default
        value = value.strip()
        return value or None

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_list(self, key: str, default: List[str]) -> List[str]:
        """Get comma-separated list value from environment."""
        value = os.getenv(key)
        if value is None:
            return default
        return [item.strip() for item in value.split(',') if item.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == 'production'

    def _validate(self):
        """Validate configuration parameters."""
        # Validate non-empty strings
        for field_name in ('qdrant_collection', 'jina_model', 'gemini_model'):
            if not getattr(self, field_name):
                raise ConfigValidationError(f"{field_name} cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('port', self.port),
            ('session_ttl', self.session_ttl),
            ('history_ttl', self.history_ttl),
            ('embedding_dimension', self.embedding_dimension),
            ('search_top_k', self.search_top_k),
            ('embedding_batch_size', self.embedding_batch_size),
            ('feed_max_retries', self.feed_max_retries),
            ('max_items_per_feed', self.max_items_per_feed),
            ('max_articles', self.max_articles),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        if self.port > 65535:
            raise ConfigValidationError(f"port must be at most 65535, got {self.port}")

        # Validate timeouts (at least 1 second)
        if self.request_timeout < 1:
            raise ConfigValidationError(
                f"request_timeout must be at least 1, got {self.request_timeout}"
            )
        if self.feed_timeout < 1:
            raise ConfigValidationError(
                f"feed_timeout must be at least 1, got {self.feed_timeout}"
            )

        # Validate delays
        for field_name in ('feed_retry_backoff', 'feed_delay', 'batch_delay'):
            if getattr(self, field_name) < 0:
                raise ConfigValidationError(f"{field_name} cannot be negative")

        # Cosine similarity scores live in [0, 1]
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ConfigValidationError(
                f"score_threshold must be between 0 and 1, got {self.score_threshold}"
            )

        # Validate URL formats
        self._validate_url('qdrant_url', self.qdrant_url, ('http', 'https'))
        self._validate_url('jina_base_url', self.jina_base_url, ('http', 'https'))
        self._validate_url('redis_url', self.redis_url, ('redis', 'rediss', 'unix'))
        for feed_url in self.feed_urls:
            self._validate_url('feed_urls', feed_url, ('http', 'https'))

    def _validate_url(self, field_name: str, url: str, schemes: tuple):
        parsed = urlparse(url)
        if parsed.scheme not in schemes or not (parsed.netloc or parsed.path):
            raise ConfigValidationError(
                f"Invalid URL for {field_name}: {url}"
            )

    def require_credentials(self):
        """
        Ensure the API keys needed to talk to external services are present.

        Raises:
            ConfigValidationError: If a required key is missing
        """
        missing = [
            env_name for env_name, value in (
                ('JINA_API_KEY', self.jina_api_key),
                ('GEMINI_API_KEY', self.gemini_api_key),
            )
            if not value
        ]
        if missing:
            raise ConfigValidationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        """String representation of configuration with secrets masked."""
        items = []
        for key, value in self.to_dict().items():
            if key.endswith('api_key') and value:
                value = '***'
            items.append(f"{key}={value!r}")
        return f"Config({', '.join(items)})"

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_cache_config(self) -> Dict[str, Any]:
        """Get session-cache-related configuration."""
        return {
            'redis_url': self.redis_url,
            'session_ttl': self.session_ttl,
            'history_ttl': self.history_ttl,
        }

    def get_ingestion_config(self) -> Dict[str, Any]:
        """Get ingestion-related configuration."""
        return {
            'feed_urls': list(self.feed_urls),
            'feed_timeout': self.feed_timeout,
            'feed_max_retries': self.feed_max_retries,
            'feed_retry_backoff': self.feed_retry_backoff,
            'max_items_per_feed': self.max_items_per_feed,
            'max_articles': self.max_articles,
            'embedding_batch_size': self.embedding_batch_size,
            'feed_delay': self.feed_delay,
            'batch_delay': self.batch_delay,
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
