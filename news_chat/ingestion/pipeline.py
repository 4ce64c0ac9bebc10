"""
News Ingestion Pipeline

Populates the vector store from news feeds:
1. Fetch each feed (bounded retries, paced requests)
2. Cap items per feed and overall
3. Clean markup and build articles with stable integer ids
4. Embed articles in paced batches, skipping failed batches
5. Upsert all resulting documents in one call

Ingestion is best-effort: failed feeds and batches are logged and skipped.
Running two ingestions against one collection at the same time is not
supported.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from tqdm import tqdm

from ..embeddings.jina_service import EmbeddingFailure, JinaEmbeddingService
from ..storage.vector_store import IndexedDocument, QdrantVectorStore
from .feed_fetcher import FeedFetcher
from .rate_limiter import RateLimiter
from .text_cleaning import clean_html, truncate

logger = logging.getLogger(__name__)

MAX_ARTICLE_CHARS = 8000
MAX_PAYLOAD_CONTENT_CHARS = 1000

IdFactory = Callable[['RawItem'], int]


@dataclass
class RawItem:
    """Feed entry fields relevant to ingestion, before cleaning."""
    title: str
    description: str
    content: str
    link: str
    published_at: str
    source: str


@dataclass(frozen=True)
class Article:
    id: int
    title: str
    description: str
    content: str
    link: str
    published_at: str
    source: str

    def to_payload(self, ingested_at: str) -> Dict[str, Any]:
        """Payload stored alongside the vector; content is shortened for retrieval."""
        return {
            'title': self.title,
            'description': self.description,
            'content': self.content[:MAX_PAYLOAD_CONTENT_CHARS],
            'link': self.link,
            'publishedAt': self.published_at,
            'source': self.source,
            'ingestedAt': ingested_at,
        }


@dataclass
class IngestionReport:
    feeds_total: int = 0
    feeds_failed: int = 0
    articles_collected: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    skipped_empty: int = 0
    documents_upserted: int = 0
    cleared: bool = False
    collection_count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def link_hash_id(item: RawItem) -> int:
    """
    Derive a stable 63-bit id from an item's link.

    Items without a link fall back to title and content. Re-ingesting the
    same article overwrites its previous document instead of duplicating it.
    """
    key = item.link or f"{item.title}\n{item.content}"
    digest = hashlib.sha256(key.encode('utf-8')).digest()
    return int.from_bytes(digest[:8], 'big') & 0x7FFFFFFFFFFFFFFF


class SequentialIds:
    """Monotonic id counter scoped to the object that owns it."""

    def __init__(self, start: int = 1):
        self.next_id = start

    def __call__(self, item: RawItem) -> int:
        current = self.next_id
        self.next_id += 1
        return current


def _entry_text(value: Any) -> str:
    """Flatten feedparser's content representations into a string."""
    if not value:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return str(value.get('value', ''))
    if isinstance(value, (list, tuple)):
        return ' '.join(_entry_text(part) for part in value)
    return str(value)


def raw_item_from_entry(entry: Dict[str, Any], source: str) -> RawItem:
    """Map a parsed feed entry onto the fields the pipeline uses."""
    return RawItem(
        title=(entry.get('title') or '').strip(),
        description=_entry_text(entry.get('description') or entry.get('summary')),
        content=_entry_text(entry.get('content')),
        link=(entry.get('link') or '').strip(),
        published_at=(
            entry.get('published')
            or entry.get('pubDate')
            or entry.get('updated')
            or datetime.now(timezone.utc).isoformat()
        ),
        source=source,
    )


class NewsIngestionPipeline:
    """
    Orchestrates feed fetching, cleaning, embedding and storage.
    """

    def __init__(
        self,
        embedding_service: JinaEmbeddingService,
        vector_store: QdrantVectorStore,
        feed_urls: Iterable[str],
        feed_fetcher: Optional[FeedFetcher] = None,
        id_factory: Optional[IdFactory] = None,
        batch_size: int = 10,
        max_items_per_feed: int = 10,
        max_articles: int = 50,
        feed_limiter: Optional[RateLimiter] = None,
        batch_limiter: Optional[RateLimiter] = None,
        show_progress: bool = False
    ):
        """
        Initialize the ingestion pipeline.

        Args:
            embedding_service: Client used to embed article text
            vector_store: Destination store
            feed_urls: Feed URLs to ingest, in order
            feed_fetcher: Feed fetcher (default: FeedFetcher())
            id_factory: Callable assigning an integer id per item (default: link hash)
            batch_size: Articles per embedding request
            max_items_per_feed: Items taken from each feed
            max_articles: Global article cap
            feed_limiter: Pacing between feed fetches (default: 1 per second)
            batch_limiter: Pacing between embedding batches (default: 1 per 2 seconds)
            show_progress: Show a tqdm progress bar over batches
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.feed_urls = list(feed_urls)
        self.feed_fetcher = feed_fetcher or FeedFetcher()
        self.id_factory = id_factory or link_hash_id
        self.batch_size = batch_size
        self.max_items_per_feed = max_items_per_feed
        self.max_articles = max_articles
        self.feed_limiter = feed_limiter or RateLimiter(1.0)
        self.batch_limiter = batch_limiter or RateLimiter(2.0)
        self.show_progress = show_progress

    def build_article(self, item: RawItem) -> Article:
        """
        Clean an item and combine its text for embedding.

        Title, description and content are joined by blank lines; content is
        left out when it repeats the description.
        """
        description = clean_html(item.description)
        content = clean_html(item.content)

        combined = item.title
        if description:
            combined += '\n\n' + description
        if content and content != description:
            combined += '\n\n' + content

        return Article(
            id=self.id_factory(item),
            title=item.title,
            description=description,
            content=truncate(combined.strip(), MAX_ARTICLE_CHARS),
            link=item.link,
            published_at=item.published_at,
            source=item.source,
        )

    def fetch_articles(self, report: Optional[IngestionReport] = None) -> List[Article]:
        """
        Fetch articles from all configured feeds.

        Returns:
            At most max_articles articles, feed order preserved
        """
        report = report or IngestionReport()
        report.feeds_total = len(self.feed_urls)
        articles: List[Article] = []
        seen_ids = set()

        logger.info(f"Fetching articles from {len(self.feed_urls)} feeds...")

        for feed_url in self.feed_urls:
            self.feed_limiter.acquire()
            entries = self.feed_fetcher.fetch_feed(feed_url)

            if not entries:
                report.feeds_failed += 1
                continue

            processed = []
            for entry in entries[:self.max_items_per_feed]:
                article = self.build_article(raw_item_from_entry(entry, feed_url))
                # The same story often appears in several feeds
                if article.id in seen_ids:
                    continue
                seen_ids.add(article.id)
                processed.append(article)

            articles.extend(processed)
            logger.info(f"Added {len(processed)} articles from {feed_url}")

        articles = articles[:self.max_articles]
        report.articles_collected = len(articles)
        logger.info(f"Total articles collected: {len(articles)}")
        return articles

    def embed_articles(
        self,
        articles: List[Article],
        report: Optional[IngestionReport] = None
    ) -> List[IndexedDocument]:
        """
        Embed articles batch by batch and build indexed documents.

        A batch whose embedding request fails is skipped. Articles whose text
        was empty are skipped individually.
        """
        report = report or IngestionReport()
        documents: List[IndexedDocument] = []
        ingested_at = datetime.now(timezone.utc).isoformat()

        batches = [
            articles[i:i + self.batch_size]
            for i in range(0, len(articles), self.batch_size)
        ]
        report.batches_total = len(batches)

        iterator = tqdm(batches, desc="Embedding batches") if self.show_progress else batches

        for batch_number, batch in enumerate(iterator, 1):
            self.batch_limiter.acquire()
            logger.info(f"Generating embeddings for batch {batch_number}...")

            try:
                embedded = self.embedding_service.embed_batch_with_positions(
                    [article.content for article in batch]
                )
            except EmbeddingFailure as e:
                logger.error(f"Failed to process batch {batch_number}: {e}")
                report.batches_failed += 1
                continue

            skipped = len(batch) - len(embedded)
            if skipped:
                logger.warning(f"Skipped {skipped} empty article(s) in batch {batch_number}")
                report.skipped_empty += skipped

            for position, vector in embedded:
                article = batch[position]
                documents.append(IndexedDocument(
                    id=article.id,
                    vector=vector,
                    payload=article.to_payload(ingested_at)
                ))

        return documents

    def clear_existing_data(self) -> None:
        logger.info("Clearing existing data...")
        self.vector_store.clear()

    def run(self, clear: bool = False) -> IngestionReport:
        """
        Run a full ingestion pass.

        Args:
            clear: Wipe the collection before ingesting

        Returns:
            IngestionReport describing what happened
        """
        start_time = time.time()
        report = IngestionReport()

        if clear:
            self.clear_existing_data()
            report.cleared = True

        articles = self.fetch_articles(report)
        if not articles:
            logger.warning("No articles found to ingest")
            return report

        logger.info(f"Processing {len(articles)} articles...")
        documents = self.embed_articles(articles, report)

        if not documents:
            logger.warning("No documents to insert")
            return report

        report.documents_upserted = self.vector_store.upsert(documents)
        report.collection_count = self.vector_store.count().value

        logger.info(
            f"Ingestion completed: {report.documents_upserted} documents in "
            f"{time.time() - start_time:.2f}s ({report.batches_failed} failed batches, "
            f"{report.feeds_failed} failed feeds)"
        )
        return report
