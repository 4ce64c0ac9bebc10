"""
Test Suite for NewsIngestionPipeline

Feeds and embeddings are faked; documents land in an in-memory Qdrant
collection so upsert and count behave as they would against a server.
"""

import pytest
import numpy as np
from unittest.mock import Mock, patch
import requests
from qdrant_client import QdrantClient

from news_chat.embeddings.jina_service import EmbeddingFailure
from news_chat.ingestion.feed_fetcher import FeedFetcher
from news_chat.ingestion.pipeline import (
    MAX_ARTICLE_CHARS,
    NewsIngestionPipeline,
    RawItem,
    SequentialIds,
    link_hash_id,
    raw_item_from_entry,
)
from news_chat.ingestion.rate_limiter import RateLimiter
from news_chat.storage.vector_store import QdrantVectorStore


DIM = 4


class FakeEmbedder:
    """Drops blank texts like the real client and records each batch."""

    def __init__(self, fail_on_batches=()):
        self.batches = []
        self.fail_on_batches = set(fail_on_batches)

    def embed_batch_with_positions(self, texts):
        self.batches.append(list(texts))
        if len(self.batches) in self.fail_on_batches:
            raise EmbeddingFailure("HTTP error 503 from embedding API")

        positions = [i for i, text in enumerate(texts) if text and text.strip()]
        if not positions:
            raise EmbeddingFailure("No valid texts to embed")
        return [
            (i, np.array([1.0, float(len(texts[i]) % 5), 0.5, 0.0], dtype=np.float32))
            for i in positions
        ]


def entry(n, feed="a", **overrides):
    data = {
        'title': f"Story {feed}{n}",
        'description': f"<p>Description of story {feed}{n}</p>",
        'link': f"https://{feed}.example.com/story/{n}",
        'published': "Mon, 01 Jan 2024 10:00:00 GMT",
    }
    data.update(overrides)
    return data


def feed_of(feed, count):
    return [entry(n, feed) for n in range(count)]


def rss_feed(feed, count):
    """Serialize a small RSS document with count items."""
    items = ''.join(
        f"<item><title>Story {feed}{n}</title>"
        f"<link>https://{feed}.example.com/story/{n}</link>"
        f"<description>Description of story {feed}{n}</description></item>"
        for n in range(count)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel>'
        f'<title>{feed}</title>{items}</channel></rss>'
    ).encode('utf-8')


@pytest.fixture
def vector_store():
    client = QdrantClient(":memory:")
    store = QdrantVectorStore(collection_name="ingest_test", dimension=DIM, client=client)
    store.ensure_collection()
    yield store
    client.close()


@pytest.fixture
def fetcher():
    return Mock()


@pytest.fixture
def embedder():
    return FakeEmbedder()


def make_pipeline(embedder, vector_store, fetcher, feeds, **kwargs):
    return NewsIngestionPipeline(
        embedding_service=embedder,
        vector_store=vector_store,
        feed_urls=feeds,
        feed_fetcher=fetcher,
        feed_limiter=RateLimiter(0),
        batch_limiter=RateLimiter(0),
        **kwargs
    )


class TestFetchArticles:

    def test_one_failing_feed_does_not_abort(self, embedder, vector_store, fetcher):
        feeds = {
            'https://a.example.com/rss': feed_of('a', 3),
            'https://slow.example.com/rss': [],
            'https://c.example.com/rss': feed_of('c', 2),
        }
        fetcher.fetch_feed.side_effect = lambda url: feeds[url]
        pipeline = make_pipeline(embedder, vector_store, fetcher, list(feeds))

        report = pipeline.run()

        assert report.feeds_total == 3
        assert report.feeds_failed == 1
        assert report.articles_collected == 5
        assert report.documents_upserted == 5
        assert vector_store.count().value == 5

    def test_feed_timing_out_on_every_attempt(self, embedder, vector_store):
        sleeps = []
        fetcher = FeedFetcher(max_retries=2, retry_backoff=2.0, sleep=sleeps.append)
        calls = []

        def fake_get(url, headers=None, timeout=None):
            calls.append(url)
            if 'slow' in url:
                raise requests.exceptions.Timeout()
            response = Mock()
            response.content = rss_feed(url.split('//')[1].split('.')[0], 2)
            response.raise_for_status.return_value = None
            return response

        feeds = [
            'https://a.example.com/rss',
            'https://slow.example.com/rss',
            'https://c.example.com/rss',
        ]
        pipeline = make_pipeline(embedder, vector_store, fetcher, feeds)

        with patch('news_chat.ingestion.feed_fetcher.requests.get', side_effect=fake_get):
            report = pipeline.run()

        assert calls.count('https://slow.example.com/rss') == 2
        assert sleeps == [2.0]
        assert report.feeds_failed == 1
        assert report.articles_collected == 4
        assert report.documents_upserted == 4
        assert vector_store.count().value == 4

    def test_items_per_feed_cap(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('a', 25)
        pipeline = make_pipeline(
            embedder, vector_store, fetcher, ['https://a.example.com/rss'],
            max_items_per_feed=10
        )

        articles = pipeline.fetch_articles()

        assert len(articles) == 10
        assert articles[0].title == "Story a0"

    def test_global_article_cap(self, embedder, vector_store, fetcher):
        feeds = [f"https://f{i}.example.com/rss" for i in range(6)]
        fetcher.fetch_feed.side_effect = lambda url: feed_of(url[8:10], 10)
        pipeline = make_pipeline(embedder, vector_store, fetcher, feeds, max_articles=50)

        articles = pipeline.fetch_articles()

        assert len(articles) == 50
        # Feed order preserved: the last feed is cut off entirely
        assert all(not a.source.startswith("https://f5") for a in articles)

    def test_duplicate_links_across_feeds_are_collapsed(self, embedder, vector_store, fetcher):
        shared = entry(1, 'a')
        fetcher.fetch_feed.side_effect = [[shared, entry(2, 'a')], [shared]]
        pipeline = make_pipeline(
            embedder, vector_store, fetcher,
            ['https://a.example.com/rss', 'https://b.example.com/rss']
        )

        articles = pipeline.fetch_articles()

        assert len(articles) == 2

    def test_feeds_are_paced(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('a', 1)
        limiter = Mock()
        pipeline = NewsIngestionPipeline(
            embedding_service=embedder,
            vector_store=vector_store,
            feed_urls=['https://a.example.com/rss', 'https://b.example.com/rss'],
            feed_fetcher=fetcher,
            feed_limiter=limiter,
            batch_limiter=RateLimiter(0)
        )

        pipeline.fetch_articles()

        assert limiter.acquire.call_count == 2


class TestBuildArticle:

    @pytest.fixture
    def pipeline(self, embedder, vector_store, fetcher):
        return make_pipeline(embedder, vector_store, fetcher, [], id_factory=SequentialIds())

    def test_combines_title_description_and_content(self, pipeline):
        item = RawItem(
            title="Headline",
            description="<b>Summary</b>",
            content="<p>Full body</p>",
            link="https://x.example.com/1",
            published_at="2024-01-01",
            source="https://x.example.com/rss"
        )

        article = pipeline.build_article(item)

        assert article.content == "Headline\n\nSummary\n\nFull body"
        assert article.description == "Summary"
        assert article.id == 1

    def test_content_equal_to_description_not_repeated(self, pipeline):
        item = RawItem("Headline", "Same text", "<p>Same text</p>", "", "2024", "src")

        assert pipeline.build_article(item).content == "Headline\n\nSame text"

    def test_long_text_truncated(self, pipeline):
        item = RawItem("T", "x" * 10000, "", "", "2024", "src")

        article = pipeline.build_article(item)

        assert len(article.content) <= MAX_ARTICLE_CHARS
        assert len(article.content) == MAX_ARTICLE_CHARS
        assert article.content.startswith("T\n\nxxx")
        assert article.content.endswith("...")

    def test_payload_content_capped(self, pipeline):
        item = RawItem("T", "y" * 5000, "", "https://x.example.com/2", "2024", "src")

        payload = pipeline.build_article(item).to_payload("2024-01-02T00:00:00+00:00")

        assert len(payload['content']) == 1000
        assert payload['link'] == "https://x.example.com/2"
        assert payload['ingestedAt'] == "2024-01-02T00:00:00+00:00"
        assert set(payload) == {
            'title', 'description', 'content', 'link', 'publishedAt', 'source', 'ingestedAt'
        }


class TestEmbedArticles:

    def test_failed_batch_is_skipped(self, vector_store, fetcher):
        embedder = FakeEmbedder(fail_on_batches={2})
        fetcher.fetch_feed.return_value = feed_of('a', 25)
        pipeline = make_pipeline(
            embedder, vector_store, fetcher, ['https://a.example.com/rss'],
            max_items_per_feed=25, batch_size=10
        )

        report = pipeline.run()

        assert report.batches_total == 3
        assert report.batches_failed == 1
        assert report.documents_upserted == 15
        assert vector_store.count().value == 15

    def test_empty_article_keeps_vectors_aligned(self, embedder, vector_store, fetcher):
        """A blank item mid-batch must not shift later vectors onto the wrong article."""
        blank = {'title': '', 'description': '', 'link': 'https://a.example.com/blank'}
        fetcher.fetch_feed.return_value = [entry(0), blank, entry(2)]
        pipeline = make_pipeline(embedder, vector_store, fetcher, ['https://a.example.com/rss'])

        articles = pipeline.fetch_articles()
        documents = pipeline.embed_articles(articles)

        assert [d.id for d in documents] == [articles[0].id, articles[2].id]
        assert documents[1].payload['title'] == "Story a2"
        expected = float(len(articles[2].content) % 5)
        assert documents[1].vector[1] == pytest.approx(expected)

    def test_skipped_empty_counted(self, embedder, vector_store, fetcher):
        blank = {'title': '  ', 'link': 'https://a.example.com/blank'}
        fetcher.fetch_feed.return_value = [entry(0), blank]
        pipeline = make_pipeline(embedder, vector_store, fetcher, ['https://a.example.com/rss'])

        report = pipeline.run()

        assert report.skipped_empty == 1
        assert report.documents_upserted == 1

    def test_batches_are_sized(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('a', 7)
        pipeline = make_pipeline(
            embedder, vector_store, fetcher, ['https://a.example.com/rss'], batch_size=3
        )

        pipeline.run()

        assert [len(batch) for batch in embedder.batches] == [3, 3, 1]

    def test_invalid_batch_size(self, embedder, vector_store, fetcher):
        with pytest.raises(ValueError):
            make_pipeline(embedder, vector_store, fetcher, [], batch_size=0)


class TestRun:

    def test_clear_flag_wipes_previous_documents(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('old', 4)
        make_pipeline(embedder, vector_store, fetcher, ['https://old.example.com/rss']).run()

        fetcher.fetch_feed.return_value = feed_of('new', 2)
        report = make_pipeline(
            embedder, vector_store, fetcher, ['https://new.example.com/rss']
        ).run(clear=True)

        assert report.cleared is True
        assert report.collection_count == 2

    def test_without_clear_documents_accumulate(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('old', 4)
        make_pipeline(embedder, vector_store, fetcher, ['https://old.example.com/rss']).run()

        fetcher.fetch_feed.return_value = feed_of('new', 2)
        report = make_pipeline(
            embedder, vector_store, fetcher, ['https://new.example.com/rss']
        ).run()

        assert report.cleared is False
        assert report.collection_count == 6

    def test_reingesting_same_links_overwrites(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('a', 3)
        pipeline = make_pipeline(embedder, vector_store, fetcher, ['https://a.example.com/rss'])

        pipeline.run()
        report = pipeline.run()

        assert report.collection_count == 3

    def test_no_articles_skips_embedding(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = []
        pipeline = make_pipeline(embedder, vector_store, fetcher, ['https://a.example.com/rss'])

        report = pipeline.run()

        assert report.articles_collected == 0
        assert report.documents_upserted == 0
        assert embedder.batches == []

    def test_report_to_dict(self, embedder, vector_store, fetcher):
        fetcher.fetch_feed.return_value = feed_of('a', 1)

        report = make_pipeline(
            embedder, vector_store, fetcher, ['https://a.example.com/rss']
        ).run()

        assert report.to_dict()['documents_upserted'] == 1


class TestIds:

    def test_link_hash_is_stable_and_positive(self):
        item = RawItem("t", "d", "c", "https://x.example.com/a", "2024", "src")

        first = link_hash_id(item)

        assert first == link_hash_id(item)
        assert 0 <= first < 2 ** 63

    def test_link_hash_differs_per_link(self):
        a = RawItem("t", "d", "c", "https://x.example.com/a", "2024", "src")
        b = RawItem("t", "d", "c", "https://x.example.com/b", "2024", "src")

        assert link_hash_id(a) != link_hash_id(b)

    def test_link_hash_without_link_uses_text(self):
        a = RawItem("Title one", "", "body", "", "2024", "src")
        b = RawItem("Title two", "", "body", "", "2024", "src")

        assert link_hash_id(a) != link_hash_id(b)

    def test_sequential_ids(self):
        ids = SequentialIds(start=5)
        item = RawItem("t", "", "", "", "", "")

        assert [ids(item), ids(item), ids(item)] == [5, 6, 7]


class TestEntryMapping:

    def test_maps_summary_and_content_list(self):
        raw = raw_item_from_entry({
            'title': '  Headline ',
            'summary': 'Summary text',
            'content': [{'value': '<p>Body</p>'}],
            'link': 'https://x.example.com/1',
            'updated': '2024-01-01'
        }, 'https://x.example.com/rss')

        assert raw.title == "Headline"
        assert raw.description == "Summary text"
        assert raw.content == "<p>Body</p>"
        assert raw.published_at == "2024-01-01"
        assert raw.source == "https://x.example.com/rss"

    def test_missing_date_defaults_to_now(self):
        raw = raw_item_from_entry({'title': 'x'}, 'src')

        assert raw.published_at
