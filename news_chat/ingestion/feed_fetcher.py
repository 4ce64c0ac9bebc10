"""
Feed Fetcher

Downloads and parses RSS/Atom feeds with bounded retries and linear backoff.
A feed that keeps failing yields no items instead of an error, so one bad
source never aborts an ingestion run.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import feedparser
import requests

logger = logging.getLogger(__name__)


class FeedFetchError(Exception):
    """Raised when a single feed fetch attempt fails."""
    pass


class FeedFetcher:
    """
    Fetches feed entries over HTTP.

    Features:
    - Request timeout per attempt
    - Bounded retries with linear backoff (backoff * attempt seconds)
    - Failures logged, never raised from fetch_feed()
    """

    USER_AGENT = 'Mozilla/5.0 (compatible; NewsChatBot/1.0)'

    def __init__(
        self,
        timeout: int = 10,
        max_retries: int = 2,
        retry_backoff: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the feed fetcher.

        Args:
            timeout: Request timeout in seconds
            max_retries: Total attempts per feed
            retry_backoff: Base delay; attempt n waits retry_backoff * n seconds
            sleep: Sleep function used between attempts
            session: Optional requests session (default: module-level requests)
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._http = session or requests
        self.headers = {'User-Agent': self.USER_AGENT}

    def _fetch_once(self, feed_url: str) -> List[Dict[str, Any]]:
        """
        Download and parse a feed once.

        Raises:
            FeedFetchError: On transport errors or unparseable content
        """
        try:
            response = self._http.get(feed_url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise FeedFetchError(f"Timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise FeedFetchError(str(e)) from e

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise FeedFetchError(f"Unparseable feed: {parsed.get('bozo_exception')}")

        return list(parsed.entries)

    def fetch_feed(self, feed_url: str) -> List[Dict[str, Any]]:
        """
        Fetch a feed's entries with retry logic.

        Args:
            feed_url: Feed URL

        Returns:
            Feed entries, or an empty list once all attempts failed
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                logger.info(f"Fetching feed: {feed_url} (attempt {attempt})")
                entries = self._fetch_once(feed_url)
                logger.info(f"Fetched {len(entries)} items from {feed_url}")
                return entries

            except FeedFetchError as e:
                logger.warning(f"Attempt {attempt}/{self.max_retries} failed for {feed_url}: {e}")

                if attempt < self.max_retries:
                    wait_time = self.retry_backoff * attempt
                    logger.info(f"Retrying in {wait_time} seconds...")
                    self._sleep(wait_time)

        logger.error(f"All {self.max_retries} attempts failed for {feed_url}")
        return []
