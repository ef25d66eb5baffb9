"""
Utility Functions
URL normalization, the retry combinator, progress tracking and text helpers.
"""

import asyncio
import logging
import random
import re
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Type
from urllib.parse import urljoin, urlparse, urlunparse

logger = logging.getLogger(__name__)


class URLNormalizer:
    """
    Normalizes URLs so the crawl frontier never holds two spellings of
    the same page.  Fragments are dropped, the host is lower-cased and
    a trailing slash is removed from every path except the root.
    """

    # File extensions that never lead to an HTML page
    SKIP_EXTENSIONS = {
        '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp', '.ico',
        '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
        '.zip', '.rar', '.tar', '.gz', '.7z',
        '.mp3', '.mp4', '.avi', '.mov', '.webm',
        '.css', '.js', '.json', '.xml',
        '.woff', '.woff2', '.ttf', '.eot',
    }

    def normalize(self, url: str, base_url: str = None) -> Optional[str]:
        """
        Normalize a URL for consistent comparison.

        Args:
            url: The URL to normalize
            base_url: Optional base URL for resolving relative URLs

        Returns:
            Normalized URL string or None if the URL is not crawlable
        """
        if not url:
            return None

        url = url.strip()
        if url.lower().startswith(('javascript:', 'mailto:', 'tel:', 'data:', '#')):
            return None

        if base_url:
            url = urljoin(base_url, url)

        try:
            parsed = urlparse(url)
        except ValueError:
            return None

        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return None

        path = re.sub(r'/+', '/', parsed.path or '/')
        if path != '/' and path.endswith('/'):
            path = path.rstrip('/')

        lower_path = path.lower()
        if any(lower_path.endswith(ext) for ext in self.SKIP_EXTENSIONS):
            return None

        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            path,
            parsed.params,
            parsed.query,
            '',
        ))

    @staticmethod
    def is_same_host(url: str, base_url: str) -> bool:
        """True when *url* lives on the same host as *base_url* (``www.`` ignored)."""
        try:
            a = urlparse(url).netloc.lower()
            b = urlparse(base_url).netloc.lower()
        except ValueError:
            return False
        if a.startswith('www.'):
            a = a[4:]
        if b.startswith('www.'):
            b = b[4:]
        return bool(a) and a == b


# ---------------------------------------------------------------------------
# Retry combinator
# ---------------------------------------------------------------------------

class RetryHandler:
    """
    Retry policy with exponential backoff.

    ``backoff`` controls the first delay; ``exponential_base=1`` gives a
    fixed delay between attempts.
    """

    def __init__(
        self,
        max_attempts: int = 2,
        backoff: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self._sleep = sleep

    def calculate_delay(self, attempt: int) -> float:
        """Delay in seconds after the given (0-indexed) failed attempt."""
        delay = min(self.backoff * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)
        return max(0.0, delay)

    async def run(
        self,
        op: Callable[[int], Awaitable[Any]],
        *,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        no_delay_on: Tuple[Type[BaseException], ...] = (),
        give_up_on: Tuple[Type[BaseException], ...] = (),
        label: str = "operation",
    ) -> Any:
        """
        Await ``op(attempt)`` until it succeeds or attempts run out.

        Exceptions in ``no_delay_on`` are retried immediately; other
        exceptions in ``retry_on`` wait ``calculate_delay`` first.
        ``give_up_on`` and anything outside ``retry_on`` propagate at once.

        Raises:
            The last exception if every attempt fails.
        """
        last_exception: Optional[BaseException] = None

        for attempt in range(self.max_attempts):
            try:
                return await op(attempt)
            except retry_on as e:
                if isinstance(e, give_up_on):
                    raise
                last_exception = e
                if attempt + 1 >= self.max_attempts:
                    logger.error(f"All {self.max_attempts} attempts of {label} failed")
                    break
                if isinstance(e, no_delay_on):
                    logger.warning(f"{label} attempt {attempt + 1} failed: {e}. Retrying now...")
                    continue
                delay = self.calculate_delay(attempt)
                logger.warning(
                    f"{label} attempt {attempt + 1} failed: {e}. "
                    f"Retrying in {delay:.2f}s..."
                )
                await self._sleep(delay)

        raise last_exception


async def with_retry(
    max_attempts: int,
    backoff: float,
    op: Callable[[int], Awaitable[Any]],
    **kwargs,
) -> Any:
    """Shorthand for ``RetryHandler(max_attempts, backoff, exponential_base=1).run(op)``."""
    handler = RetryHandler(max_attempts=max_attempts, backoff=backoff, exponential_base=1.0)
    return await handler.run(op, **kwargs)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

class ProgressTracker:
    """
    Tracks crawling progress for reporting.
    """

    def __init__(self):
        self.pages_crawled = 0
        self.pages_failed = 0
        self.pages_skipped = 0
        self.start_time = None
        self.end_time = None

    def start(self) -> None:
        self.start_time = time.time()

    def finish(self) -> None:
        self.end_time = time.time()

    def increment_crawled(self) -> int:
        self.pages_crawled += 1
        return self.pages_crawled

    def increment_failed(self) -> int:
        self.pages_failed += 1
        return self.pages_failed

    def increment_skipped(self) -> int:
        self.pages_skipped += 1
        return self.pages_skipped

    @property
    def elapsed_time(self) -> float:
        if self.start_time is None:
            return 0
        end = self.end_time or time.time()
        return end - self.start_time

    def get_stats(self) -> dict:
        return {
            'pages_crawled': self.pages_crawled,
            'pages_failed': self.pages_failed,
            'pages_skipped': self.pages_skipped,
            'elapsed_time': round(self.elapsed_time, 2),
        }


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def clean_text(text: str) -> str:
    """Collapse whitespace and strip."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def count_words(text: str) -> int:
    if not text:
        return 0
    return len(re.findall(r'\w+', text))


def slugify(text: str, max_len: int = 60) -> str:
    """Filesystem-safe slug: ``"Save #1 (draft)"`` → ``"save_1_draft"``."""
    slug = re.sub(r'[^a-zA-Z0-9]+', '_', text or '').strip('_').lower()
    return slug[:max_len] or 'item'
