"""
Link extraction for the crawl frontier.

Parses the rendered HTML of a page with BeautifulSoup (lxml parser) and
returns the same-host, normalized, de-duplicated ``<a href>`` targets in
document order.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..utils import URLNormalizer

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"


def extract_links(
    html: str,
    page_url: str,
    *,
    normalizer: Optional[URLNormalizer] = None,
) -> List[str]:
    """Return same-host links of *html* in the order they appear."""
    normalizer = normalizer or URLNormalizer()
    soup = BeautifulSoup(html or "", _BS_PARSER)

    base = page_url
    base_tag = soup.find("base", href=True)
    if base_tag:
        base = urljoin(page_url, base_tag["href"])

    page_norm = normalizer.normalize(page_url)
    links: List[str] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        url = normalizer.normalize(anchor["href"], base)
        if not url or url in seen or url == page_norm:
            continue
        if not normalizer.is_same_host(url, page_url):
            continue
        seen.add(url)
        links.append(url)

    logger.debug(f"[LINKS] {len(links)} same-host link(s) on {page_url}")
    return links
