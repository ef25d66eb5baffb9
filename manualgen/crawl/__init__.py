"""
Crawl subsystem: BFS traversal, element detection and page capture.
"""

from .capture import PageCapturer
from .detection import (
    ElementDetector,
    InteractiveElement,
    ModalCandidate,
    NavigationElement,
    PageClassification,
)
from .engine import CrawlConfig, CrawlEngine, CrawlFrontierEntry, CrawlResult, PageRecord
from .links import extract_links

__all__ = [
    'CrawlConfig',
    'CrawlEngine',
    'CrawlFrontierEntry',
    'CrawlResult',
    'ElementDetector',
    'InteractiveElement',
    'ModalCandidate',
    'NavigationElement',
    'PageCapturer',
    'PageClassification',
    'PageRecord',
    'extract_links',
]
