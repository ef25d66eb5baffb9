"""
Tests for link extraction and URL normalization.
"""

from manualgen.crawl.links import extract_links
from manualgen.utils import URLNormalizer


class TestNormalizer:

    def test_fragment_dropped_and_host_lowered(self):
        n = URLNormalizer()
        assert n.normalize("https://Example.TEST/docs/#intro") == "https://example.test/docs"

    def test_root_keeps_its_slash(self):
        assert URLNormalizer().normalize("https://example.test") == "https://example.test/"

    def test_non_http_schemes_are_rejected(self):
        n = URLNormalizer()
        for url in ("mailto:a@b.c", "javascript:void(0)", "#top", "ftp://example.test/x", ""):
            assert n.normalize(url) is None

    def test_static_assets_are_rejected(self):
        assert URLNormalizer().normalize("/logo.PNG", "https://example.test/") is None

    def test_relative_resolution(self):
        assert URLNormalizer().normalize("../b", "https://example.test/a/c") == "https://example.test/b"

    def test_same_host_ignores_www(self):
        assert URLNormalizer.is_same_host("https://www.example.test/a", "https://example.test/")
        assert not URLNormalizer.is_same_host("https://other.test/", "https://example.test/")


class TestExtractLinks:

    def test_document_order_dedup_and_same_host(self):
        html = """
        <nav>
          <a href="/b">B</a>
          <a href="/a#top">A</a>
          <a href="/b/">B again</a>
          <a href="https://elsewhere.test/x">external</a>
          <a href="mailto:x@example.test">mail</a>
          <a href="/">self</a>
          <a>no href</a>
        </nav>
        """
        links = extract_links(html, "https://example.test/")
        assert links == ["https://example.test/b", "https://example.test/a"]

    def test_base_tag_is_honoured(self):
        html = '<head><base href="https://example.test/app/"></head><a href="list">List</a>'
        assert extract_links(html, "https://example.test/") == ["https://example.test/app/list"]

    def test_empty_html(self):
        assert extract_links("", "https://example.test/") == []
