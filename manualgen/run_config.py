"""
Unified Run Configuration
=========================
Single source of truth for every pipeline default and runtime limit.

The CLI populates it; the orchestrator and the workers read from it.
Nothing else in the package hard-codes these numbers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_depth": 2,
    "max_pages": 20,
    "links_per_page": 3,             # BFS fan-out per page
    "page_delay_s": 1.0,             # politeness delay between page loads
    "element_delay_s": 0.3,          # pause between element captures
    "navigation_timeout_ms": 30_000,
    "selector_timeout_ms": 5_000,
    "provider_timeout_s": 30,
    "max_retries": 2,
    "output_dir": "output",
    "output_formats": ("markdown",),
    "screenshots": True,
    "headless": True,
    "viewport": (1920, 1080),
    "cache_ttl_s": 3600,
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
}

OUTPUT_FORMATS = ("markdown", "html", "pdf", "docx")
STOP_PHASES = ("login", "crawl")


@dataclass
class ManualRunConfig:
    """
    Configuration consumed by the orchestrator and every worker.

    Populate via:
      - ``ManualRunConfig(url=...)``                 → all defaults
      - ``ManualRunConfig(url=..., max_depth=1)``    → override one value
      - ``ManualRunConfig.from_cli_args(ns)``        → from argparse Namespace
    """

    url: str = ""

    # ---- Crawl limits ----
    max_depth: int = _DEFAULTS["max_depth"]
    max_pages: int = _DEFAULTS["max_pages"]
    links_per_page: int = _DEFAULTS["links_per_page"]
    page_delay_s: float = _DEFAULTS["page_delay_s"]
    element_delay_s: float = _DEFAULTS["element_delay_s"]
    navigation_timeout_ms: int = _DEFAULTS["navigation_timeout_ms"]
    selector_timeout_ms: int = _DEFAULTS["selector_timeout_ms"]

    # ---- Providers ----
    provider_timeout_s: float = _DEFAULTS["provider_timeout_s"]
    max_retries: int = _DEFAULTS["max_retries"]

    # ---- Output ----
    output_dir: str = _DEFAULTS["output_dir"]
    output_formats: List[str] = field(default_factory=lambda: list(_DEFAULTS["output_formats"]))
    screenshots: bool = _DEFAULTS["screenshots"]
    stop_after_phase: Optional[str] = None   # "login" | "crawl"

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    viewport: Tuple[int, int] = _DEFAULTS["viewport"]
    user_agent: str = _DEFAULTS["user_agent"]
    cache_ttl_s: int = _DEFAULTS["cache_ttl_s"]

    # ---- Authentication ----
    username: Optional[str] = None
    password: Optional[str] = None
    login_url: Optional[str] = None

    def __post_init__(self):
        bad = [f for f in self.output_formats if f not in OUTPUT_FORMATS]
        if bad:
            raise ValueError(f"Unsupported output format(s): {', '.join(bad)}")
        if self.stop_after_phase not in (None,) + STOP_PHASES:
            raise ValueError(f"stop_after_phase must be one of {STOP_PHASES}")
        if self.max_depth < 0:
            raise ValueError("max_depth must be >= 0")

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "ManualRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        formats = getattr(args, "output_format", None) or list(_DEFAULTS["output_formats"])
        screenshots = getattr(args, "screenshots", "true")
        if isinstance(screenshots, str):
            screenshots = screenshots.lower() == "true"
        return cls(
            url=args.url,
            max_depth=getattr(args, "depth", _DEFAULTS["max_depth"]),
            max_pages=getattr(args, "max_pages", _DEFAULTS["max_pages"]),
            max_retries=getattr(args, "max_retries", _DEFAULTS["max_retries"]),
            output_dir=getattr(args, "output_dir", _DEFAULTS["output_dir"]),
            output_formats=list(dict.fromkeys(formats)),
            screenshots=screenshots,
            stop_after_phase=getattr(args, "stop_after", None),
            headless=not getattr(args, "headed", False),
            username=getattr(args, "login", None),
            password=getattr(args, "password", None),
            login_url=getattr(args, "login_url", None),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def viewport_dict(self) -> Dict[str, int]:
        return {"width": self.viewport[0], "height": self.viewport[1]}

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("MANUAL GENERATION RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {self.url}")
        logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Max Pages:        {self.max_pages}")
        logger.info(f"  Links per Page:   {self.links_per_page}")
        logger.info(f"  Page Delay:       {self.page_delay_s}s between pages")
        logger.info(f"  Provider Retries: {self.max_retries}")
        logger.info(f"  Formats:          {', '.join(self.output_formats)}")
        logger.info(f"  Screenshots:      {'on' if self.screenshots else 'off'}")
        logger.info(f"  Output Dir:       {self.output_dir}")
        if self.has_credentials:
            logger.info("  Auth:             Enabled (credentials supplied)")
        else:
            logger.info(f"  Auth:             None (public crawl)")
        if self.stop_after_phase:
            logger.info(f"  Stop After:       {self.stop_after_phase}")
        logger.info("=" * 60)
