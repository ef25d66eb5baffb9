"""
Manual Generator Package
Crawls a web application with a headless browser and writes an illustrated
user manual for it, with AI-assisted page analysis.

CLI Usage:
    python -m manualgen --url <url> [options]

    Options:
        --login / --password    Credentials for the login phase
        --output-format         markdown | html | pdf | docx (repeatable)
        --screenshots           true | false
        --max-retries           Attempts per AI provider call (default: 2)
        --depth / --max-pages   Crawl limits
"""

from .orchestrator import PipelineExecution, PipelineOrchestrator
from .run_config import ManualRunConfig
from .screenshot_cache import ScreenshotCache
from .storage import ObjectStorage

__version__ = "1.0.0"

__all__ = [
    'ManualRunConfig',
    'ObjectStorage',
    'PipelineExecution',
    'PipelineOrchestrator',
    'ScreenshotCache',
]
