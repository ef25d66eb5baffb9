#!/usr/bin/env python3
"""
Command-line entry point
========================
Crawls a web application and writes a user manual for it.

All configuration flows through ``ManualRunConfig``.  Provider keys,
object storage and fallback credentials come from the environment
(``.env`` is loaded first).

Run with: python -m manualgen --url https://app.example.com
Exit code: 0 when the pipeline succeeds, 1 otherwise.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .run_config import _DEFAULTS, OUTPUT_FORMATS, STOP_PHASES, ManualRunConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='manualgen',
        description='Generate a user manual by crawling a web application',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m manualgen --url https://app.example.com
  python -m manualgen --url https://app.example.com --login ana --password secret
  python -m manualgen --url https://app.example.com --output-format html --output-format pdf
  python -m manualgen --url https://app.example.com --screenshots false --stop-after crawl
        """
    )

    parser.add_argument('--url', required=True, help='Start URL of the application')
    parser.add_argument(
        '--output-format', action='append', choices=OUTPUT_FORMATS, metavar='FORMAT',
        help=f'Output format, repeatable: {"|".join(OUTPUT_FORMATS)} (default: markdown)',
    )
    parser.add_argument(
        '--screenshots', choices=['true', 'false'], default='true',
        help='Capture page and element screenshots (default: true)',
    )
    parser.add_argument(
        '--max-retries', type=int, default=_DEFAULTS['max_retries'],
        help=f'Attempts per AI provider call (default: {_DEFAULTS["max_retries"]})',
    )
    parser.add_argument(
        '--output-dir', default=_DEFAULTS['output_dir'],
        help=f'Directory for documents, screenshots and reports (default: {_DEFAULTS["output_dir"]})',
    )

    # ── Crawl ─────────────────────────────────────────────────────
    crawl_group = parser.add_argument_group('Crawl')
    crawl_group.add_argument(
        '--depth', type=int, default=_DEFAULTS['max_depth'],
        help=f'Maximum crawl depth (default: {_DEFAULTS["max_depth"]})',
    )
    crawl_group.add_argument(
        '--max-pages', type=int, default=_DEFAULTS['max_pages'],
        help=f'Maximum pages to visit (default: {_DEFAULTS["max_pages"]})',
    )
    crawl_group.add_argument('--headed', action='store_true', help='Show the browser window')
    crawl_group.add_argument(
        '--stop-after', choices=STOP_PHASES,
        help='End the run successfully after this phase',
    )

    # ── Authentication ────────────────────────────────────────────
    auth_group = parser.add_argument_group(
        'Authentication',
        'Credentials may also come from MANUAL_USERNAME / MANUAL_PASSWORD. '
        'Without credentials the login phase is skipped.',
    )
    auth_group.add_argument('--login', metavar='USERNAME', help='Login username')
    auth_group.add_argument('--password', help='Login password')
    auth_group.add_argument('--login-url', metavar='URL', help='Login page URL (default: --url)')

    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    return parser


async def _run(config: ManualRunConfig) -> int:
    from .orchestrator import PipelineOrchestrator

    orchestrator = PipelineOrchestrator.from_config(config)
    try:
        execution = await orchestrator.run()
    except asyncio.CancelledError:
        logger.warning("Interrupted; cleaning up")
        await orchestrator.shutdown()
        raise
    return 0 if execution.succeeded else 1


def main(argv=None) -> int:
    env_path = Path.cwd() / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url
    args.url = url

    try:
        config = ManualRunConfig.from_cli_args(args)
    except ValueError as exc:
        logger.error(f"Invalid configuration: {exc}")
        return 1
    config.log_summary()

    try:
        return asyncio.run(_run(config))
    except KeyboardInterrupt:
        logger.warning("Run aborted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
