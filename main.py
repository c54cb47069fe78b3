#!/usr/bin/env python3
"""
Main entry point for the site crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from sitecrawl import __version__
from sitecrawl.crawler.scheduler import CrawlScheduler
from sitecrawl.exceptions import ConfigError, OutputError
from sitecrawl.storage.results import CrawlResults, write_html_report, write_results
from sitecrawl.utils.config import PROFILES, Config, load_config
from sitecrawl.utils.formatting import create_summary_table, format_stats
from sitecrawl.utils.logger import setup_logging


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

SUMMARY_ROWS = 10


class CrawlerApp:
    """Main application class for the site crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._installed_signals: List[int] = []

    def build_config(self, args: argparse.Namespace) -> Config:
        """Merge the config file, profile and command-line flags."""
        overrides: Dict[str, Any] = {
            'base_url': args.url,
            'allowed_domain': args.domain,
            'max_workers': args.workers,
            'max_depth': args.depth,
            'rate_limit': args.rate,
            'output_dir': args.output,
            'use_sitemap': args.sitemap,
        }
        return load_config(args.config, overrides=overrides, profile=args.profile)

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.scheduler:
                self.scheduler.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                continue
            self._installed_signals.append(signum)

    def remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in self._installed_signals:
            loop.remove_signal_handler(signum)
        self._installed_signals.clear()

    async def run(self, args: argparse.Namespace) -> int:
        """Run the crawler and write its results."""
        try:
            config = self.build_config(args)
        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return EXIT_FAILURE

        setup_logging(config.logging, enable_json=args.json_logs or None, debug=args.debug)
        crawler_config = config.crawler

        self.logger.info("=== SITE CRAWLER STARTING ===")
        self.logger.info(f"Base URL: {crawler_config.base_url}")
        self.logger.info(f"Allowed domain: {crawler_config.allowed_domain}")
        self.logger.info(f"Max depth: {crawler_config.max_depth}")
        self.logger.info(f"Workers: {crawler_config.max_workers}")
        self.logger.info(f"Rate limit: {crawler_config.rate_limit} req/s")
        self.logger.info(f"Output directory: {crawler_config.output_dir}")

        self.scheduler = CrawlScheduler(crawler_config)
        self.setup_signal_handlers()
        try:
            crawl_results = await self.scheduler.run()
        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return EXIT_FAILURE
        finally:
            self.remove_signal_handlers()
            await self.scheduler.close()

        try:
            output_file = write_results(crawl_results, crawler_config.output_dir)
            report_file = write_html_report(crawl_results, crawler_config.output_dir,
                                            title=crawler_config.base_url)
        except OutputError as e:
            self.logger.error(str(e))
            return EXIT_FAILURE

        self.print_summary(crawl_results)
        print(f"\nResults saved to: {output_file}")
        print(f"HTML report: {report_file}")

        if not crawl_results.completed:
            print(f"Crawl interrupted, checkpoint kept at: {self.scheduler.checkpoints.path}")
            print("Run the same command again to resume.")
            return EXIT_INTERRUPTED

        self.scheduler.clear_checkpoint()
        self.logger.info("=== SITE CRAWLER FINISHED ===")
        return EXIT_OK

    def print_summary(self, crawl_results: CrawlResults):
        print()
        print(format_stats(crawl_results.stats, crawl_results.duration))
        if crawl_results.results:
            print()
            print(create_summary_table(crawl_results.results[:SUMMARY_ROWS]))
            remaining = len(crawl_results.results) - SUMMARY_ROWS
            if remaining > 0:
                print(f"... and {remaining} more pages")


def build_parser() -> argparse.ArgumentParser:
    profiles = ", ".join(f"{p.name} ({p.description.lower()})" for p in PROFILES.values())
    parser = argparse.ArgumentParser(
        prog='sitecrawl',
        description="Concurrent single-domain web crawler with checkpoint/resume",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Profiles: {profiles}

Examples:
  sitecrawl https://example.com                    # Crawl with defaults
  sitecrawl https://example.com -D 3 -w 50 -r 10   # Deeper and faster
  sitecrawl https://example.com --profile gentle   # Be kind to small servers
  sitecrawl --config config.yaml                   # Everything from a file
        """
    )

    parser.add_argument('url', nargs='?', help='Base URL to start crawling from')
    parser.add_argument('--config', help='Path to a YAML configuration file')
    parser.add_argument('-d', '--domain', help='Allowed domain (default: host of the URL)')
    parser.add_argument('-w', '--workers', type=int, help='Number of concurrent workers')
    parser.add_argument('-D', '--depth', type=int, help='Maximum crawl depth')
    parser.add_argument('-r', '--rate', type=float, help='Requests per second (0 disables)')
    parser.add_argument('-p', '--profile', choices=sorted(PROFILES), help='Crawl profile')
    parser.add_argument('-o', '--output', help='Output directory for results.json')
    parser.add_argument('--sitemap', dest='sitemap', action='store_true', default=None,
                        help='Seed the crawl from sitemap.xml (default)')
    parser.add_argument('--no-sitemap', dest='sitemap', action='store_false',
                        help='Do not use sitemap discovery')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--json-logs', action='store_true', help='Emit logs as JSON lines')
    parser.add_argument('--version', action='version', version=f'sitecrawl {__version__}')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    app = CrawlerApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
