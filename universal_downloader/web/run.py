#!/usr/bin/env python3
"""
Entry point for running the Universal Downloader web API.

Usage:
    python -m universal_downloader.web.run --host 0.0.0.0 --port 5000
"""

import argparse
import logging

from universal_downloader.crawler import CrawlService, build_crawler
from universal_downloader.utils.constants import DEFAULT_DOWNLOAD_DIR, DEFAULT_STATE_DIR
from universal_downloader.utils.log import setup_logger, print_info
from universal_downloader.web.app import run_app


def main():
    """Parse arguments and run the web application."""
    parser = argparse.ArgumentParser(
        description='Run the Universal Downloader web API'
    )
    parser.add_argument(
        '--host',
        default='127.0.0.1',
        help='Host to bind to (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=5000,
        help='Port to listen on (default: 5000)'
    )
    parser.add_argument(
        '--state-dir',
        default=DEFAULT_STATE_DIR,
        help=f'Directory for persisted results (default: {DEFAULT_STATE_DIR})'
    )
    parser.add_argument(
        '--download-dir',
        default=DEFAULT_DOWNLOAD_DIR,
        help=f'Root directory for downloaded files (default: {DEFAULT_DOWNLOAD_DIR})'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug mode'
    )

    args = parser.parse_args()
    setup_logger(level=logging.DEBUG if args.debug else logging.INFO)

    service = CrawlService(build_crawler(args.state_dir, args.download_dir))

    print_info(f"Starting Universal Downloader API at http://{args.host}:{args.port}")
    run_app(service, host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
