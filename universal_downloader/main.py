#!/usr/bin/env python3
"""
Universal Downloader - find and download files linked from web pages.

Crawls a site (or scans a single page), filters the discovered file links
by extension and text, and downloads the matches while remembering what
was already downloaded in earlier runs.

Usage:
    python -m universal_downloader.main crawl https://example.com --types pdf
    python -m universal_downloader.main scan https://example.com/reports
    python -m universal_downloader.main download-scanned --folder reports
    python -m universal_downloader.main export-csv
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import date

from universal_downloader.crawler import CrawlOptions, FileCrawler, RunState, build_crawler
from universal_downloader.crawler.store import rows_to_csv
from universal_downloader.utils.constants import (
    DEFAULT_DOWNLOAD_DIR,
    DEFAULT_FOLDER,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_MAX_QUEUE,
    DEFAULT_NAV_TIMEOUT_MS,
    DEFAULT_RENDER_WAIT_MS,
    DEFAULT_SLOW_PAUSE_MS,
    DEFAULT_STATE_DIR,
)
from universal_downloader.utils.log import (
    create_progress,
    setup_logger,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from universal_downloader.utils.paths import ensure_parent_dir, normalize_folder


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('url', help='Page to start from (e.g., https://example.com)')
    parser.add_argument(
        '--types', '-t',
        default='pdf',
        help='Comma-separated file extensions to collect, empty for any (default: pdf)'
    )
    parser.add_argument(
        '--include', '-i',
        default='',
        help='Only keep files whose URL, link text or page title contains this '
             '(or matches /regex/flags)'
    )
    parser.add_argument(
        '--exclude', '-x',
        default='',
        help='Drop files whose URL, link text or page title contains this '
             '(or matches /regex/flags)'
    )
    parser.add_argument(
        '--any-origin',
        action='store_true',
        help='Follow links to other sites too'
    )
    parser.add_argument(
        '--timeout',
        type=int,
        default=DEFAULT_NAV_TIMEOUT_MS,
        help=f'Page load timeout in milliseconds (default: {DEFAULT_NAV_TIMEOUT_MS})'
    )
    parser.add_argument(
        '--render-wait',
        type=int,
        default=DEFAULT_RENDER_WAIT_MS,
        help=f'Extra wait for late scripts in milliseconds (default: {DEFAULT_RENDER_WAIT_MS})'
    )
    parser.add_argument(
        '--show-browser',
        action='store_true',
        help='Run browser in visible mode (useful for debugging)'
    )


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='universal_downloader',
        description='Find and download files linked from web pages',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s crawl https://example.com --types pdf,docx --depth 3
    %(prog)s crawl https://example.com -i annual -x draft --folder reports
    %(prog)s scan https://example.com/downloads -i "/report-20[0-9]{2}/"
    %(prog)s download-scanned --folder reports
    %(prog)s export-csv --output results.csv
        """
    )

    parser.add_argument(
        '--state-dir',
        default=DEFAULT_STATE_DIR,
        help=f'Directory for persisted results (default: {DEFAULT_STATE_DIR})'
    )
    parser.add_argument(
        '--download-dir', '-o',
        default=DEFAULT_DOWNLOAD_DIR,
        help=f'Root directory for downloaded files (default: {DEFAULT_DOWNLOAD_DIR})'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress output except errors'
    )
    parser.add_argument(
        '--log-file',
        help='Also write log records to this file'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    crawl = commands.add_parser('crawl', help='Crawl a site and download matching files')
    _add_filter_arguments(crawl)
    crawl.add_argument(
        '--folder', '-f',
        default=DEFAULT_FOLDER,
        help=f'Folder below the download root (default: {DEFAULT_FOLDER})'
    )
    crawl.add_argument(
        '--max-pages', '-m',
        type=int,
        default=DEFAULT_MAX_PAGES,
        help=f'Maximum number of pages to visit (default: {DEFAULT_MAX_PAGES})'
    )
    crawl.add_argument(
        '--depth', '-d',
        type=int,
        default=DEFAULT_MAX_DEPTH,
        help=f'Maximum link depth from the start page (default: {DEFAULT_MAX_DEPTH})'
    )
    crawl.add_argument(
        '--max-queue',
        type=int,
        default=DEFAULT_MAX_QUEUE,
        help=f'Maximum number of queued pages (default: {DEFAULT_MAX_QUEUE})'
    )
    crawl.add_argument(
        '--pause',
        type=int,
        default=DEFAULT_SLOW_PAUSE_MS,
        help=f'Pause after each download in milliseconds (default: {DEFAULT_SLOW_PAUSE_MS})'
    )

    scan = commands.add_parser('scan', help='Record the matching files of a single page')
    _add_filter_arguments(scan)

    download = commands.add_parser('download-scanned', help='Download all scanned files')
    download.add_argument(
        '--folder', '-f',
        default=DEFAULT_FOLDER,
        help=f'Folder below the download root (default: {DEFAULT_FOLDER})'
    )
    download.add_argument(
        '--force',
        action='store_true',
        help='Download files again even if they were downloaded before'
    )

    export = commands.add_parser('export-csv', help='Write the download results as CSV')
    export.add_argument(
        '--folder', '-f',
        default=DEFAULT_FOLDER,
        help=f'Folder below the download root for the default output (default: {DEFAULT_FOLDER})'
    )
    export.add_argument(
        '--output',
        help='CSV file to write (default: <download-dir>/<folder>/results.<date>.csv)'
    )

    commands.add_parser('clear', help='Forget result rows and scanned files')

    return parser.parse_args(argv)


def validate_url(url: str) -> str:
    """
    Validate and normalize the input URL.

    Raises:
        ValueError: If URL is invalid
    """
    # Add protocol if missing
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    from urllib.parse import urlparse
    if not urlparse(url).netloc:
        raise ValueError(f"Invalid URL: {url}")

    return url


def build_options(args: argparse.Namespace) -> CrawlOptions:
    """Translate parsed arguments into crawl options."""
    options = CrawlOptions(
        start_url=validate_url(args.url),
        file_types=CrawlOptions.from_dict({'fileTypes': args.types}).file_types,
        include=args.include,
        exclude=args.exclude,
        same_origin_only=not args.any_origin,
        nav_timeout_ms=args.timeout,
        render_wait_ms=args.render_wait,
        hide_tab=not args.show_browser,
    )
    if args.command == 'crawl':
        options.folder = args.folder
        options.max_pages = args.max_pages
        options.max_depth = args.depth
        options.max_queue = args.max_queue
        options.slow_pause_ms = args.pause
    options.validate()
    return options


def print_summary(state: RunState) -> None:
    """
    Print the run summary.

    Args:
        state: Final run state
    """
    print("\n" + "=" * 60)
    print_success(f"{state.mode.value.upper()} SUMMARY")
    print("=" * 60)
    print(f"  Result:        {state.last_message}")
    print(f"  Pages visited: {state.visited_count}")
    print(f"  Files found:   {state.found_count}")
    print(f"  Downloaded:    {state.done_count}")
    print(f"  Skipped:       {state.skipped_count}")
    print(f"  Failed:        {state.failed_count}")
    print("=" * 60 + "\n")


async def run_with_progress(crawler: FileCrawler, coro, quiet: bool):
    """
    Await a driver while showing its state on a live progress line.

    Ctrl+C requests a cooperative stop instead of killing the run.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(coro)

    progress = None if quiet else create_progress()
    task_id = None

    def show(state: RunState) -> None:
        if progress is not None and task_id is not None:
            progress.update(
                task_id,
                description=(
                    f"{state.mode.value} | queue {state.queue_length} | "
                    f"visited {state.visited_count} | found {state.found_count} | "
                    f"done {state.done_count} | skipped {state.skipped_count} | "
                    f"failed {state.failed_count} | {state.last_message[:60]}"
                )
            )

    crawler.subscribe(show)
    try:
        if progress is not None:
            progress.start()
            task_id = progress.add_task("starting", total=None)
        while True:
            try:
                return await asyncio.shield(task)
            except (KeyboardInterrupt, asyncio.CancelledError):
                if task.done():
                    raise
                print_warning("Stopping after the current item...")
                crawler.stop()
    finally:
        crawler.unsubscribe(show)
        if progress is not None:
            progress.stop()


async def main(argv=None) -> int:
    """
    Main entry point for the universal downloader.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_arguments(argv)

    log_level = logging.DEBUG if args.verbose else (logging.WARNING if args.quiet else logging.INFO)
    setup_logger(level=log_level, log_file=args.log_file)

    try:
        crawler = build_crawler(args.state_dir, args.download_dir)

        if args.command == 'crawl':
            options = build_options(args)
            if not args.quiet:
                print_info(f"Target URL: {options.start_url}")
                print_info(f"Output: {os.path.join(os.path.abspath(args.download_dir), normalize_folder(options.folder))}")
                print_info(f"Max pages: {options.max_pages}, Depth: {options.max_depth}")
            state = await run_with_progress(crawler, crawler.crawl_site(options), args.quiet)
            if not args.quiet:
                print_summary(state)
            return 0 if state.last_message in ('done', 'stopped') else 1

        if args.command == 'scan':
            options = build_options(args)
            added = await run_with_progress(crawler, crawler.scan_single_page(options), args.quiet)
            state = crawler.get_state()
            if state.failed_count:
                print_error(state.last_message)
                return 1
            print_success(f"Recorded {added} new files ({state.found_count} scanned in total)")
            return 0

        if args.command == 'download-scanned':
            state = await run_with_progress(
                crawler, crawler.download_scanned(args.folder, args.force), args.quiet
            )
            if not args.quiet:
                print_summary(state)
            return 0 if state.last_message in ('done', 'stopped') else 1

        if args.command == 'export-csv':
            rows = crawler.get_rows()
            output = args.output or os.path.join(
                args.download_dir,
                normalize_folder(args.folder),
                f"results.{date.today().isoformat()}.csv"
            )
            ensure_parent_dir(output)
            with open(output, 'w', encoding='utf-8', newline='') as f:
                f.write(rows_to_csv(rows))
            print_success(f"Wrote {len(rows)} rows to {os.path.abspath(output)}")
            return 0

        if args.command == 'clear':
            crawler.clear_results()
            print_success("Cleared result rows and scanned files")
            return 0

        return 1

    except ValueError as e:
        print_error(f"Invalid input: {e}")
        return 1
    except OSError as e:
        print_error(f"Error: {e}")
        return 1


def run() -> None:
    """Entry point wrapper for running as module."""
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
