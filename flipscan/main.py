"""
Main Entry Point for the Flipbook Scanner

Opens a flipbook in a headless browser, scans every page image and writes the
collected pages to a PDF.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .browser import BrowserSession
from .config import get_config
from .logger import setup_logging
from .progress import ProgressChannel
from .service import ScanService
from .storage import create_store

logger = logging.getLogger(__name__)


async def report_progress(channel: ProgressChannel):
    """Log progress events until the channel is closed."""
    async for event in channel:
        if event.action == "scanningStatus":
            logger.info(event.describe())
        elif event.action == "pageImage":
            logger.info(f"Page image {event.index + 1}: {event.url}")
        elif event.action in ("scanComplete", "scanStopped"):
            logger.info(f"Scan ended: {event.action}")


def print_results(result: dict, output: Optional[Path]):
    """Print scan results."""
    print(f"\n{'='*60}")
    print(f"FLIPBOOK SCAN RESULTS")
    print(f"{'='*60}")
    print(f"Status: {result.get('status', 'error')}")
    print(f"Pages collected: {len(result.get('images', []))}")
    if output:
        print(f"PDF written to: {output}")


async def run_scan(url: str, output: Optional[str] = None, scan_speed: Optional[int] = None,
                   orientation: str = "portrait", title: Optional[str] = None,
                   resume: bool = False) -> int:
    """Scan one flipbook and write its PDF; returns a process exit code."""
    config = get_config()
    store = create_store(config)

    async with BrowserSession(config) as browser:
        loaded = await browser.open(url)
        logger.info(f"Viewer loaded at {loaded}")

        service = ScanService(browser.dom, store, config, refresh=browser.refresh)
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, lambda: loop.create_task(service.stop_scan()))
        except NotImplementedError:
            logger.debug("Signal handlers unavailable, Ctrl+C will abort instead of stopping")

        reporter = asyncio.create_task(report_progress(service.channel))
        try:
            if resume:
                result = await service.handle({"action": "continueScan"})
            else:
                result = await service.handle({"action": "startScan", "scanSpeed": scan_speed})
            if "error" in result:
                logger.error(f"Scan failed: {result['error']}")
                if not service.session or not service.session.images:
                    return 1
                result = service.get_scan_status()

            download = await service.handle({"action": "downloadPdf",
                                             "orientation": orientation, "title": title})
            if "error" in download:
                logger.error(f"PDF generation failed: {download['error']}")
                print_results(result, None)
                return 1

            path = Path(output or download["filename"])
            path.write_bytes(download["pdf"])
            print_results(result, path)
            return 0
        finally:
            service.channel.close()
            await reporter
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:
                pass
            await service.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Flipbook Scanner - collect flipbook page images into a PDF',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan a FlipHTML5 book into a portrait PDF
  python -m flipscan.main https://fliphtml5.com/abcde/fghij/

  # Slower scan, landscape output
  python -m flipscan.main https://online.anyflip.com/abc/def/ -o book.pdf --scan-speed 2000 --orientation landscape

  # Continue a stopped scan (requires FLIPSCAN_REDIS_URL)
  python -m flipscan.main https://fliphtml5.com/abcde/fghij/ --continue
        """
    )

    parser.add_argument('url', type=str, help='Flipbook URL')
    parser.add_argument('-o', '--output', type=str, help='Output PDF path (default: fliphtml5-<timestamp>.pdf)')
    parser.add_argument('--scan-speed', type=int, help='Delay between pages in milliseconds')
    parser.add_argument('--orientation', type=str, default='portrait',
                        choices=['portrait', 'landscape', 'square'], help='PDF page orientation')
    parser.add_argument('--title', type=str, help='PDF title metadata')
    parser.add_argument('--max-pages', type=int, help='Maximum pages to scan')
    parser.add_argument('--no-refresh', action='store_true', help='Do not reload the viewer before scanning')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--continue', dest='resume', action='store_true',
                        help='Continue from the saved image list')
    parser.add_argument('--log-level', type=str, default='info',
                        choices=['debug', 'info', 'warning', 'error'], help='Log level')

    args = parser.parse_args()

    if not args.url.startswith(('http://', 'https://')):
        parser.error(f"Invalid flipbook URL: {args.url}")

    setup_logging("flipscan", args.log_level)

    config = get_config()

    # Override config with command line arguments
    if args.max_pages:
        config.max_pages = args.max_pages
    if args.no_refresh:
        config.refresh_page_on_scan = False
    if args.headed:
        config.headless = False

    config.log_configuration()

    try:
        exit_code = asyncio.run(run_scan(args.url, args.output, args.scan_speed,
                                         args.orientation, args.title, args.resume))
    except KeyboardInterrupt:
        logger.info("Scan interrupted by user")
        exit_code = 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
