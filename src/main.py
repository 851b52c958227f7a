#!/usr/bin/env python3
"""Main entry point: sync a website into the assistant knowledge base."""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from assistant_rag import (
    logger,
    ScraperConfig,
    WebsiteScraper,
    TextProcessor,
    EmbeddingService,
    DataStore,
    ScrapedPage,
    validate_scraping_url,
)

OUTPUT_DIR = Path(__file__).parent.parent / "output"


@dataclass
class SyncSummary:
    """Outcome of one website sync."""
    url: str
    status: str
    pages: int
    successful_pages: int
    failed_pages: int
    skipped_pages: int
    chunks_stored: int
    errors: int


async def process_scraped_page(
    page: ScrapedPage,
    text_processor: TextProcessor,
    data_store: Optional[DataStore]
) -> int:
    """
    Chunk, embed and store one scraped page.

    Args:
        page: The page to process
        text_processor: The text processor to use
        data_store: The data store to use; None for a dry run

    Returns:
        int: Number of chunks stored (or produced, on a dry run)
    """
    if page.error:
        logger.error(f"Skipping failed page {page.url}: {page.error}")
        return 0

    if not page.content.strip():
        logger.info(f"Skipping empty page {page.url}")
        return 0

    try:
        processed_chunks = await text_processor.process_document(page.url, page.content, page.title)
        if data_store is None:
            return len(processed_chunks)

        if not processed_chunks:
            logger.warning(f"No chunks produced for {page.url}, keeping stored chunks")
            return 0

        # Old rows are only removed once every new chunk is stored
        previous_rows = await data_store.get_chunks_by_url(page.url)
        insert_results = await data_store.insert_chunks(processed_chunks)

        successful = sum(1 for r in insert_results if r)
        logger.info(f"Successfully stored {successful}/{len(processed_chunks)} chunks for {page.url}")

        if successful < len(processed_chunks):
            logger.warning(f"Incomplete insert for {page.url}, keeping {len(previous_rows)} previously stored chunks")
            return successful

        stale_ids = [row["id"] for row in previous_rows if row.get("id") is not None]
        if stale_ids:
            await data_store.delete_chunks_by_ids(stale_ids)
        return successful

    except Exception as e:
        logger.error(f"Error processing page {page.url}: {e}")
        return 0


async def sync_website(
    url: str,
    scraper: WebsiteScraper,
    text_processor: TextProcessor,
    data_store: Optional[DataStore]
) -> SyncSummary:
    """
    Scrape a website and load every successful page into the store.

    Args:
        url: Seed URL of the website
        scraper: The scraper to use
        text_processor: The text processor to use
        data_store: The data store to use; None for a dry run

    Returns:
        SyncSummary: Counts describing the sync
    """
    website = await scraper.scrape_website(url)

    chunks_stored = 0
    failed = skipped = 0
    for page in website.pages:
        if page.error:
            failed += 1
        elif not page.content.strip():
            skipped += 1
        chunks_stored += await process_scraped_page(page, text_processor, data_store)

    summary = SyncSummary(
        url=url,
        status=website.status,
        pages=website.total_pages,
        successful_pages=len(website.successful_pages),
        failed_pages=failed,
        skipped_pages=skipped,
        chunks_stored=chunks_stored,
        errors=len(website.errors),
    )

    logger.info(
        f"\nSync Summary for {url}:\n"
        f"  - Status: {summary.status}\n"
        f"  - Pages scraped: {summary.pages} ({summary.successful_pages} ok, "
        f"{summary.failed_pages} failed, {summary.skipped_pages} empty)\n"
        f"  - Chunks stored: {summary.chunks_stored}"
    )
    for error in website.errors:
        logger.warning(f"  - {error}")

    return summary


def write_summary(summary: SyncSummary, output_dir: Path = OUTPUT_DIR) -> Path:
    output_dir.mkdir(exist_ok=True)
    summary_file = output_dir / "sync_summary.txt"
    with open(summary_file, "a", encoding="utf-8") as f:
        f.write(f"--- Sync run for {summary.url} ---\n")
        f.write(f"Status: {summary.status}\n")
        f.write(f"Pages: {summary.pages}\n")
        f.write(f"Successful: {summary.successful_pages}\n")
        f.write(f"Failed: {summary.failed_pages}\n")
        f.write(f"Chunks stored: {summary.chunks_stored}\n\n")
    return summary_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Scrape a website into the assistant knowledge base')
    parser.add_argument('--url', type=str, required=True,
                        help='Website URL to sync (e.g., https://example.com)')
    parser.add_argument('--max-pages', type=int, default=ScraperConfig.MAX_PAGES,
                        help='Maximum number of pages to scrape')
    parser.add_argument('--max-depth', type=int, default=ScraperConfig.MAX_DEPTH,
                        help='Maximum link depth from the start URL')
    parser.add_argument('--concurrency', type=int, default=ScraperConfig.CONCURRENT_REQUESTS,
                        help='Pages fetched concurrently')
    parser.add_argument('--dry-run', action='store_true',
                        help='Scrape and embed without writing to the database')
    return parser


async def run(args: argparse.Namespace) -> int:
    validation = validate_scraping_url(args.url)
    if not validation.valid:
        logger.error(f"Invalid URL {args.url}: {validation.error}")
        return 2

    logger.info(f"Starting website sync for URL: {validation.url}")

    # Create services
    embedding_service = EmbeddingService()
    text_processor = TextProcessor(embedding_service)
    scraper = WebsiteScraper(
        max_pages=args.max_pages,
        max_depth=args.max_depth,
        concurrent_requests=args.concurrency,
    )

    data_store = None
    if not args.dry_run:
        data_store = DataStore()
        if not await data_store.test_connection():
            logger.error("Database connection test failed, exiting")
            return 1

    summary = await sync_website(validation.url, scraper, text_processor, data_store)
    write_summary(summary)
    return 0 if summary.status == "COMPLETED" else 1


def main() -> None:
    """Console script entry point."""
    args = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except Exception as e:
        logger.critical(f"Unhandled exception in main: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
