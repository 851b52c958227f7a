"""Tests for the website sync entry point."""

import asyncio

import pytest

from assistant_rag import ScrapedPage, TextProcessor
from conftest import html_page
from main import build_parser, process_scraped_page, run, sync_website, write_summary

SEED = "https://shop.example.com/"


@pytest.fixture
def site():
    return {
        SEED: html_page("Home", "Our shop sells widgets. " * 25, ["/about", "/missing"]),
        "https://shop.example.com/about": html_page("About", "We are a family business. " * 25, ["/"]),
    }


@pytest.fixture
def text_processor(embedding_service):
    return TextProcessor(embedding_service)


def test_dry_run_sync(make_scraper, site, text_processor, fake_client):
    summary = asyncio.run(sync_website(SEED, make_scraper(site), text_processor, None))

    assert summary.status == "COMPLETED"
    assert summary.pages == 3
    assert summary.successful_pages == 2
    assert summary.failed_pages == 1
    assert summary.chunks_stored == 2
    assert summary.errors == 1
    assert len(fake_client.embeddings.calls) == 2


def test_sync_stores_chunks(make_scraper, site, text_processor, fake_store):
    summary = asyncio.run(sync_website(SEED, make_scraper(site), text_processor, fake_store))

    assert summary.chunks_stored == 2
    assert len(fake_store.rows_for(SEED)) == 1
    assert len(fake_store.rows_for("https://shop.example.com/about")) == 1
    stored = fake_store.rows_for(SEED)[0]
    assert stored["title"] == "Home"
    assert stored["metadata"]["site"] == "example_site"
    assert fake_store.deleted_ids == []


def test_resync_replaces_previous_chunks(make_scraper, site, text_processor, fake_store):
    asyncio.run(sync_website(SEED, make_scraper(site), text_processor, fake_store))
    first_ids = [row["id"] for row in fake_store.rows]

    summary = asyncio.run(sync_website(SEED, make_scraper(site), text_processor, fake_store))

    assert summary.chunks_stored == 2
    assert len(fake_store.rows) == 2
    assert sorted(fake_store.deleted_ids) == sorted(first_ids)
    assert not set(first_ids) & {row["id"] for row in fake_store.rows}


def test_failed_resync_keeps_previous_chunks(make_scraper, site, text_processor, fake_store):
    asyncio.run(sync_website(SEED, make_scraper(site), text_processor, fake_store))
    before = list(fake_store.rows)

    fake_store.fail_inserts = True
    summary = asyncio.run(sync_website(SEED, make_scraper(site), text_processor, fake_store))

    assert summary.chunks_stored == 0
    assert fake_store.rows == before
    assert fake_store.deleted_ids == []


def test_failed_and_empty_pages_are_skipped(text_processor, fake_store):
    failed = ScrapedPage(url="https://example.com/x", content="", error="HTTP 500: Server Error")
    empty = ScrapedPage(url="https://example.com/y", content="   ")
    short = ScrapedPage(url="https://example.com/z", content="Too short to chunk.")

    assert asyncio.run(process_scraped_page(failed, text_processor, fake_store)) == 0
    assert asyncio.run(process_scraped_page(empty, text_processor, fake_store)) == 0
    assert asyncio.run(process_scraped_page(short, text_processor, fake_store)) == 0
    assert fake_store.rows == []
    assert fake_store.deleted_ids == []


def test_write_summary_appends(tmp_path, make_scraper, site, text_processor):
    summary = asyncio.run(sync_website(SEED, make_scraper(site), text_processor, None))
    path = write_summary(summary, tmp_path)
    write_summary(summary, tmp_path)

    text = path.read_text(encoding="utf-8")
    assert text.count(f"--- Sync run for {SEED} ---") == 2
    assert "Chunks stored: 2" in text


def test_parser_defaults():
    args = build_parser().parse_args(["--url", "https://example.com"])
    assert args.max_pages == 10
    assert args.max_depth == 2
    assert args.concurrency == 3
    assert args.dry_run is False


def test_run_rejects_unsafe_url():
    args = build_parser().parse_args(["--url", "http://169.254.169.254/", "--dry-run"])
    assert asyncio.run(run(args)) == 2
