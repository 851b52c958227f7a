"""Tests for chunking and document processing."""

import asyncio

import pytest

from assistant_rag.models import SourceType
from assistant_rag.text_processor import TextProcessor, estimate_token_count, normalize_text
from conftest import FakeEmbeddingsAPI


@pytest.fixture
def processor():
    return TextProcessor()


def test_chunking_is_deterministic(processor, long_text):
    first = processor.chunk_text(long_text)
    second = processor.chunk_text(long_text)
    assert [c.text for c in first] == [c.text for c in second]
    assert [c.metadata for c in first] == [c.metadata for c in second]


def test_chunks_respect_size_bounds(processor, long_text):
    chunks = processor.chunk_text(long_text, chunk_size=1500, chunk_overlap=100, min_chunk_size=200)
    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert 200 <= len(chunk.text) <= 1500 + 200
        assert chunk.token_count == estimate_token_count(chunk.text)


def test_text_shorter_than_minimum_yields_nothing(processor):
    assert processor.chunk_text("Too short to index.") == []
    assert processor.chunk_text("") == []


def test_short_text_becomes_one_chunk(processor):
    text = "A single paragraph about opening hours. " * 10
    chunks = processor.chunk_text(text)
    assert len(chunks) == 1
    assert chunks[0].text == text.strip()


def test_prefers_paragraph_boundaries(processor):
    para1 = " ".join(["alpha"] * 200)
    para2 = " ".join(["beta"] * 120)
    chunks = processor.chunk_text(f"{para1}\n\n{para2}", chunk_size=1500, chunk_overlap=200, min_chunk_size=100)

    assert len(chunks) == 2
    assert chunks[0].text == para1
    assert chunks[1].text.endswith(para2)


def test_falls_back_to_sentence_endings(processor):
    text = " ".join(f"Sentence number {i} describes the refund policy." for i in range(80))
    chunks = processor.chunk_text(text, chunk_size=500, chunk_overlap=50, min_chunk_size=100)

    assert len(chunks) > 2
    for chunk in chunks:
        assert chunk.text.endswith(".")


def test_consecutive_chunks_overlap(processor, long_text):
    chunks = processor.chunk_text(long_text, chunk_size=1500, chunk_overlap=200, min_chunk_size=100)
    for previous, current in zip(chunks, chunks[1:]):
        assert current.metadata["start_index"] < previous.metadata["end_index"]
        overlap = previous.metadata["end_index"] - current.metadata["start_index"]
        assert overlap <= 200


def test_chunk_metadata_and_source_id(processor, long_text):
    chunks = processor.chunk_text(long_text, source_document_id="doc-1", metadata={"lang": "en"})
    assert all(c.source_document_id == "doc-1" for c in chunks)
    assert all(c.metadata["lang"] == "en" for c in chunks)
    assert all(len(c.content_hash) == 64 for c in chunks)


def test_normalize_text_keeps_paragraphs():
    assert normalize_text("a   b \n\n\n\n c\t d") == "a b\n\nc d"


def test_website_content_batches_lines(processor):
    lines = [f"{i:02d} " + "x" * 77 for i in range(30)]
    chunks = processor.chunk_website_content("\n".join(lines), "https://example.com/faq", "FAQ")

    assert len(chunks) == 2
    assert chunks[0].text == "\n\n".join(lines[:18])
    assert chunks[1].text == "\n\n".join(lines[18:])
    meta = chunks[0].metadata
    assert meta["source"] == SourceType.WEBSITE.value
    assert meta["url"] == "https://example.com/faq"
    assert meta["title"] == "FAQ"
    assert meta["type"] == "paragraph-batch"
    assert chunks[1].index == 1


def test_website_content_merges_short_tail(processor):
    lines = ["y" * 80 for _ in range(18)] + ["z" * 100]
    chunks = processor.chunk_website_content("\n".join(lines), "https://example.com/")

    assert len(chunks) == 1
    assert chunks[0].text.endswith("\n\n" + "z" * 100)
    assert chunks[0].metadata["title"] == "https://example.com/"


def test_website_content_splits_oversized_blocks(processor):
    block = " ".join(f"word{i}" for i in range(800))
    chunks = processor.chunk_website_content(block, "https://example.com/long")
    assert len(chunks) > 1
    assert all(len(c.text) < 1500 + 200 for c in chunks)


def test_compare_chunking_strategies(processor, long_text):
    comparison = processor.compare_chunking_strategies(long_text)
    old, new = comparison["old_stats"], comparison["new_stats"]

    assert new.total_chunks < old.total_chunks
    assert comparison["chunk_reduction"] > 0
    assert old.avg_chunk_size <= 1000


@pytest.mark.parametrize("url,source,path", [
    ("https://docs.my-shop.co.uk/help", "my_shop_site", "/help"),
    ("https://example.com", "example_site", "/"),
    ("https://www.acme.org/about", "acme_site", "/about"),
])
def test_extract_metadata(processor, url, source, path):
    metadata = processor.extract_metadata(url, "Title")
    assert metadata.source == source
    assert metadata.url_path == path
    assert metadata.source_type == SourceType.WEBSITE
    assert metadata.title == "Title"


def test_process_document_embeds_chunks(embedding_service, fake_client):
    processor = TextProcessor(embedding_service)
    text = "\n".join(f"Line {i} explains delivery times and shipping costs in detail." for i in range(60))

    processed = asyncio.run(processor.process_document("https://example.com/shipping", text, "Shipping"))

    assert len(processed) >= 2
    for number, chunk in enumerate(processed):
        assert chunk.chunk_number == number
        assert chunk.url == "https://example.com/shipping"
        assert chunk.title == "Shipping"
        assert chunk.embedding == FakeEmbeddingsAPI.vector_for(chunk.content)
        assert chunk.metadata["site"] == "example_site"
    assert len(fake_client.embeddings.calls) == 1


def test_process_document_requires_embedding_service(processor):
    with pytest.raises(ValueError):
        asyncio.run(processor.process_document("https://example.com/", "text"))
