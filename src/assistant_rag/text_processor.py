"""Text processor module for cost-aware chunking of documents and pages."""

import math
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from datetime import datetime, timezone

from .models import Chunk, ChunkStats, DocumentMetadata, ProcessedChunk, SourceType
from .config import logger, ChunkingConfig
from .embedding_cache import content_hash
from .embedding_service import EmbeddingService

SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")
WHITESPACE_RE = re.compile(r"\s")


def normalize_text(text: str) -> str:
    """Collapse spaces inside lines and keep at most one blank line between paragraphs."""
    text = re.sub(r"[^\S\n]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def estimate_token_count(text: str) -> int:
    """Approximate token count (~3.5 characters per token for multilingual text)."""
    return math.ceil(len(text) / ChunkingConfig.CHARS_PER_TOKEN)


def calculate_chunk_stats(chunks: List[Chunk]) -> ChunkStats:
    total_chunks = len(chunks)
    total_chars = sum(len(chunk.text) for chunk in chunks)
    total_tokens = sum(chunk.token_count for chunk in chunks)
    return ChunkStats(
        total_chunks=total_chunks,
        total_chars=total_chars,
        total_tokens=total_tokens,
        avg_chunk_size=round(total_chars / total_chunks) if total_chunks else 0,
        avg_tokens_per_chunk=round(total_tokens / total_chunks) if total_chunks else 0,
    )


class TextProcessor:
    """Service for splitting text into chunks and handing them to the embedder."""

    def __init__(self, embedding_service: Optional[EmbeddingService] = None):
        """
        Initialize the text processor.

        Args:
            embedding_service: The embedding service used by process_document
        """
        self.embedding_service = embedding_service

    def _find_boundary(self, text: str, start: int, end: int, min_chunk_size: int) -> int:
        """Best split point in [start + min_chunk_size, end]: paragraph, then sentence, then word."""
        window_start = min(start + min_chunk_size, end)
        window = text[window_start:end]

        paragraph = window.rfind("\n\n")
        if paragraph != -1:
            return window_start + paragraph

        sentence_ends = [match.end() for match in SENTENCE_END_RE.finditer(window)]
        if sentence_ends:
            return window_start + sentence_ends[-1]

        word = max(window.rfind(" "), window.rfind("\n"))
        if word != -1:
            return window_start + word

        return end

    def chunk_text(
        self,
        text: str,
        chunk_size: int = ChunkingConfig.CHUNK_SIZE,
        chunk_overlap: int = ChunkingConfig.CHUNK_OVERLAP,
        min_chunk_size: int = ChunkingConfig.MIN_CHUNK_SIZE,
        source_document_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Chunk]:
        """
        Split text into overlapping chunks on natural boundaries.

        A chunk never ends inside its first `min_chunk_size` characters. When
        less than `min_chunk_size` characters would be left after a chunk, the
        chunk takes the rest of the text instead, so every emitted chunk is at
        least `min_chunk_size` long and text shorter than that yields nothing.

        Args:
            text: The text to chunk
            chunk_size: Target maximum chunk length in characters
            chunk_overlap: Characters repeated at the start of the next chunk
            min_chunk_size: Chunks shorter than this are dropped
            source_document_id: Identifier of the document the text came from
            metadata: Extra metadata copied onto every chunk

        Returns:
            List[Chunk]: The chunks, indexed from 0
        """
        clean = normalize_text(text or "")
        if len(clean) < min_chunk_size:
            logger.debug(f"Text too small ({len(clean)} chars), skipping")
            return []

        metadata = metadata or {}
        chunks: List[Chunk] = []
        text_length = len(clean)
        start = 0

        while start < text_length:
            if text_length - start <= chunk_size:
                end = text_length
            else:
                end = self._find_boundary(clean, start, start + chunk_size, min_chunk_size)
                if text_length - end < min_chunk_size:
                    end = text_length

            content = clean[start:end].strip()
            if len(content) >= min_chunk_size:
                chunks.append(Chunk(
                    text=content,
                    index=len(chunks),
                    source_document_id=source_document_id,
                    metadata={**metadata, "start_index": start, "end_index": end, "length": len(content)},
                    token_count=estimate_token_count(content),
                    content_hash=content_hash(content),
                ))
            else:
                logger.debug(f"Skipping small chunk ({len(content)} chars)")

            if end >= text_length:
                break

            # Start the overlap on a word boundary
            next_start = max(end - chunk_overlap, start + 1)
            if next_start < end:
                match = WHITESPACE_RE.search(clean, next_start, end)
                next_start = match.end() if match else end
            start = max(next_start, start + 1)

        if chunks:
            logger.debug(f"Created {len(chunks)} chunks (avg: {round(text_length / len(chunks))} chars/chunk)")
        return chunks

    def chunk_website_content(
        self,
        content: str,
        url: str,
        title: Optional[str] = None,
        chunk_size: int = ChunkingConfig.CHUNK_SIZE,
        chunk_overlap: int = ChunkingConfig.CHUNK_OVERLAP,
        min_chunk_size: int = ChunkingConfig.MIN_CHUNK_SIZE,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Chunk]:
        """
        Chunk scraped page text by batching its lines into paragraph groups.

        Short lines are grouped until the next one would overflow `chunk_size`;
        groups that are still too long go through chunk_text. A short trailing
        group is merged into the previous chunk.

        Args:
            content: Page text, one block per line
            url: Page URL
            title: Page title
            chunk_size: Target maximum chunk length in characters
            chunk_overlap: Overlap used when a group has to be split
            min_chunk_size: Minimum chunk length

        Returns:
            List[Chunk]: The chunks, indexed from 0
        """
        blocks = [block.strip() for block in re.split(r"\n+", content or "") if block.strip()]
        pieces: List[str] = []
        batch: List[str] = []
        batch_size = 0

        for block in blocks:
            if batch and batch_size >= min_chunk_size and batch_size + len(block) + 2 > chunk_size:
                pieces.append("\n\n".join(batch))
                batch, batch_size = [], 0

            batch_size += len(block) + (2 if batch else 0)
            batch.append(block)

            if batch_size > chunk_size:
                oversized = "\n\n".join(batch)
                pieces.extend(
                    chunk.text for chunk in self.chunk_text(oversized, chunk_size, chunk_overlap, min_chunk_size)
                )
                batch, batch_size = [], 0

        if batch:
            tail = "\n\n".join(batch)
            if len(tail) >= min_chunk_size:
                pieces.append(tail)
            elif pieces:
                pieces[-1] = f"{pieces[-1]}\n\n{tail}"

        base_metadata = {
            "source": SourceType.WEBSITE.value,
            "url": url,
            "title": title or url,
            **(metadata or {}),
        }
        chunks = [
            Chunk(
                text=piece,
                index=index,
                source_document_id=url,
                metadata={**base_metadata, "type": "paragraph-batch", "length": len(piece)},
                token_count=estimate_token_count(piece),
                content_hash=content_hash(piece),
            )
            for index, piece in enumerate(pieces)
        ]

        logger.debug(f"Created {len(chunks)} website chunks for {url}")
        return chunks

    def compare_chunking_strategies(self, text: str) -> Dict[str, Any]:
        """Compare the tuned chunking against the naive fixed-window baseline."""
        old_stats = calculate_chunk_stats(self._baseline_chunks(text))
        new_stats = calculate_chunk_stats(self.chunk_text(text))

        reduction = 0.0
        if old_stats.total_chunks:
            reduction = (old_stats.total_chunks - new_stats.total_chunks) / old_stats.total_chunks * 100

        logger.info(
            f"Chunking comparison: baseline {old_stats.total_chunks} chunks / {old_stats.total_tokens} tokens, "
            f"tuned {new_stats.total_chunks} chunks / {new_stats.total_tokens} tokens ({reduction:.1f}% fewer chunks)"
        )
        return {
            "old_stats": old_stats,
            "new_stats": new_stats,
            "chunk_reduction": reduction,
            "cost_reduction": reduction,
        }

    def _baseline_chunks(self, text: str) -> List[Chunk]:
        clean = re.sub(r"\s+", " ", text or "").strip()
        size = ChunkingConfig.BASELINE_CHUNK_SIZE
        overlap = ChunkingConfig.BASELINE_CHUNK_OVERLAP
        chunks: List[Chunk] = []
        start = 0
        while start < len(clean):
            end = min(start + size, len(clean))
            piece = clean[start:end].strip()
            if piece:
                chunks.append(Chunk(text=piece, index=len(chunks), token_count=estimate_token_count(piece)))
            if end >= len(clean):
                break
            start = max(end - overlap, start + 1)
        return chunks

    def extract_metadata(self, url: str, title: Optional[str] = None) -> DocumentMetadata:
        """
        Extract metadata from a URL.

        Args:
            url: The URL to extract metadata from
            title: Page title, if known

        Returns:
            DocumentMetadata: The extracted metadata
        """
        # Parse URL to get domain for source name
        parsed_url = urlparse(url)
        domain = parsed_url.hostname or parsed_url.netloc

        # Handle various patterns like www.example.com, docs.example.com, etc.
        domain_parts = domain.split('.')

        if len(domain_parts) >= 2:
            # For country-specific TLDs like .co.uk - use the third-to-last part
            if len(domain_parts) >= 3 and domain_parts[-2] in ['co', 'com', 'org', 'net']:
                main_domain = domain_parts[-3]
            else:
                main_domain = domain_parts[-2]
        else:
            # Fallback for unusual domains
            main_domain = domain

        source_name = main_domain.replace('-', '_') + "_site"

        return DocumentMetadata(
            source=source_name,
            url_path=parsed_url.path or "/",
            crawled_at=datetime.now(timezone.utc),
            source_type=SourceType.WEBSITE,
            title=title,
        )

    async def process_document(self, url: str, text: str, title: Optional[str] = None) -> List[ProcessedChunk]:
        """
        Chunk a page and embed all of its chunks in one batch.

        Args:
            url: The URL the page is from
            text: The page text
            title: The page title

        Returns:
            List[ProcessedChunk]: The processed chunks
        """
        if self.embedding_service is None:
            raise ValueError("process_document requires an embedding service")

        logger.info(f"Processing document from {url} (size: {len(text)} chars)")

        doc_metadata = self.extract_metadata(url, title)
        chunks = self.chunk_website_content(
            text,
            url,
            title,
            metadata={
                "site": doc_metadata.source,
                "url_path": doc_metadata.url_path,
                "crawled_at": doc_metadata.crawled_at.isoformat(),
            },
        )
        if not chunks:
            logger.info(f"No chunks produced for {url}")
            return []

        processed_chunks = await self.embedding_service.embed_chunks(chunks)
        logger.info(f"Document processing complete: {len(processed_chunks)} chunks processed for {url}")
        return processed_chunks
