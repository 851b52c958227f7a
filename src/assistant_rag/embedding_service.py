"""Embedding service with query caching, content deduplication and model fallback."""

import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from openai import AsyncOpenAI

from .config import logger, OPENAI_API_KEY, EmbeddingConfig
from .embedding_cache import TTLCache, content_hash
from .models import Chunk, EmbeddingBatchReport, ProcessedChunk

EMBEDDING_KINDS = ("content", "query")


def estimate_cost_savings(
    total_texts: int,
    api_calls: int,
    cache_hits: int,
    model: str = EmbeddingConfig.EMBEDDING_MODEL,
) -> Dict[str, Any]:
    """
    Rough cost estimate for an embedding run.

    Args:
        total_texts: Texts that needed an embedding
        api_calls: Texts actually sent to the provider
        cache_hits: Texts served from the cache
        model: Model used for pricing

    Returns:
        Dict[str, Any]: counts plus estimated cost and savings in USD
    """
    price = EmbeddingConfig.COST_PER_1K_TOKENS.get(model, 0.0)
    tokens_per_text = EmbeddingConfig.AVG_TOKENS_PER_TEXT
    estimated_cost = api_calls * tokens_per_text / 1000 * price
    would_have_cost = total_texts * tokens_per_text / 1000 * price

    return {
        "total_texts": total_texts,
        "api_calls": api_calls,
        "saved": total_texts - api_calls,
        "cache_hit_rate": cache_hits / total_texts if total_texts > 0 else 0.0,
        "estimated_cost": estimated_cost,
        "estimated_savings": would_have_cost - estimated_cost,
    }


class EmbeddingService:
    """Service for generating embeddings from text."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        models: Optional[List[str]] = None,
        client: Optional[Any] = None,
        query_cache: Optional[TTLCache] = None,
        content_cache: Optional[TTLCache] = None,
        batch_size: int = EmbeddingConfig.BATCH_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the embedding service.

        Args:
            api_key: OpenAI API key. If None, uses the key from the environment
            models: Models to try in order. If None, the cheapest model followed by the fallbacks
            client: Pre-built AsyncOpenAI compatible client
            query_cache: Cache for query embeddings keyed by the literal query
            content_cache: Cache for content embeddings keyed by content hash
            batch_size: Maximum inputs per provider request
            clock: Time source for the default caches
        """
        self.api_key = api_key or OPENAI_API_KEY
        if client is None:
            if not self.api_key:
                logger.error("No OpenAI API key provided")
                raise ValueError("OpenAI API key is required")
            client = AsyncOpenAI(api_key=self.api_key)
        self.client = client

        self.models = models or [EmbeddingConfig.EMBEDDING_MODEL, *EmbeddingConfig.FALLBACK_MODELS]
        self.model = self.models[0]
        self.batch_size = max(1, batch_size)

        # Size of embedding vector (for fallbacks)
        self.embedding_size = EmbeddingConfig.EMBEDDING_SIZE

        ttl = EmbeddingConfig.CACHE_TTL_SECONDS
        self.query_cache = query_cache if query_cache is not None else TTLCache(ttl, clock=clock, name="query_embeddings")
        self.content_cache = content_cache if content_cache is not None else TTLCache(ttl, clock=clock, name="content_embeddings")

        self.last_report: Optional[EmbeddingBatchReport] = None
        self.texts_sent = 0
        self.provider_requests = 0

        logger.info(f"Embedding service initialized with models {self.models}")

    def _truncate(self, text: str) -> str:
        # A rough estimate is that 1 token is about 4 characters for English text
        max_chars = EmbeddingConfig.MAX_INPUT_CHARS
        if len(text) > max_chars:
            logger.warning(f"Text too long ({len(text)} chars), truncating to {max_chars} chars")
            return text[:max_chars]
        return text

    def _zero_vector(self) -> List[float]:
        return [0.0] * self.embedding_size

    async def _create_embeddings(self, inputs: List[str]) -> Optional[List[List[float]]]:
        """Call the provider, walking the model fallback chain. None if every model failed."""
        for model in self.models:
            try:
                response = await self.client.embeddings.create(input=inputs, model=model)
                embeddings = [item.embedding for item in response.data]
                if len(embeddings) != len(inputs):
                    raise ValueError(f"expected {len(inputs)} embeddings, got {len(embeddings)}")
            except Exception as e:
                logger.warning(f"Embedding model {model} failed for {len(inputs)} inputs: {e}")
                continue

            self.provider_requests += 1
            self.texts_sent += len(inputs)
            if embeddings:
                self.embedding_size = len(embeddings[0])  # Update size for fallbacks
            if model != self.model:
                logger.info(f"Generated {len(embeddings)} embeddings with fallback model {model}")
            return embeddings

        logger.error(f"All embedding models failed for {len(inputs)} inputs")
        return None

    async def generate_embedding(self, text: str, kind: str = "content") -> List[float]:
        """
        Get the embedding for a single text.

        Queries are cached by their literal text, content by its hash. A
        terminal provider failure yields a zero vector, which is not cached.

        Args:
            text: The text to embed
            kind: "content" or "query"

        Returns:
            List[float]: The embedding
        """
        if kind not in EMBEDDING_KINDS:
            raise ValueError(f"Unknown embedding kind: {kind}")

        if kind == "query":
            cache, key = self.query_cache, text
        else:
            cache, key = self.content_cache, content_hash(text)

        cached = cache.get(key)
        if cached is not None:
            logger.debug(f"Embedding cache hit for {kind}: {text[:50]}...")
            return cached

        logger.debug(f"Embedding cache miss for {kind}: {text[:50]}...")
        embeddings = await self._create_embeddings([self._truncate(text)])
        if embeddings is None:
            logger.warning(f"Returning zero vector of dimension {self.embedding_size} as fallback")
            return self._zero_vector()

        cache.set(key, embeddings[0])
        return embeddings[0]

    async def generate_batch_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Get embeddings for many texts with as few provider calls as possible.

        Identical texts (by content hash) are embedded once, cached content is
        reused, and the rest is sent in requests of at most `batch_size` inputs.

        Args:
            texts: The texts to embed

        Returns:
            List[List[float]]: One embedding per input, in input order
        """
        if not texts:
            return []

        hashes = [content_hash(text) for text in texts]
        unique: Dict[str, str] = {}
        for digest, text in zip(hashes, texts):
            unique.setdefault(digest, text)

        duplicates = len(texts) - len(unique)
        if duplicates > 0:
            logger.info(f"Found {duplicates} duplicate chunks, will reuse embeddings")

        resolved: Dict[str, List[float]] = {}
        pending: List[Tuple[str, str]] = []
        for digest, text in unique.items():
            cached = self.content_cache.get(digest)
            if cached is not None:
                resolved[digest] = cached
            else:
                pending.append((digest, text))

        cache_hits = len(resolved)
        if cache_hits > 0:
            logger.info(f"Embedding cache hits: {cache_hits}/{len(unique)}")

        requests = 0
        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            requests += 1
            embeddings = await self._create_embeddings([self._truncate(text) for _, text in batch])
            if embeddings is None:
                logger.warning(f"Returning zero vectors of dimension {self.embedding_size} for {len(batch)} texts")
                for digest, _ in batch:
                    resolved[digest] = self._zero_vector()
                continue
            for (digest, _), embedding in zip(batch, embeddings):
                resolved[digest] = embedding
                self.content_cache.set(digest, embedding)

        self.last_report = self._build_report(len(texts), len(unique), cache_hits, len(pending), requests)
        self._log_report(self.last_report)
        return [resolved[digest] for digest in hashes]

    def _build_report(self, total: int, unique: int, cache_hits: int, api_calls: int, requests: int) -> EmbeddingBatchReport:
        savings = estimate_cost_savings(total, api_calls, cache_hits, self.model)
        return EmbeddingBatchReport(
            total_texts=total,
            unique_texts=unique,
            cache_hits=cache_hits,
            api_calls=api_calls,
            provider_requests=requests,
            saved=savings["saved"],
            saved_percent=savings["saved"] / total * 100 if total > 0 else 0.0,
            estimated_cost=savings["estimated_cost"],
            estimated_savings=savings["estimated_savings"],
        )

    def _log_report(self, report: EmbeddingBatchReport) -> None:
        logger.info(
            f"Embedded {report.total_texts} texts with {report.api_calls} provider inputs "
            f"in {report.provider_requests} requests ({report.saved_percent:.1f}% saved, "
            f"est. cost ${report.estimated_cost:.6f}, saved ${report.estimated_savings:.6f})"
        )

    async def embed_chunks(self, chunks: List[Chunk]) -> List[ProcessedChunk]:
        """
        Embed chunks and package them for the store.

        Args:
            chunks: Chunks produced by the text processor

        Returns:
            List[ProcessedChunk]: The chunks with their embeddings
        """
        embeddings = await self.generate_batch_embeddings([chunk.text for chunk in chunks])
        return [
            ProcessedChunk(
                url=chunk.metadata.get("url") or chunk.source_document_id or "",
                chunk_number=chunk.index,
                title=chunk.metadata.get("title") or "",
                content=chunk.text,
                metadata=dict(chunk.metadata),
                embedding=embedding,
                content_hash=chunk.content_hash,
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "query_cache": self.query_cache.get_stats(),
            "content_cache": self.content_cache.get_stats(),
            "texts_sent": self.texts_sent,
            "provider_requests": self.provider_requests,
        }

    def sweep_caches(self) -> int:
        """Drop expired entries from both caches."""
        return self.query_cache.sweep_expired() + self.content_cache.sweep_expired()

    def clear_cache(self) -> None:
        self.query_cache.clear()
        self.content_cache.clear()
        logger.info("Embedding caches cleared")
