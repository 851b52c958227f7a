"""Assistant RAG package: website scraping, chunking, embeddings and feedback learning."""

from .config import logger, get_supabase_client, ScraperConfig, ChunkingConfig, EmbeddingConfig, FeedbackConfig, QueryExpansionConfig
from .models import (
    ScrapedPage,
    ScrapedWebsite,
    UrlValidationResult,
    Chunk,
    ProcessedChunk,
    FeedbackEntry,
    LearningInsight,
    FeedbackStatistics,
    LearningAdjustments,
    MessageFeedbackRecord,
    DocumentMetadata,
    SourceType,
)
from .url_validator import validate_url_safety, validate_scraping_url
from .web_crawler import WebsiteScraper, RetryPolicy, DomExtractor, RegexExtractor, PageFetchError, TransientFetchError
from .text_processor import TextProcessor
from .embedding_cache import TTLCache
from .embedding_service import EmbeddingService
from .feedback_learning import FeedbackLearner
from .query_expansion import QueryExpander, expand_query_with_synonyms
from .data_store import DataStore

__all__ = [
    "logger",
    "get_supabase_client",
    "ScraperConfig",
    "ChunkingConfig",
    "EmbeddingConfig",
    "FeedbackConfig",
    "QueryExpansionConfig",
    "ScrapedPage",
    "ScrapedWebsite",
    "UrlValidationResult",
    "Chunk",
    "ProcessedChunk",
    "FeedbackEntry",
    "LearningInsight",
    "FeedbackStatistics",
    "LearningAdjustments",
    "MessageFeedbackRecord",
    "DocumentMetadata",
    "SourceType",
    "validate_url_safety",
    "validate_scraping_url",
    "WebsiteScraper",
    "RetryPolicy",
    "DomExtractor",
    "RegexExtractor",
    "PageFetchError",
    "TransientFetchError",
    "TextProcessor",
    "TTLCache",
    "EmbeddingService",
    "FeedbackLearner",
    "QueryExpander",
    "expand_query_with_synonyms",
    "DataStore",
]
