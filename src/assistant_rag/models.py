"""Data models for the assistant RAG pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field
from enum import Enum


@dataclass(frozen=True)
class ScrapedPage:
    """A single page fetched during a crawl."""
    url: str
    content: str
    links: List[str] = field(default_factory=list)
    title: Optional[str] = None
    error: Optional[str] = None
    depth: int = 0


@dataclass
class ScrapedWebsite:
    """Result of crawling one website from its seed URL."""
    main_url: str
    pages: List[ScrapedPage] = field(default_factory=list)
    total_pages: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def successful_pages(self) -> List[ScrapedPage]:
        return [page for page in self.pages if page.content.strip() and not page.error]

    @property
    def status(self) -> str:
        # Partial success still counts as a completed sync
        return "COMPLETED" if self.successful_pages else "ERROR"


@dataclass(frozen=True)
class UrlValidationResult:
    """Outcome of validating a user supplied URL."""
    valid: bool
    error: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of a document prepared for embedding."""
    text: str
    index: int
    source_document_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    token_count: int = 0
    content_hash: str = ""


@dataclass
class ProcessedChunk:
    """A chunk together with its embedding, ready to be stored."""
    url: str
    chunk_number: int
    title: str
    content: str
    metadata: Dict[str, Any]
    embedding: List[float]
    content_hash: str = ""


@dataclass(frozen=True)
class ChunkStats:
    total_chunks: int
    total_chars: int
    total_tokens: int
    avg_chunk_size: int
    avg_tokens_per_chunk: int


@dataclass(frozen=True)
class EmbeddingBatchReport:
    """Cost accounting for one batch embedding run."""
    total_texts: int
    unique_texts: int
    cache_hits: int
    api_calls: int
    provider_requests: int
    saved: int
    saved_percent: float
    estimated_cost: float
    estimated_savings: float


@dataclass(frozen=True)
class FeedbackEntry:
    """One user reaction to an assistant answer."""
    id: str
    message_id: str
    session_id: str
    query: str
    answer: str
    confidence: float
    sources: List[str]
    feedback_type: str  # "positive" or "negative"
    timestamp: float
    feedback_score: Optional[int] = None  # 1-5 stars
    feedback_comment: Optional[str] = None

    @property
    def is_positive(self) -> bool:
        return self.feedback_type == "positive"


@dataclass(frozen=True)
class LearningInsight:
    """A pattern found in the feedback history."""
    pattern: str
    occurrences: int
    average_confidence: float
    positive_ratio: float
    recommendation: str
    kind: str = ""
    subject: Optional[str] = None


@dataclass(frozen=True)
class FeedbackStatistics:
    total_feedback: int
    positive_ratio: float
    average_rating: float
    average_confidence: float


@dataclass(frozen=True)
class ThresholdEvaluation:
    threshold: float
    precision: float
    recall: float
    f1: float


@dataclass(frozen=True)
class LearningAdjustments:
    """Parameters the application should apply after learning from feedback."""
    confidence_threshold: float
    should_update_knowledge_base: bool
    problematic_sources: List[str]


class FeedbackRating(str, Enum):
    THUMBS_UP = "THUMBS_UP"
    THUMBS_DOWN = "THUMBS_DOWN"


class MessageFeedbackRecord(BaseModel):
    """Durable copy of a feedback entry for the message feedback store."""
    message_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    rating: FeedbackRating
    feedback: Optional[str] = None


class QueryVariations(BaseModel):
    """Alternative search phrasings generated for a user question."""
    queries: List[str] = Field(
        default_factory=list,
        description="Semantically related reformulations of the question, one search phrase each. No numbering or explanations."
    )


class SourceType(str, Enum):
    """Type of content source."""
    WEBSITE = "website"
    DOCUMENT = "document"
    FAQ = "faq"
    PLAIN_TEXT = "plain_text"


class DocumentMetadata(BaseModel):
    """Metadata for a document."""
    source: str
    url_path: str
    crawled_at: datetime
    source_type: SourceType = SourceType.WEBSITE
    title: Optional[str] = None
    additional_info: Dict[str, Any] = Field(default_factory=dict)
