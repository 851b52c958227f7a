"""Shared pytest fixtures for assistant RAG tests."""

from types import SimpleNamespace

import pytest

from assistant_rag import EmbeddingService, FeedbackLearner, PageFetchError, RetryPolicy, WebsiteScraper


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEmbeddingsAPI:
    """Stands in for `AsyncOpenAI().embeddings`."""

    def __init__(self, failing_models=()):
        self.failing_models = set(failing_models)
        self.calls = []

    @staticmethod
    def vector_for(text):
        return [float(len(text)), float(sum(map(ord, text)) % 997), 1.0, 0.5]

    async def create(self, input, model):
        self.calls.append((model, list(input)))
        if model in self.failing_models:
            raise RuntimeError(f"model {model} unavailable")
        return SimpleNamespace(data=[SimpleNamespace(embedding=self.vector_for(text)) for text in input])

    @property
    def successful_calls(self):
        return [(model, inputs) for model, inputs in self.calls if model not in self.failing_models]

    @property
    def texts_embedded(self):
        return [text for _, inputs in self.successful_calls for text in inputs]


class FakeOpenAIClient:
    def __init__(self, failing_models=()):
        self.embeddings = FakeEmbeddingsAPI(failing_models)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeSiteScraper(WebsiteScraper):
    """
    Scraper serving pages from a dict instead of the network.

    Values are HTML strings, exceptions to raise, or lists of those consumed
    one per fetch attempt (the last one repeats).
    """

    def __init__(self, site, **kwargs):
        kwargs.setdefault("batch_delay", 0)
        kwargs.setdefault("retry_policy", RetryPolicy(retries=3, retry_delay=0, sleep=RecordingSleep()))
        super().__init__(**kwargs)
        self.site = {url: list(v) if isinstance(v, list) else v for url, v in site.items()}
        self.fetch_log = []

    async def _fetch_once(self, session, url):
        self.fetch_log.append(url)
        response = self.site.get(url)
        if response is None:
            raise PageFetchError("HTTP 404: Not Found")
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeStore:
    """Duck-typed DataStore keeping rows in memory."""

    def __init__(self, fail_feedback=False, fail_inserts=False):
        self.fail_feedback = fail_feedback
        self.fail_inserts = fail_inserts
        self.feedback = []
        self.rows = []
        self.deleted_ids = []
        self.next_id = 1

    async def record_message_feedback(self, record):
        if self.fail_feedback:
            raise ConnectionError("database unavailable")
        self.feedback.append(record)
        return record.model_dump()

    async def get_chunks_by_url(self, url):
        return [dict(row) for row in self.rows if row["url"] == url]

    async def insert_chunks(self, chunks):
        if self.fail_inserts:
            return [{} for _ in chunks]
        rows = []
        for chunk in chunks:
            rows.append({
                "id": self.next_id,
                "url": chunk.url,
                "chunk_number": chunk.chunk_number,
                "title": chunk.title,
                "metadata": chunk.metadata,
            })
            self.next_id += 1
        self.rows.extend(rows)
        return rows

    async def delete_chunks_by_ids(self, ids):
        ids = set(ids)
        before = len(self.rows)
        self.rows = [row for row in self.rows if row["id"] not in ids]
        self.deleted_ids.extend(sorted(ids))
        return before - len(self.rows)

    def rows_for(self, url):
        return [row for row in self.rows if row["url"] == url]


def html_page(title, body, links=()):
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<nav>{anchors}</nav><main><h1>{title}</h1><p>{body}</p></main>"
        f"<script>console.log('x')</script></body></html>"
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeOpenAIClient()


@pytest.fixture
def embedding_service(fake_client, clock):
    return EmbeddingService(client=fake_client, clock=clock)


@pytest.fixture
def make_scraper():
    def factory(site, **kwargs):
        return FakeSiteScraper(site, **kwargs)
    return factory


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def learner(clock):
    return FeedbackLearner(clock=clock)


@pytest.fixture
def long_text():
    """About 10k characters of sentences split into paragraphs."""
    paragraphs = []
    for p in range(20):
        sentences = [
            f"Sentence {p}-{i} explains how the widget integration handles pricing and support."
            for i in range(6)
        ]
        paragraphs.append(" ".join(sentences))
    return "\n\n".join(paragraphs)
