"""Website scraper module: bounded same-domain crawling with retries."""

import re
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set, TypeVar
from urllib.parse import urljoin, urlsplit

import aiohttp
from bs4 import BeautifulSoup, FeatureNotFound

from .models import ScrapedPage, ScrapedWebsite, UrlValidationResult
from .config import logger, ScraperConfig
from .url_validator import normalize_url, validate_scraping_url

T = TypeVar("T")

UrlValidator = Callable[[str], UrlValidationResult]

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

NOISE_TAGS = ["script", "style", "nav", "header", "footer", "aside", "noscript"]

CONTENT_SELECTORS = [
    "main",
    "article",
    '[role="main"]',
    ".content",
    ".main-content",
    "#content",
    "#main",
    ".post-content",
    ".entry-content",
]


class PageFetchError(Exception):
    """A page could not be fetched; not worth retrying."""


class TransientFetchError(PageFetchError):
    """A timeout or connection failure that may succeed on retry."""


class RetryPolicy:
    """Retry transient failures with a linearly growing delay."""

    def __init__(
        self,
        retries: int = ScraperConfig.RETRIES,
        retry_delay: float = ScraperConfig.RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.retries = retries
        self.retry_delay = retry_delay
        self.sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        return self.retry_delay * attempt

    async def run(self, operation: Callable[[], Awaitable[T]], description: str = "") -> T:
        """
        Run an operation, retrying it on TransientFetchError.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            description: Label used in log messages

        Returns:
            The operation's result

        Raises:
            TransientFetchError: when every retry has been used
            PageFetchError: on the first non-transient failure
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except TransientFetchError as e:
                attempt += 1
                if attempt > self.retries:
                    logger.error(f"Giving up on {description} after {self.retries} retries: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.warning(f"Transient error for {description}: {e}. Retry {attempt}/{self.retries} in {delay:.1f}s")
                await self.sleep(delay)


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs inside lines and drop blank lines."""
    lines = (re.sub(r"\s+", " ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def resolve_links(hrefs: List[str], page_url: str) -> List[str]:
    """Resolve hrefs against the page URL, keeping unique http(s) URLs in order."""
    links: List[str] = []
    seen: Set[str] = set()
    for href in hrefs:
        href = href.strip()
        if not href:
            continue
        try:
            absolute = urljoin(page_url, href)
            scheme = urlsplit(absolute).scheme
        except ValueError:
            continue
        if scheme not in ("http", "https") or absolute in seen:
            continue
        seen.add(absolute)
        links.append(absolute)
    return links


@dataclass(frozen=True)
class ExtractedContent:
    title: str
    content: str
    links: List[str] = field(default_factory=list)


class ContentExtractor(ABC):
    """Turns raw HTML into title, readable text and outbound links."""

    name = "base"

    @abstractmethod
    def extract(self, html: str, page_url: str) -> ExtractedContent:
        ...


class DomExtractor(ContentExtractor):
    """Extraction over a real DOM built by BeautifulSoup."""

    name = "dom"

    def __init__(self, parser: str = ScraperConfig.HTML_PARSER):
        self.parser = parser

    def extract(self, html: str, page_url: str) -> ExtractedContent:
        soup = BeautifulSoup(html, self.parser)

        title = ""
        if soup.title and soup.title.get_text(strip=True):
            title = soup.title.get_text(strip=True)
        elif soup.h1 and soup.h1.get_text(strip=True):
            title = soup.h1.get_text(strip=True)

        links = resolve_links([a.get("href", "") for a in soup.find_all("a", href=True)], page_url)

        for element in soup(NOISE_TAGS):
            element.decompose()

        container = None
        for selector in CONTENT_SELECTORS:
            container = soup.select_one(selector)
            if container is not None:
                break
        if container is None:
            container = soup.body or soup

        content = normalize_whitespace(container.get_text(separator="\n"))
        return ExtractedContent(title=title or "Untitled", content=content, links=links)


class RegexExtractor(ContentExtractor):
    """Pattern based extraction used when no DOM parser can be used."""

    name = "regex"

    NOISE_BLOCK_RE = re.compile(
        r"<(script|style|nav|header|footer|aside|noscript)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
    )
    COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
    TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
    H1_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
    HREF_RE = re.compile(r"""<a\s[^>]*?href\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
    CONTENT_BLOCK_RES = [
        re.compile(r"<main\b[^>]*>(.*?)</main>", re.IGNORECASE | re.DOTALL),
        re.compile(r"<article\b[^>]*>(.*?)</article>", re.IGNORECASE | re.DOTALL),
        re.compile(
            r"""<div\b[^>]*class\s*=\s*["'][^"']*\b(?:content|main-content|post-content|entry-content)\b[^"']*["'][^>]*>(.*?)</div>""",
            re.IGNORECASE | re.DOTALL,
        ),
    ]
    BLOCK_BREAK_RE = re.compile(r"<(?:br|/p|/div|/h[1-6]|/li|/tr|/section|/blockquote)\b[^>]*>", re.IGNORECASE)
    TAG_RE = re.compile(r"<[^>]+>")
    ENTITIES = {
        "&nbsp;": " ",
        "&lt;": "<",
        "&gt;": ">",
        "&quot;": '"',
        "&#39;": "'",
        "&apos;": "'",
        "&amp;": "&",  # last, so "&amp;lt;" stays "&lt;"
    }

    def _to_text(self, fragment: str) -> str:
        text = self.BLOCK_BREAK_RE.sub("\n", fragment)
        text = self.TAG_RE.sub(" ", text)
        for entity, replacement in self.ENTITIES.items():
            text = text.replace(entity, replacement)
        return text

    def extract(self, html: str, page_url: str) -> ExtractedContent:
        html = self.COMMENT_RE.sub("", html)

        title = ""
        for pattern in (self.TITLE_RE, self.H1_RE):
            match = pattern.search(html)
            if match:
                title = normalize_whitespace(self._to_text(match.group(1))).replace("\n", " ")
                if title:
                    break

        links = resolve_links(
            [self._to_text(href) for href in self.HREF_RE.findall(html)], page_url
        )

        cleaned = self.NOISE_BLOCK_RE.sub(" ", html)
        body = cleaned
        for pattern in self.CONTENT_BLOCK_RES:
            blocks = pattern.findall(cleaned)
            if blocks:
                body = "\n".join(blocks)
                break

        content = normalize_whitespace(self._to_text(body))
        return ExtractedContent(title=title or "Untitled", content=content, links=links)


def select_extractor(parser: str = ScraperConfig.HTML_PARSER) -> ContentExtractor:
    """Pick the DOM extractor when the parser backend is usable, else the regex one."""
    try:
        BeautifulSoup("<html></html>", parser)
    except FeatureNotFound:
        logger.warning(f"HTML parser '{parser}' unavailable, using regex content extraction")
        return RegexExtractor()
    return DomExtractor(parser)


class WebsiteScraper:
    """
    Bounded, depth-limited, same-domain crawler.

    One instance runs one crawl at a time: `scrape_website` resets the visited
    set and base domain on entry.
    """

    def __init__(
        self,
        max_pages: int = ScraperConfig.MAX_PAGES,
        max_depth: int = ScraperConfig.MAX_DEPTH,
        concurrent_requests: int = ScraperConfig.CONCURRENT_REQUESTS,
        batch_delay: float = ScraperConfig.BATCH_DELAY,
        request_timeout: float = ScraperConfig.REQUEST_TIMEOUT,
        retries: int = ScraperConfig.RETRIES,
        retry_delay: float = ScraperConfig.RETRY_DELAY,
        extractor: Optional[ContentExtractor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        url_validator: UrlValidator = validate_scraping_url,
        max_redirects: int = ScraperConfig.MAX_REDIRECTS,
    ):
        """
        Initialize the scraper.

        Args:
            max_pages: Maximum number of pages fetched per crawl
            max_depth: Maximum link hops from the seed URL
            concurrent_requests: Links fetched concurrently per batch
            batch_delay: Pause between link batches in seconds
            request_timeout: Per-request timeout in seconds
            retries: Retries for timeouts and connection failures
            retry_delay: Base retry delay, multiplied by the attempt number
            extractor: Content extractor; probed from the environment if None
            retry_policy: Overrides retries/retry_delay when given
            url_validator: Checks the seed URL and every redirect target
            max_redirects: Redirect hops followed per fetch
        """
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.concurrent_requests = max(1, concurrent_requests)
        self.batch_delay = batch_delay
        self.request_timeout = request_timeout
        self.retry_policy = retry_policy or RetryPolicy(retries, retry_delay)
        self.extractor = extractor or select_extractor()
        self.fallback_extractor = RegexExtractor()
        self.url_validator = url_validator
        self.max_redirects = max_redirects

        self.visited_urls: Set[str] = set()
        self.base_domain = ""
        self.headers = {
            "User-Agent": ScraperConfig.USER_AGENT,
            "Accept": ScraperConfig.ACCEPT,
            "Accept-Language": ScraperConfig.ACCEPT_LANGUAGE,
        }

    async def scrape_website(self, url: str) -> ScrapedWebsite:
        """
        Crawl a website starting from a seed URL.

        Args:
            url: The seed URL

        Returns:
            ScrapedWebsite: pages and errors collected; never raises for fetch failures
        """
        self.visited_urls.clear()
        self.base_domain = ""
        result = ScrapedWebsite(main_url=url)

        validation = self.url_validator(url)
        if not validation.valid:
            logger.error(f"Refusing to scrape {url}: {validation.error}")
            result.errors.append(f"Failed to scrape website: {validation.error}")
            return result

        seed = validation.url
        self.base_domain = urlsplit(seed).hostname or ""
        logger.info(f"Scraping {seed} (max_pages={self.max_pages}, max_depth={self.max_depth}, extractor={self.extractor.name})")

        try:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            async with aiohttp.ClientSession(headers=self.headers, timeout=timeout) as session:
                await self._scrape_page(session, seed, 0, result)
        except Exception as e:
            logger.error(f"Website scrape of {seed} aborted: {e}")
            result.errors.append(f"Failed to scrape website: {e}")

        result.total_pages = len(result.pages)
        logger.info(f"Scrape of {seed} finished: {result.total_pages} pages, {len(result.errors)} errors")
        return result

    async def _scrape_page(self, session: aiohttp.ClientSession, url: str, depth: int, result: ScrapedWebsite) -> None:
        if depth > self.max_depth or url in self.visited_urls or len(self.visited_urls) >= self.max_pages:
            return

        # Claiming the URL here also reserves its slot against max_pages
        self.visited_urls.add(url)

        try:
            html = await self.retry_policy.run(lambda: self._fetch_once(session, url), description=url)
        except PageFetchError as e:
            message = f"Failed to scrape {url}: {e}"
            logger.error(message)
            result.errors.append(message)
            result.pages.append(ScrapedPage(url=url, content="", links=[], error=message, depth=depth))
            return

        page = self._parse_page(html, url, depth)
        result.pages.append(page)
        logger.info(f"Scraped {url} (depth {depth}, {len(page.content)} chars, {len(page.links)} links)")

        if depth < self.max_depth:
            await self._scrape_links(session, page.links, depth + 1, result)

    async def _fetch_once(self, session: aiohttp.ClientSession, url: str) -> str:
        """
        Fetch a page body once, classifying failures for the retry policy.

        Redirects are followed here rather than by aiohttp so that every
        target passes the URL validator before it is requested.
        """
        current = url
        try:
            for _ in range(self.max_redirects + 1):
                async with session.get(current, allow_redirects=False) as response:
                    location = response.headers.get("Location")
                    if response.status in REDIRECT_STATUSES and location:
                        current = self._redirect_target(current, location)
                        continue
                    if response.status >= 400:
                        raise PageFetchError(f"HTTP {response.status}: {response.reason}")
                    return await response.text(errors="replace")
            raise PageFetchError(f"Too many redirects (more than {self.max_redirects})")
        except asyncio.TimeoutError as e:
            raise TransientFetchError(f"Request timed out after {self.request_timeout}s") from e
        except aiohttp.ClientConnectionError as e:
            raise TransientFetchError(f"Connection error: {e}") from e
        except aiohttp.ClientError as e:
            raise PageFetchError(str(e)) from e

    def _redirect_target(self, current: str, location: str) -> str:
        target = urljoin(current, location)
        validation = self.url_validator(target)
        if not validation.valid:
            logger.warning(f"Blocked redirect from {current} to {target}: {validation.error}")
            raise PageFetchError(f"Redirect to {target} blocked: {validation.error}")
        logger.debug(f"Following redirect from {current} to {target}")
        return validation.url or target

    def _parse_page(self, html: str, url: str, depth: int) -> ScrapedPage:
        try:
            extracted = self.extractor.extract(html, url)
        except Exception as e:
            if self.extractor is self.fallback_extractor:
                raise
            logger.warning(f"{self.extractor.name} extraction failed for {url} ({e}), using regex extraction")
            extracted = self.fallback_extractor.extract(html, url)

        return ScrapedPage(
            url=url,
            title=extracted.title,
            content=extracted.content,
            links=extracted.links,
            depth=depth,
        )

    def _follow_candidates(self, links: List[str]) -> List[str]:
        """Same-domain, unvisited links in discovery order, fragments removed."""
        candidates: List[str] = []
        for link in links:
            try:
                normalized = normalize_url(link)
                hostname = urlsplit(normalized).hostname
            except ValueError:
                continue
            if hostname != self.base_domain:
                continue
            if normalized in self.visited_urls or normalized in candidates:
                continue
            candidates.append(normalized)
        return candidates

    async def _scrape_links(self, session: aiohttp.ClientSession, links: List[str], depth: int, result: ScrapedWebsite) -> None:
        candidates = self._follow_candidates(links)
        size = self.concurrent_requests

        for start in range(0, len(candidates), size):
            if len(self.visited_urls) >= self.max_pages:
                break

            batch = candidates[start:start + size]
            outcomes = await asyncio.gather(
                *(self._scrape_page(session, link, depth, result) for link in batch),
                return_exceptions=True,
            )
            for link, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    message = f"Failed to scrape {link}: {outcome}"
                    logger.error(message)
                    result.errors.append(message)

            if start + size < len(candidates) and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
