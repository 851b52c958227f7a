"""Query expansion: synonym rules plus optional LLM reformulations to widen recall."""

import hashlib
import time
from typing import Awaitable, Callable, Dict, List, Optional
from mirascope import llm, prompt_template

from .models import QueryVariations
from .config import logger, OPENAI_API_KEY, QueryExpansionConfig
from .embedding_cache import TTLCache

# Domain synonym dictionary, matched as substrings of the lowercased query
SYNONYMS: Dict[str, List[str]] = {
    # Pricing
    "price": ["cost", "rates", "fee", "pricing", "charge"],
    "payment": ["billing", "invoice", "checkout", "pay"],
    "discount": ["offer", "promotion", "deal", "coupon", "sale"],
    "free": ["no cost", "complimentary", "free of charge", "trial"],

    # Technical
    "integration": ["connection", "plugin", "api", "add-on", "connector"],
    "install": ["set up", "configure", "deploy"],
    "sync": ["synchronize", "update", "refresh"],
    "working": ["functioning", "running", "operating"],

    # Support
    "contact": ["reach", "phone", "email", "customer service"],
    "support": ["help", "assistance", "helpdesk", "service"],
    "problem": ["issue", "error", "bug", "fault"],
    "question": ["inquiry", "information", "explanation"],

    # Account
    "account": ["profile", "user", "login", "registration"],
    "password": ["credentials", "login details", "passcode"],
    "access": ["permissions", "rights", "authorization"],

    # Time
    "opening hours": ["business hours", "open", "schedule", "office hours"],
    "when": ["what time", "schedule", "date"],
    "available": ["in stock", "offered", "obtainable"],

    # Product
    "product": ["item", "service", "goods"],
    "order": ["purchase", "buy", "booking"],
    "delivery": ["shipping", "dispatch", "transport"],
    "stock": ["inventory", "availability", "supply"],

    # General
    "information": ["info", "details", "data"],
    "website": ["site", "web page", "portal"],
    "document": ["file", "pdf", "manual"],
    "download": ["get", "install", "app"],
}


@llm.call(
    provider='openai',
    model=QueryExpansionConfig.MODEL,
    response_model=QueryVariations,
    call_params={"temperature": 0.7, "max_tokens": 300},
)
@prompt_template(
    """
    SYSTEM: You generate alternative search phrasings that help a retrieval system find relevant documents.
    Each phrasing must be semantically related to the original question and written in the requested language.
    Return only the phrasings: no numbering, labels or explanations.

    Example:
    Question: "How does the integration work?"
    Phrasings: "How does the connection function?", "Integration explained", "Setup and configuration", "Connecting the plugin"

    USER: Generate {max_expansions} alternative search phrasings.
    Question: "{query}"
    Language: {language}
    Domain: {domain}
    """
)
async def generate_query_variations(query: str, max_expansions: int, language: str, domain: str) -> QueryVariations:
    """This will be implemented by the LLM decorator."""
    pass  # This method is implemented by the decorator


def expand_query_with_synonyms(query: str) -> List[str]:
    """
    Rule-based expansion using the synonym dictionary.

    Args:
        query: The user question

    Returns:
        List[str]: The original query followed by at most four synonym variants
    """
    query_lower = query.lower()
    expansions = [query]

    for term, synonyms in SYNONYMS.items():
        if term not in query_lower:
            continue
        for synonym in synonyms[:QueryExpansionConfig.SYNONYMS_PER_TERM]:
            expanded = query_lower.replace(term, synonym, 1)
            if expanded != query_lower and expanded not in expansions:
                expansions.append(expanded)

    return expansions[:QueryExpansionConfig.MAX_RULE_VARIANTS]


def expansion_cache_key(query: str, language: str, domain: str) -> str:
    return hashlib.md5(f"{query}:{language}:{domain}".encode("utf-8")).hexdigest()


VariationGenerator = Callable[..., Awaitable[QueryVariations]]


class QueryExpander:
    """Produces query variants to search with, caching LLM expansions."""

    def __init__(
        self,
        variation_generator: Optional[VariationGenerator] = None,
        cache: Optional[TTLCache] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the expander.

        Args:
            variation_generator: Async callable returning QueryVariations. Defaults to the
                OpenAI backed generator when an API key is configured
            cache: Cache for LLM expansions
            clock: Time source for the default cache
        """
        if variation_generator is None and OPENAI_API_KEY:
            variation_generator = generate_query_variations
        self.variation_generator = variation_generator
        self.cache = cache if cache is not None else TTLCache(
            QueryExpansionConfig.CACHE_TTL_SECONDS, clock=clock, name="query_expansions"
        )

    def expand_query_with_synonyms(self, query: str) -> List[str]:
        return expand_query_with_synonyms(query)

    async def expand_query_with_ai(
        self,
        query: str,
        max_expansions: int = QueryExpansionConfig.MAX_EXPANSIONS,
        language: str = QueryExpansionConfig.DEFAULT_LANGUAGE,
        domain: str = QueryExpansionConfig.DEFAULT_DOMAIN,
    ) -> List[str]:
        """
        Ask the LLM for reformulations of the query.

        Returns:
            List[str]: The original query followed by the reformulations; just the
            original query when the LLM is unavailable or fails
        """
        key = expansion_cache_key(query, language, domain)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Using cached query expansions")
            return list(cached)

        if self.variation_generator is None:
            logger.warning("No LLM configured for query expansion")
            return [query]

        try:
            variations = await self.variation_generator(
                query=query,
                max_expansions=max_expansions,
                language=language,
                domain=domain,
            )
        except Exception as e:
            logger.error(f"Query expansion failed: {e}")
            return [query]

        result = [query]
        for candidate in variations.queries:
            candidate = candidate.strip()
            if len(candidate) <= 3 or ":" in candidate or candidate in result:
                continue
            result.append(candidate)
            if len(result) > max_expansions:
                break

        self.cache.set(key, result)
        logger.info(f"Expanded query to {len(result)} variations")
        return list(result)

    async def expand_query(
        self,
        query: str,
        use_ai: bool = True,
        max_expansions: int = QueryExpansionConfig.MAX_EXPANSIONS,
        language: str = QueryExpansionConfig.DEFAULT_LANGUAGE,
        domain: str = QueryExpansionConfig.DEFAULT_DOMAIN,
    ) -> List[str]:
        """
        Rule-based expansion, topped up with LLM expansions when enabled and needed.

        Args:
            query: The user question
            use_ai: Allow the LLM step
            max_expansions: Maximum number of variants returned, original included
            language: Language of the variants
            domain: Business domain hint for the LLM

        Returns:
            List[str]: Unique variants with the original query first
        """
        combined = self.expand_query_with_synonyms(query)

        if use_ai and len(combined) < max_expansions:
            ai_expansions = await self.expand_query_with_ai(
                query,
                max_expansions=max_expansions - len(combined),
                language=language,
                domain=domain,
            )
            for expansion in ai_expansions:
                if expansion not in combined:
                    combined.append(expansion)

        return combined[:max_expansions]

    def clean_cache(self) -> int:
        """Remove expired LLM expansions."""
        return self.cache.sweep_expired()
