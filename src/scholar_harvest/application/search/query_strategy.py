"""
Query Strategy Generator - turns a free-text topic into search queries.

Produces an ordered, duplicate-free list of at most five queries, most
specific first:

1. LLM keyword query (sanitized and validated, omitted on any failure)
2. Deterministic keyword extraction (always available, no network)
3. Broad query: the three longest words of the topic
4. The single longest word, when it is longer than four characters
5. The topic verbatim
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from scholar_harvest.core.exceptions import InvalidQueryError

if TYPE_CHECKING:
    from scholar_harvest.infrastructure.llm.client import LLMClient

logger = logging.getLogger(__name__)

MAX_STRATEGIES = 5

STOP_WORDS: frozenset[str] = frozenset(
    {
        "what", "how", "does", "do", "the", "a", "an", "in", "on", "of", "for",
        "to", "from", "with", "by", "actually", "capture", "based", "is", "are",
        "between", "among", "analysis", "study", "investigation", "review",
        "overview", "components", "information", "about", "regarding", "using",
        "via", "and", "or",
    }
)

KEYWORD_PROMPT = (
    'Task: Extract 3-5 distinct academic search keywords from: "{topic}". '
    "Output ONLY the keywords separated by spaces. No explanations. No bullets. English only."
)

REFINE_PROMPT = (
    "Act as a Senior Research Mentor. Refine the following raw topic input into a precise, "
    "academic research title or systematic review question.\n"
    'Input: "{topic}"\n\n'
    "Output ONLY the refined topic string. No explanations."
)

_NON_LATIN = re.compile(r"[^\x00-\x7F\u00C0-\u024F]")
_LABELS = re.compile(r"\b(?:keywords?|search terms?|output|example)\s*:?", re.IGNORECASE)
_PARENTHETICAL = re.compile(r"\([^)]*\)")
_QUOTES = re.compile(r"[\"'`:;]")
_KEYWORD_PUNCTUATION = re.compile(r"[^\w\s-]")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


# =============================================================================
# Pure helpers
# =============================================================================

def sanitize_keywords(raw: str) -> str:
    """Strip non-Latin characters, boilerplate labels, asides and quotes."""
    text = _NON_LATIN.sub(" ", raw)
    text = _LABELS.sub(" ", text)
    text = _PARENTHETICAL.sub(" ", text)
    text = _QUOTES.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def is_valid_keyword_query(query: str) -> bool:
    """At least 5 characters and at least two tokens longer than 2 characters."""
    if len(query) < 5:
        return False
    return sum(1 for token in query.split() if len(token) > 2) >= 2


def basic_keywords(topic: str) -> list[str]:
    """Lowercase, unpunctuated, stop-word-free tokens longer than 2 chars, first occurrence kept."""
    text = _KEYWORD_PUNCTUATION.sub("", topic.lower())
    seen: dict[str, None] = {}
    for token in text.split():
        if len(token) > 2 and token not in STOP_WORDS:
            seen.setdefault(token, None)
    return list(seen)


def basic_keyword_query(topic: str) -> str:
    return " ".join(basic_keywords(topic))


def _words_by_length(topic: str) -> list[str]:
    # sorted() is stable, so equal-length words keep topic order
    return sorted(_PUNCTUATION.sub("", topic).split(), key=len, reverse=True)


def broad_query(topic: str) -> str:
    return " ".join(_words_by_length(topic)[:3])


def longest_word(topic: str) -> str | None:
    words = _words_by_length(topic)
    if words and len(words[0]) > 4:
        return words[0]
    return None


# =============================================================================
# Generator
# =============================================================================

class QueryStrategyGenerator:
    """
    Builds the ordered list of search strategies for a topic.

    Usage:
        generator = QueryStrategyGenerator(llm=None)
        strategies = await generator.generate("Impact of AI on cancer")
        # ["impact cancer", "Impact cancer of", "Impact", "Impact of AI on cancer"]
    """

    def __init__(self, llm: LLMClient | None = None) -> None:
        self._llm = llm

    async def ai_keyword_query(self, topic: str) -> str | None:
        """LLM-extracted keywords, or None when unavailable or unusable."""
        if self._llm is None:
            return None
        try:
            raw = await self._llm.complete(KEYWORD_PROMPT.format(topic=topic))
        except Exception as e:
            logger.warning(f"Keyword extraction via LLM failed, skipping AI strategy: {e}")
            return None

        query = sanitize_keywords(raw or "")
        if not is_valid_keyword_query(query):
            logger.info(f"Discarding unusable AI keyword query: {raw!r}")
            return None
        return query

    async def refine_topic(self, topic: str) -> str:
        """Ask the LLM for a precise academic title; the topic itself on any failure."""
        if self._llm is None:
            return topic
        try:
            refined = await self._llm.complete(REFINE_PROMPT.format(topic=topic))
        except Exception as e:
            logger.warning(f"Topic refinement failed, keeping original topic: {e}")
            return topic
        refined = (refined or "").strip().strip('"').strip()
        return refined or topic

    async def generate(self, topic: str) -> list[str]:
        """Ordered, duplicate-free strategies, most specific first."""
        topic = topic.strip()
        if not topic:
            raise InvalidQueryError(topic)

        candidates = [
            await self.ai_keyword_query(topic),
            basic_keyword_query(topic),
            broad_query(topic),
            longest_word(topic),
            topic,
        ]

        strategies: list[str] = []
        for candidate in candidates:
            if candidate and candidate not in strategies:
                strategies.append(candidate)

        logger.info(f"Generated {len(strategies)} query strategies for '{topic}'")
        return strategies[:MAX_STRATEGIES]
