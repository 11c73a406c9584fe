"""
Failure policy for reasoning-service calls.

Every planner, curator and chat call goes through ResilienceOrchestrator.call, which
walks an ordered provider list one attempt at a time with exponential backoff and an
overall deadline. When every attempt is spent it raises ProvidersExhausted; callers
then fall back locally, and free-text turns end up in degraded_reply, which answers
from the catalog alone.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar

from catalog_client import BEST_SELLING, Candidate
from logger_config import logger, log_error, log_search_query
from response_models import ResponseEnvelope

T = TypeVar("T")

DEGRADED_RESULT_LIMIT = 5

LITE_MODE_GREETING = (
    "Hello! 👋 I'm running in lite mode right now, but I can still find art for you. "
    "Try a room like 'bedroom', a colour like 'blue', or type 'Vastu' for direction-based advice."
)
NOTHING_FOUND_REPLY = "I couldn't find any products right now. Try \"abstract\", \"nature\", or \"blue\"."

GREETING_PATTERNS = [
    re.compile(r"^\s*(hi+|hello+|hey+|helo|hola|namaste|yo|sup)\b", re.IGNORECASE),
    re.compile(r"^\s*(bhai|bro|dude)\b", re.IGNORECASE),
    re.compile(r"\bgood\s+(morning|afternoon|evening)\b", re.IGNORECASE),
]

STOP_WORDS = {
    "a", "an", "and", "any", "are", "can", "could", "do", "for", "find", "from", "get", "give",
    "have", "i", "i'm", "im", "in", "is", "it", "looking", "me", "my", "need", "of", "on", "or",
    "please", "pls", "show", "some", "something", "the", "this", "to", "want", "we", "what",
    "with", "would", "you", "your",
}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_factor: float = 2.0
    deadline_seconds: Optional[float] = 25.0

    def delay_before(self, attempt: int) -> float:
        """Backoff before the given attempt number (attempt 2 waits backoff_base)."""
        if attempt <= 1:
            return 0.0
        return self.backoff_base * (self.backoff_factor ** (attempt - 2))


@dataclass(frozen=True)
class ReasoningProvider:
    name: str
    model: str


class ProvidersExhausted(Exception):
    """Every provider attempt failed or the deadline passed."""

    def __init__(self, label: str, errors: List[str]):
        super().__init__(f"{label}: all reasoning providers exhausted ({len(errors)} failed attempts)")
        self.label = label
        self.errors = errors


def is_greeting(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in GREETING_PATTERNS)


def extract_keywords(text: str, max_words: int = 6) -> str:
    words = re.findall(r"[a-z0-9']+", (text or "").lower())
    keywords = [w for w in words if w not in STOP_WORDS and len(w) > 1]
    return " ".join(keywords[:max_words])


class ResilienceOrchestrator:
    """Runs reasoning calls through the provider list and owns the degraded path."""

    def __init__(self, providers: List[ReasoningProvider], policy: RetryPolicy = RetryPolicy(), catalog=None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep, clock: Callable[[], float] = time.monotonic):
        self.providers = list(providers)
        self.policy = policy
        self.catalog = catalog
        self.sleep = sleep
        self.clock = clock

    @property
    def available(self) -> bool:
        return bool(self.providers)

    async def call(self, operation: Callable[[ReasoningProvider], Awaitable[T]], label: str = "reasoning") -> T:
        """
        Run operation against each provider in order until one attempt succeeds.

        Attempts are strictly sequential. Within a provider, attempt n waits
        delay_before(n) first; the whole call stops once deadline_seconds has passed.
        """
        errors: List[str] = []
        if not self.providers:
            raise ProvidersExhausted(label, errors)

        deadline = None
        if self.policy.deadline_seconds is not None:
            deadline = self.clock() + self.policy.deadline_seconds

        for provider in self.providers:
            for attempt in range(1, self.policy.max_attempts + 1):
                delay = self.policy.delay_before(attempt)
                if deadline is not None and self.clock() + delay >= deadline:
                    logger.warning(f"{label}: deadline reached before {provider.name} attempt {attempt}")
                    raise ProvidersExhausted(label, errors)
                if delay:
                    await self.sleep(delay)

                try:
                    if deadline is None:
                        return await operation(provider)
                    return await asyncio.wait_for(operation(provider), timeout=deadline - self.clock())
                except Exception as e:
                    errors.append(f"{provider.name}#{attempt}: {type(e).__name__}: {e}")
                    logger.warning(f"{label}: {provider.name} ({provider.model}) attempt {attempt}/{self.policy.max_attempts} failed: {e}")

        logger.error(f"{label}: all providers exhausted: {errors}")
        raise ProvidersExhausted(label, errors)

    async def _safe_search(self, query: str, sort_key: Optional[str] = None) -> List[Candidate]:
        if self.catalog is None:
            return []
        try:
            records = await self.catalog.search(query, DEGRADED_RESULT_LIMIT, sort_key=sort_key)
        except Exception as e:
            log_error(e, "degraded mode catalog search", {"query": query, "sort_key": sort_key})
            log_search_query(query, 0, False)
            return []

        candidates = []
        seen = set()
        for record in records:
            candidate = Candidate.from_record(record)
            if candidate.key and candidate.key not in seen:
                seen.add(candidate.key)
                candidates.append(candidate)
        log_search_query(query, len(candidates), True)
        return candidates[:DEGRADED_RESULT_LIMIT]

    async def degraded_reply(self, text: str) -> ResponseEnvelope:
        """Answer without the reasoning service: canned greeting, keyword search, then best sellers."""
        print("⚠️ Reasoning unavailable, answering in lite mode")
        if is_greeting(text):
            return ResponseEnvelope.message(LITE_MODE_GREETING)

        keywords = extract_keywords(text)
        if keywords:
            candidates = await self._safe_search(keywords)
            if candidates:
                return ResponseEnvelope.carousel(f"Here's what I found for \"{keywords}\" ✨", candidates)

        best_sellers = await self._safe_search("", sort_key=BEST_SELLING)
        if best_sellers:
            return ResponseEnvelope.carousel("I couldn't find an exact match, but here are our best sellers: 👇", best_sellers)
        return ResponseEnvelope.message(NOTHING_FOUND_REPLY)
