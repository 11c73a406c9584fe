"""
Turns a customer request into a small batch of catalog search strings.

Three sources, one per turn: the Vastu direction table, the reasoning service
(text or room photo), or the customer's own words when the reasoning service is
not available. Breadth lives here; the strict format filter runs later in the
curator so that a narrow query cannot starve the candidate pool.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from catalog_client import PAINTING, POSTER
from groq_utils import ReasoningParseError, extract_json_object
from logger_config import logger, log_error
from prompts import QUERY_PLANNING_PROMPT, IMAGE_QUERY_PLANNING_PROMPT

MAX_QUERIES = 6
SAFE_QUERY = "Modern Art"
APOLOGY_CRITIQUE = "Sorry, I couldn't study your request in detail just now, so I picked some popular modern pieces."

SOURCE_RULES = "rules"
SOURCE_REASONING = "reasoning"
SOURCE_IDENTITY = "identity"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class DirectionRule:
    recommendation: str
    keywords: Tuple[str, ...]
    summary: str


DIRECTION_RULES = {
    "North": DirectionRule(
        "North represents Water and Wealth. Use Blue colors, Flowing Water, or Kuber Yantras.",
        ("Water", "Blue", "Waterfall"),
        "Water / Wealth / Career",
    ),
    "South": DirectionRule(
        "South is Fire and Fame. Use Red, Phoenix, or Running Horses for recognition.",
        ("Red", "Fire", "Horses"),
        "Fire / Fame / Success",
    ),
    "East": DirectionRule(
        "East is Air and Social Connections. Use Greenery, Rising Sun, or Plants.",
        ("Green", "Sun", "Forest"),
        "Nature / Health / Family",
    ),
    "West": DirectionRule(
        "West is Gains. Use White, Gold, or Camel art.",
        ("White", "Gold", "Metal"),
        "Mountains / Creativity / Children",
    ),
    "North-East": DirectionRule(
        "The most sacred corner. Use Spiritual art, Meditating Shiva, or Om.",
        ("Shiva", "Spiritual", "Om"),
        "Spiritual / Sacred Corner",
    ),
}
DEFAULT_DIRECTION = "North"

DIRECTION_PATTERNS = [
    ("North-East", re.compile(r"\bnorth[\s-]?east\b|\bne\b|\bishan", re.IGNORECASE)),
    ("North", re.compile(r"\bnorth\b", re.IGNORECASE)),
    ("South", re.compile(r"\bsouth\b", re.IGNORECASE)),
    ("East", re.compile(r"\beast\b", re.IGNORECASE)),
    ("West", re.compile(r"\bwest\b", re.IGNORECASE)),
]

FORMAT_WORDS = {
    "poster": POSTER, "posters": POSTER, "print": POSTER, "prints": POSTER,
    "painting": PAINTING, "paintings": PAINTING, "canvas": PAINTING, "original": PAINTING,
}

FORMAT_HINTS = {
    PAINTING: "Required format: it must be an original painting or canvas, not a poster or print.",
    POSTER: "Required format: it must be a poster or print, not a canvas or original.",
}


@dataclass(frozen=True)
class QueryPlan:
    queries: Tuple[str, ...]
    critique: str
    source: str
    required_format: Optional[str] = None


def find_direction(text: str) -> Optional[str]:
    """Direction named in the text, North-East taking precedence over North and East."""
    for direction, pattern in DIRECTION_PATTERNS:
        if pattern.search(text or ""):
            return direction
    return None


def resolve_direction(direction: str) -> str:
    """Canonical direction name; anything unrecognised means North."""
    if direction in DIRECTION_RULES:
        return direction
    return find_direction(direction) or DEFAULT_DIRECTION


def direction_tag(direction: str) -> str:
    return f"Vastu-{direction}"


def detect_required_format(text: str) -> Optional[str]:
    for word in re.findall(r"[a-z]+", (text or "").lower()):
        if word in FORMAT_WORDS:
            return FORMAT_WORDS[word]
    return None


def clean_queries(raw_queries) -> List[str]:
    if isinstance(raw_queries, str):
        raw_queries = [raw_queries]
    if not isinstance(raw_queries, list):
        return []
    queries = []
    seen = set()
    for query in raw_queries:
        if not isinstance(query, str):
            continue
        query = " ".join(query.split())
        if query and query.lower() not in seen:
            seen.add(query.lower())
            queries.append(query)
    return queries[:MAX_QUERIES]


class QueryPlanner:
    """Builds the search batch for one turn."""

    def __init__(self, reasoning_client, orchestrator, vision_orchestrator=None):
        self.reasoning_client = reasoning_client
        self.orchestrator = orchestrator
        self.vision_orchestrator = vision_orchestrator or orchestrator

    def plan_direction(self, direction: str) -> QueryPlan:
        """Rule-table plan for a Vastu direction; unknown directions use North."""
        direction = resolve_direction(direction)
        rule = DIRECTION_RULES[direction]
        queries = [f"tag:{direction_tag(direction)}"] + list(rule.keywords)
        return QueryPlan(tuple(queries[:MAX_QUERIES]), rule.recommendation, SOURCE_RULES)

    def build_context(self, context: str, prior_entities=None, required_format: Optional[str] = None) -> str:
        parts = [context.strip() or "The customer shared no text."]
        if prior_entities is not None and prior_entities.any():
            parts.append(f"Detected preferences: {', '.join(prior_entities.as_terms())}")
        if required_format in FORMAT_HINTS:
            parts.append(FORMAT_HINTS[required_format])
        return "\n".join(parts)

    async def plan(self, context: str, image: Optional[bytes] = None, prior_entities=None,
                   required_format: Optional[str] = None, identity_queries: Optional[List[str]] = None) -> QueryPlan:
        """
        Ask the reasoning service for 1-6 broad search terms. Never raises.

        identity_queries replaces the raw text as the plan when the reasoning service
        is not configured at all.
        """
        orchestrator = self.vision_orchestrator if image else self.orchestrator
        if self.reasoning_client is None or not orchestrator.available:
            queries = clean_queries(identity_queries or [context]) or [SAFE_QUERY]
            return QueryPlan(tuple(queries), "", SOURCE_IDENTITY, required_format)

        full_context = self.build_context(context, prior_entities, required_format)
        template = IMAGE_QUERY_PLANNING_PROMPT if image else QUERY_PLANNING_PROMPT
        prompt = template.format(context=full_context)

        async def generate_plan(provider) -> QueryPlan:
            raw = await self.reasoning_client.generate(prompt, image=image, model=provider.model)
            parsed = extract_json_object(raw)
            queries = clean_queries(parsed.get("queries"))
            if not queries:
                raise ReasoningParseError("Plan contained no queries")
            critique = parsed.get("critique") if isinstance(parsed.get("critique"), str) else ""
            return QueryPlan(tuple(queries), critique.strip(), SOURCE_REASONING, required_format)

        try:
            plan = await orchestrator.call(generate_plan, label="query planning")
        except Exception as e:
            log_error(e, "QueryPlanner.plan", {"context": context[:200], "has_image": bool(image)})
            return QueryPlan((SAFE_QUERY,), APOLOGY_CRITIQUE, SOURCE_FALLBACK, required_format)

        logger.info(f"Planned queries: {plan.queries}")
        return plan
