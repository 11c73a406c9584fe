"""
Curation Module

Asks the reasoning service to pick the final few products from the candidate pool
and explain the choice. A required format (painting or poster) is enforced locally
as well as in the prompt, and any failure falls back to the pool's own order.
"""

import json
from dataclasses import dataclass, field
from typing import List, Optional

from catalog_client import Candidate, PAINTING, POSTER
from groq_utils import ReasoningParseError, extract_json_object
from logger_config import logger, log_detailed_error
from prompts import CURATION_PROMPT, PAINTING_FORMAT_RULE, POSTER_FORMAT_RULE

MAX_SELECTED = 5
CURATION_POOL_CAP = 50

FORMAT_RULES = {
    PAINTING: PAINTING_FORMAT_RULE,
    POSTER: POSTER_FORMAT_RULE,
}


@dataclass(frozen=True)
class CurationResult:
    selected_ids: List[str]
    rationale: str
    candidates: List[Candidate] = field(default_factory=list)
    curated: bool = False


def eligible_candidates(pool, required_format: Optional[str]) -> List[Candidate]:
    """Pool entries in pool order, minus those the required format rules out."""
    return [c for c in pool.values() if not c.excluded_for(required_format)]


def truncation_result(candidates: List[Candidate]) -> CurationResult:
    chosen = candidates[:MAX_SELECTED]
    return CurationResult(selected_ids=[c.key for c in chosen], rationale="", candidates=chosen)


class Curator:
    """Selects and explains the top products for a turn."""

    def __init__(self, reasoning_client, orchestrator):
        self.reasoning_client = reasoning_client
        self.orchestrator = orchestrator

    def _build_prompt(self, candidates: List[Candidate], context: str, required_format: Optional[str]) -> str:
        projections = [c.projection() for c in candidates[:CURATION_POOL_CAP]]
        return CURATION_PROMPT.format(
            context=context or "No extra context.",
            candidates=json.dumps(projections, ensure_ascii=False),
            max_items=MAX_SELECTED,
            format_rule=FORMAT_RULES.get(required_format, ""),
        )

    def _select(self, parsed: dict, by_key: dict) -> Optional[CurationResult]:
        """The model's picks, or None when none of its ids are in the offered pool."""
        raw_ids = parsed.get("selected_ids")
        if not isinstance(raw_ids, list):
            raise ReasoningParseError("selected_ids missing from curation response")

        selected = []
        for raw_id in raw_ids:
            key = str(raw_id)
            # Unknown or excluded ids are dropped without complaint
            if key in by_key and key not in selected:
                selected.append(key)
            if len(selected) == MAX_SELECTED:
                break
        if not selected:
            return None

        rationale = parsed.get("rationale") if isinstance(parsed.get("rationale"), str) else ""
        return CurationResult(
            selected_ids=selected,
            rationale=rationale.strip(),
            candidates=[by_key[key] for key in selected],
            curated=True,
        )

    async def curate(self, pool, context: str, required_format: Optional[str] = None) -> CurationResult:
        """
        Pick up to five products from the pool.

        Falls back to the first five eligible pool entries, with an empty rationale,
        when the reasoning service is unavailable, fails, or answers unusably.
        """
        candidates = eligible_candidates(pool, required_format)
        if not candidates:
            return CurationResult(selected_ids=[], rationale="")
        if self.reasoning_client is None or not self.orchestrator.available:
            return truncation_result(candidates)

        offered = candidates[:CURATION_POOL_CAP]
        by_key = {c.key: c for c in offered}
        prompt = self._build_prompt(offered, context, required_format)

        async def select_products(provider) -> Optional[CurationResult]:
            raw = await self.reasoning_client.generate(prompt, model=provider.model)
            return self._select(extract_json_object(raw), by_key)

        try:
            result = await self.orchestrator.call(select_products, label="curation")
        except Exception as e:
            log_detailed_error(
                e,
                context="Curator.curate",
                local_vars={
                    "pool_size": len(pool),
                    "eligible": len(candidates),
                    "required_format": required_format,
                }
            )
            return truncation_result(candidates)

        if result is None:
            logger.warning(f"Curation picked no known products out of {len(offered)}, keeping pool order")
            return truncation_result(candidates)

        logger.info(f"Curated {len(result.selected_ids)}/{len(candidates)} products: {result.selected_ids}")
        return result
