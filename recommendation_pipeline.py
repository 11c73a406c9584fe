"""
Recommendation pipeline for the storefront chat widget.

One call per chat turn: route the turn (photo, flow button, or free text), plan the
searches, gather candidates, curate, and shape a ResponseEnvelope. The pipeline keeps
no state between turns; the flow token inside the buttons is the only memory.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from config import (
    STORE_NAME, REASONING_KEY_SETTING, REASONING_MODELS, VISION_MODELS,
    REASONING_MAX_ATTEMPTS, REASONING_BACKOFF_BASE, REASONING_DEADLINE_SECONDS,
)
from catalog_client import PAINTING, POSTER
from candidate_aggregator import CandidateAggregator
from clients import get_groq_client
from curator import Curator
from flow_state import (
    ANY_ANSWER, MAIN_MENU, START, FlowState, advance, decode, is_terminal, match_choice, render,
)
from groq_utils import ReasoningClient, ReasoningParseError, extract_json_object
from image_utils import image_processor
from intent_classifier import CHAT, SEARCH, classify
from logger_config import logger, log_detailed_error, log_error, log_user_interaction
from prompts import ART_CONSULTANT_CHAT_PROMPT
from query_planner import (
    DEFAULT_DIRECTION, SOURCE_FALLBACK, SOURCE_REASONING, QueryPlan, QueryPlanner,
    detect_required_format, find_direction, resolve_direction,
)
from resilience import ReasoningProvider, ResilienceOrchestrator, RetryPolicy, extract_keywords
from response_models import ActionButton, ResponseEnvelope

HELP_REPLY = "I can help you find art. Try asking for 'Vastu' or 'Bedroom' advice, or pick one of these:"
RESTART_REPLY = "Let's start fresh! 🎨 How would you like to find your art?"
APOLOGY_REPLY = "Sorry, I ran into a problem on my side. Please try again in a moment, or pick one of these:"
NO_RESULTS_REPLY = "I couldn't find any items matching \"{label}\" in our current collection. Could we try a broader theme like {suggestions}?"
MATCHES_REPLY = "Here are some beautiful matches for **{label}** that I think you'll love! ✨"
BROAD_THEMES = ("Abstract", "Nature", "Modern", "Spiritual")

PRICE_PATTERN = re.compile(r"(\d[\d,]*(?:\.\d+)?)(?:\s*(k|thousand|lakhs?|lacs?|l)\b)?", re.IGNORECASE)
PRICE_MULTIPLIERS = {"k": 1_000, "thousand": 1_000, "lakh": 100_000, "lakhs": 100_000, "lac": 100_000, "lacs": 100_000, "l": 100_000}

FLOW_TRIGGERS = [
    ("GUIDE", re.compile(r"\b(help|choose|guide)\b")),
    ("CUSTOM", re.compile(r"\bcustom\b")),
    ("VISUAL", re.compile(r"\b(visual|photo|upload)\b")),
]

# Flow answers that shape filtering rather than the search terms
NON_QUERY_STEPS = {"SIZE", "BUDGET", "TYPE"}
CONSULT_ACTIONS = {"chat", "search", "vastu"}


@dataclass(frozen=True)
class UserTurn:
    raw_text: str = ""
    image: Optional[bytes] = None
    flow_token: Optional[str] = None
    image_filename: Optional[str] = None


@dataclass
class TurnServices:
    """Per-turn wiring, built from whatever reasoning credential is configured right now."""
    reasoning: Optional[ReasoningClient]
    orchestrator: ResilienceOrchestrator
    planner: QueryPlanner
    aggregator: CandidateAggregator
    curator: Curator

    @property
    def available(self) -> bool:
        return self.reasoning is not None and self.orchestrator.available


def default_reasoning_factory(api_key: str) -> Optional[ReasoningClient]:
    groq_client = get_groq_client(api_key)
    return ReasoningClient(groq_client) if groq_client else None


def _menu_buttons() -> List[ActionButton]:
    return [ActionButton(label=label, payload=payload) for label, payload in MAIN_MENU]


def _parse_price(value) -> Optional[float]:
    """
    Maximum price from a budget answer such as "5000", "under ₹5,000", "5k",
    "2.5 lakh" or "1,000-2,000" (a range means its upper end).

    Returns None, meaning no limit, when no amount can be read.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if value > 0 else None

    amounts = []
    for number, unit in PRICE_PATTERN.findall(str(value or "")):
        try:
            amount = float(number.replace(",", ""))
        except ValueError:
            continue
        amounts.append(amount * PRICE_MULTIPLIERS.get(unit.lower(), 1))
    price = max(amounts, default=0)
    return price if price > 0 else None


def _no_results_reply(label: str) -> str:
    searched = (label or "").lower()
    suggestions = [theme for theme in BROAD_THEMES if theme.lower() not in searched][:2]
    return NO_RESULTS_REPLY.format(label=label, suggestions=" or ".join(f"\"{s}\"" for s in suggestions))


class RecommendationPipeline:
    """Entry point: UserTurn in, ResponseEnvelope out, never an exception."""

    def __init__(self, catalog, settings_store=None, interaction_log=None,
                 reasoning_factory: Callable[[str], Optional[ReasoningClient]] = default_reasoning_factory,
                 policy: Optional[RetryPolicy] = None, text_models: List[str] = None, vision_models: List[str] = None,
                 sleep=asyncio.sleep):
        self.catalog = catalog
        self.settings_store = settings_store
        self.interaction_log = interaction_log
        self.reasoning_factory = reasoning_factory
        self.policy = policy or RetryPolicy(
            max_attempts=REASONING_MAX_ATTEMPTS,
            backoff_base=REASONING_BACKOFF_BASE,
            deadline_seconds=REASONING_DEADLINE_SECONDS,
        )
        self.text_models = text_models if text_models is not None else REASONING_MODELS
        self.vision_models = vision_models if vision_models is not None else VISION_MODELS
        self.sleep = sleep

    async def _services(self) -> TurnServices:
        api_key = await self.settings_store.get(REASONING_KEY_SETTING) if self.settings_store else None
        reasoning = self.reasoning_factory(api_key) if api_key else None
        if reasoning is None:
            logger.info("No reasoning credential configured, reasoning calls disabled for this turn")

        def orchestrator_for(models: List[str]) -> ResilienceOrchestrator:
            providers = [ReasoningProvider(f"groq:{m}", m) for m in models] if reasoning else []
            return ResilienceOrchestrator(providers, self.policy, catalog=self.catalog, sleep=self.sleep)

        orchestrator = orchestrator_for(self.text_models)
        vision_orchestrator = orchestrator_for(self.vision_models)
        return TurnServices(
            reasoning=reasoning,
            orchestrator=orchestrator,
            planner=QueryPlanner(reasoning, orchestrator, vision_orchestrator),
            aggregator=CandidateAggregator(self.catalog),
            curator=Curator(reasoning, orchestrator),
        )

    async def handle_turn(self, turn: UserTurn) -> ResponseEnvelope:
        try:
            services = await self._services()
            envelope = await self._route(turn, services)
        except Exception as e:
            log_detailed_error(
                e,
                context="RecommendationPipeline.handle_turn",
                local_vars={
                    "raw_text": turn.raw_text,
                    "flow_token": turn.flow_token,
                    "has_image": bool(turn.image),
                }
            )
            envelope = ResponseEnvelope.actions(APOLOGY_REPLY, _menu_buttons())

        turn_kind = "image" if turn.image else ("flow" if turn.flow_token else "text")
        log_user_interaction(turn_kind, turn.raw_text, envelope.reply_text, envelope.presentation.value)
        return envelope

    async def _route(self, turn: UserTurn, services: TurnServices) -> ResponseEnvelope:
        if turn.image:
            return await self._handle_image(turn, services)

        answer = turn.raw_text or ""
        state = decode(turn.flow_token) if turn.flow_token else None
        if state is None:
            # Buttons may post their payload as the message text
            state = decode(answer)
            if state is not None:
                answer = ""
        if state is not None:
            return await self._handle_flow(state, answer, services)
        return await self._handle_text(answer, services)

    # --- Flows ---

    def _flow_prompt(self, state: FlowState, reply_text: Optional[str] = None) -> ResponseEnvelope:
        outcome = render(state)
        buttons = [ActionButton(label=label, payload=payload) for label, payload in outcome.prompt.buttons]
        return ResponseEnvelope.actions(reply_text or outcome.prompt.text, buttons)

    async def _handle_flow(self, state: FlowState, answer: str, services: TurnServices) -> ResponseEnvelope:
        if state.is_unknown:
            logger.info(f"Unknown flow state {state}, restarting")
            return ResponseEnvelope.actions(RESTART_REPLY, _menu_buttons())

        if answer.strip() and not is_terminal(state):
            outcome = advance(state, match_choice(state, answer))
        else:
            outcome = render(state)

        if not outcome.terminal:
            buttons = [ActionButton(label=label, payload=payload) for label, payload in outcome.prompt.buttons]
            return ResponseEnvelope.actions(outcome.prompt.text, buttons)
        return await self._run_flow_search(decode(outcome.token), services)

    async def _run_flow_search(self, state: FlowState, services: TurnServices) -> ResponseEnvelope:
        answers = state.answers()
        if state.flow_name == "VASTU":
            return await self._directional_search(answers.get("DIRECTION", DEFAULT_DIRECTION), services)

        chosen_type = answers.get("TYPE")
        required_format = chosen_type if chosen_type in (PAINTING, POSTER) else None
        max_price = _parse_price(answers.get("BUDGET"))
        terms = [value for step, value in answers.items() if step not in NON_QUERY_STEPS and value != ANY_ANSWER]
        context = "; ".join(f"{step.lower().replace('_', ' ')}: {value}" for step, value in answers.items())

        plan = await services.planner.plan(context, required_format=required_format, identity_queries=terms)
        return await self._search_and_curate(
            plan, context, services,
            label=" ".join(terms) or "your picks",
            max_price=max_price,
            preface=plan.critique if plan.source == SOURCE_FALLBACK else None,
        )

    async def _directional_search(self, direction: str, services: TurnServices) -> ResponseEnvelope:
        direction = resolve_direction(direction)
        plan = services.planner.plan_direction(direction)
        if self.interaction_log is not None:
            await self.interaction_log.record_direction(direction)

        insight = f"**Vastu Insight for {direction}:** {plan.critique}"
        return await self._search_and_curate(
            plan,
            f"Vastu art for a {direction}-facing wall. {plan.critique}",
            services,
            label=f"Vastu {direction}",
            preface=insight,
            success_line="Based on this, I've selected these auspicious pieces for you: 👇",
        )

    # --- Search ---

    async def _search_and_curate(self, plan: QueryPlan, context: str, services: TurnServices, label: str,
                                 max_price: Optional[float] = None, preface: Optional[str] = None,
                                 success_line: Optional[str] = None) -> ResponseEnvelope:
        pool = await services.aggregator.aggregate(list(plan.queries), max_price=max_price)
        result = await services.curator.curate(pool, context, plan.required_format)

        if not result.candidates:
            reply = _no_results_reply(label)
            return ResponseEnvelope.message(f"{preface}\n\n{reply}" if preface else reply)

        parts = [preface] if preface else []
        parts.append(success_line or MATCHES_REPLY.format(label=label))
        if result.rationale:
            parts.append(result.rationale)
        return ResponseEnvelope.carousel("\n\n".join(parts), result.candidates)

    async def _handle_image(self, turn: UserTurn, services: TurnServices) -> ResponseEnvelope:
        if self.interaction_log is not None:
            await self.interaction_log.record_image(
                len(turn.image), turn.image_filename, image_processor.detect_mime_type(turn.image)
            )

        note = (turn.raw_text or "").strip()
        plan = await services.planner.plan(note, image=turn.image, required_format=detect_required_format(note))
        preface = "That looks like a beautiful room!"
        if plan.critique:
            preface = f"{preface} {plan.critique}"
        return await self._search_and_curate(
            plan, note or "Art that suits the customer's room photo", services,
            label=note or "your room",
            preface=preface,
            success_line="Based on what I can see, I recommend these pieces: 👇",
        )

    # --- Free text ---

    async def _handle_text(self, text: str, services: TurnServices) -> ResponseEnvelope:
        text = text.strip()
        if not text:
            return ResponseEnvelope.actions(HELP_REPLY, _menu_buttons())

        lowered = text.lower()
        if "vastu" in lowered:
            direction = find_direction(text)
            if direction:
                return await self._directional_search(direction, services)
            return self._flow_prompt(FlowState("VASTU", START))

        for flow_name, pattern in FLOW_TRIGGERS:
            if pattern.search(lowered):
                return self._flow_prompt(FlowState(flow_name, START))

        if not services.available:
            return await services.orchestrator.degraded_reply(text)

        intent = classify(text)
        logger.info(f"Local intent: {intent.intent} ({intent.confidence})")
        if intent.intent == CHAT:
            return ResponseEnvelope.message(intent.reply)
        if intent.intent == SEARCH:
            required_format = detect_required_format(text)
            plan = await services.planner.plan(text, prior_entities=intent.entities, required_format=required_format)
            return await self._search_and_curate(
                plan, text, services,
                label=text,
                preface=plan.critique if plan.source == SOURCE_FALLBACK else None,
            )
        return await self._consult(text, services)

    async def _consult(self, text: str, services: TurnServices) -> ResponseEnvelope:
        """Free-form consultation; the model picks chat, search or vastu like a tool call."""
        prompt = ART_CONSULTANT_CHAT_PROMPT.format(store_name=STORE_NAME, message=text)

        async def consult(provider) -> dict:
            raw = await services.reasoning.generate(prompt, model=provider.model)
            decision = extract_json_object(raw)
            if decision.get("action") not in CONSULT_ACTIONS:
                raise ReasoningParseError(f"Unknown action {decision.get('action')!r}")
            if decision["action"] == "chat" and not isinstance(decision.get("reply"), str):
                raise ReasoningParseError("Chat action without reply")
            return decision

        try:
            decision = await services.orchestrator.call(consult, label="consultation")
        except Exception as e:
            log_error(e, "RecommendationPipeline._consult", {"text": text[:200]})
            return await services.orchestrator.degraded_reply(text)

        reply = decision.get("reply") if isinstance(decision.get("reply"), str) else ""
        if decision["action"] == "vastu":
            direction = find_direction(str(decision.get("direction") or "")) or find_direction(text)
            if direction is None:
                return self._flow_prompt(FlowState("VASTU", START), reply_text=reply or None)
            return await self._directional_search(direction, services)

        if decision["action"] == "search":
            query = " ".join(str(decision.get("query") or "").split()) or extract_keywords(text) or text
            plan = QueryPlan((query,), "", SOURCE_REASONING, detect_required_format(text))
            return await self._search_and_curate(
                plan, text, services,
                label=query,
                max_price=_parse_price(decision.get("max_price")),
            )

        return ResponseEnvelope.message(reply.strip() or HELP_REPLY)
