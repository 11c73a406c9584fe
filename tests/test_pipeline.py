"""
End-to-end chat turns through RecommendationPipeline with in-memory catalog, Redis and reasoning.
"""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from config import REASONING_KEY_SETTING
from conftest import FakeCatalog, FakeReasoning, FakeRedis, scripted_responder
from flow_state import MAIN_MENU
from interaction_log import DIRECTION_COUNTS_KEY, IMAGE_UPLOADS_KEY, InteractionLog
from intent_classifier import REPLY_TEMPLATES
from query_planner import DIRECTION_RULES
from recommendation_pipeline import (
    APOLOGY_REPLY, HELP_REPLY, RESTART_REPLY, RecommendationPipeline, UserTurn, _no_results_reply, _parse_price,
)
from resilience import LITE_MODE_GREETING, RetryPolicy
from response_models import Presentation
from settings_store import SettingsStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def make_pipeline(catalog, reasoning=None, redis=None, default_key="env-key", seen_keys=None):
    redis = redis or FakeRedis()

    def factory(api_key):
        if seen_keys is not None:
            seen_keys.append(api_key)
        return reasoning

    return RecommendationPipeline(
        catalog,
        settings_store=SettingsStore(redis, defaults={REASONING_KEY_SETTING: default_key}),
        interaction_log=InteractionLog(redis),
        reasoning_factory=factory,
        policy=RetryPolicy(max_attempts=2, deadline_seconds=None),
        text_models=["fast-model"],
        vision_models=["vision-model"],
        sleep=AsyncMock(),
    )


def item_ids(envelope):
    return [item.id for item in envelope.items]


class TestScenarios:

    @pytest.mark.asyncio
    async def test_vastu_without_direction_shows_direction_menu(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(raw_text="vastu"))

        assert envelope.presentation == Presentation.ACTION_BUTTONS
        assert [item.label for item in envelope.items] == ["North", "South", "East", "West", "North-East"]
        assert catalog.calls == []

    @pytest.mark.asyncio
    async def test_direction_answer_returns_recommendation_and_carousel(self, catalog):
        redis = FakeRedis()
        pipeline = make_pipeline(catalog, redis=redis)
        envelope = await pipeline.handle_turn(UserTurn(raw_text="north", flow_token="VASTU:START:"))

        assert DIRECTION_RULES["North"].recommendation in envelope.reply_text
        assert envelope.presentation == Presentation.CAROUSEL
        assert item_ids(envelope)[0] == "p1"
        assert catalog.calls[0][0] == "tag:Vastu-North"
        assert redis.hashes[DIRECTION_COUNTS_KEY] == {"North": "1"}

    @pytest.mark.asyncio
    async def test_greeting_without_reasoning_gets_lite_mode(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(raw_text="hi"))

        assert envelope.reply_text == LITE_MODE_GREETING
        assert envelope.presentation == Presentation.NONE
        assert envelope.items == []

    @pytest.mark.asyncio
    async def test_empty_catalog_without_reasoning(self):
        envelope = await make_pipeline(FakeCatalog([])).handle_turn(UserTurn(raw_text="blue bedroom art"))

        assert "couldn't find" in envelope.reply_text
        assert envelope.presentation == Presentation.NONE

    @pytest.mark.asyncio
    async def test_empty_catalog_with_reasoning(self):
        reasoning = FakeReasoning(scripted_responder(plan={"queries": ["blue", "bedroom"], "critique": "Calm."}))
        envelope = await make_pipeline(FakeCatalog([]), reasoning).handle_turn(UserTurn(raw_text="blue bedroom art"))

        assert "couldn't find any items matching" in envelope.reply_text
        assert envelope.presentation == Presentation.NONE
        assert envelope.items == []
        # nothing to curate, so only the planner was asked
        assert len(reasoning.calls) == 1


class TestFlows:

    @pytest.mark.asyncio
    async def test_button_payload_sent_as_text(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(raw_text="VASTU:SEARCH:East"))

        assert envelope.presentation == Presentation.CAROUSEL
        assert item_ids(envelope)[0] == "p3"
        assert DIRECTION_RULES["East"].recommendation in envelope.reply_text

    @pytest.mark.asyncio
    async def test_free_text_vastu_with_direction(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(raw_text="vastu art for my north east wall"))

        assert DIRECTION_RULES["North-East"].recommendation in envelope.reply_text
        assert item_ids(envelope)[0] == "p5"

    @pytest.mark.asyncio
    async def test_unknown_token_restarts(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(flow_token="VASTU:SEARCH:"))

        assert envelope.reply_text == RESTART_REPLY
        assert [(i.label, i.payload) for i in envelope.items] == list(MAIN_MENU)

    @pytest.mark.asyncio
    async def test_guide_trigger_starts_flow(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(raw_text="please help me choose"))

        assert envelope.presentation == Presentation.ACTION_BUTTONS
        assert envelope.items[0].payload == "GUIDE:SHOW:Peaceful"

    @pytest.mark.asyncio
    async def test_custom_flow_applies_budget_and_format(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(
            UserTurn(flow_token="CUSTOM:TYPE:Large|Abstract|1000", raw_text="Poster / Print")
        )

        assert envelope.presentation == Presentation.CAROUSEL
        assert item_ids(envelope) == ["p6", "p8"]

    @pytest.mark.asyncio
    async def test_flow_step_without_answer_repeats_question(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(flow_token="CUSTOM:BUDGET:Large|Abstract"))

        assert envelope.presentation == Presentation.ACTION_BUTTONS
        assert envelope.items[-1].payload == "CUSTOM:TYPE:Large|Abstract|any"

    @pytest.mark.asyncio
    async def test_shorthand_budget_caps_price(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(
            UserTurn(flow_token="CUSTOM:TYPE:Large|Abstract|5k", raw_text="Either is fine")
        )

        assert envelope.presentation == Presentation.CAROUSEL
        assert item_ids(envelope)[:3] == ["p6", "p7", "p10"]
        # p2 and p5 cost more than 5,000
        assert not {"p2", "p5"} & set(item_ids(envelope))

    @pytest.mark.asyncio
    async def test_separator_only_answer_continues_flow(self, catalog):
        pipeline = make_pipeline(catalog)
        envelope = await pipeline.handle_turn(UserTurn(flow_token="CUSTOM:SIZE:", raw_text="|"))

        payloads = {item.label: item.payload for item in envelope.items}
        assert payloads["Abstract"] == "CUSTOM:BUDGET:any|Abstract"

        envelope = await pipeline.handle_turn(UserTurn(flow_token=payloads["Abstract"]))
        assert envelope.reply_text != RESTART_REPLY
        assert envelope.presentation == Presentation.ACTION_BUTTONS
        assert envelope.items[0].payload == "CUSTOM:TYPE:any|Abstract|2500"


class TestFreeText:

    @pytest.mark.asyncio
    async def test_empty_text_gets_help_menu(self, catalog):
        envelope = await make_pipeline(catalog).handle_turn(UserTurn(raw_text="   "))

        assert envelope.reply_text == HELP_REPLY
        assert envelope.presentation == Presentation.ACTION_BUTTONS

    @pytest.mark.asyncio
    async def test_small_talk_uses_local_reply(self, catalog):
        reasoning = FakeReasoning()
        envelope = await make_pipeline(catalog, reasoning).handle_turn(UserTurn(raw_text="thanks"))

        assert envelope.reply_text == REPLY_TEMPLATES["grateful"]
        assert reasoning.calls == []

    @pytest.mark.asyncio
    async def test_search_is_planned_and_curated(self, catalog):
        reasoning = FakeReasoning(scripted_responder(
            plan={"queries": ["abstract", "blue"], "critique": "Bold blues."},
            curation={"selected_ids": ["p7", "p6"], "rationale": "Bold and calm together."},
        ))
        envelope = await make_pipeline(catalog, reasoning).handle_turn(UserTurn(raw_text="blue abstract art"))

        assert envelope.presentation == Presentation.CAROUSEL
        assert item_ids(envelope) == ["p7", "p6"]
        assert "Bold and calm together." in envelope.reply_text

    @pytest.mark.asyncio
    async def test_consultation_chat(self, catalog):
        reasoning = FakeReasoning(scripted_responder(
            consult={"action": "chat", "reply": "Congratulations on the new home! Which room first?"},
        ))
        envelope = await make_pipeline(catalog, reasoning).handle_turn(UserTurn(raw_text="i just moved into a new flat"))

        assert envelope.reply_text == "Congratulations on the new home! Which room first?"
        assert envelope.presentation == Presentation.NONE

    @pytest.mark.asyncio
    async def test_consultation_search(self, catalog):
        reasoning = FakeReasoning(scripted_responder(
            consult={"action": "search", "reply": "", "query": "horses", "max_price": None},
        ))
        envelope = await make_pipeline(catalog, reasoning).handle_turn(UserTurn(raw_text="i just moved into a new flat"))

        assert envelope.presentation == Presentation.CAROUSEL
        assert item_ids(envelope)[0] == "p2"

    @pytest.mark.asyncio
    async def test_consultation_failure_degrades(self, catalog):
        reasoning = FakeReasoning(scripted_responder())
        envelope = await make_pipeline(catalog, reasoning).handle_turn(UserTurn(raw_text="i just moved into a new flat"))

        assert envelope.presentation == Presentation.CAROUSEL
        assert "best sellers" in envelope.reply_text

    @pytest.mark.asyncio
    async def test_stored_key_overrides_environment(self, catalog):
        redis = FakeRedis()
        await redis.hset("app_settings", REASONING_KEY_SETTING, "stored-key")
        seen_keys = []
        await make_pipeline(catalog, redis=redis, seen_keys=seen_keys).handle_turn(UserTurn(raw_text="hi"))

        assert seen_keys == ["stored-key"]


class TestImagesAndFailures:

    @pytest.mark.asyncio
    async def test_image_turn_uses_vision_model(self, catalog):
        redis = FakeRedis()
        reasoning = FakeReasoning(scripted_responder(
            plan={"queries": ["nature", "green"], "critique": "Warm wood and plants."},
            curation={"selected_ids": ["p9"], "rationale": "Echoes your plants."},
        ))
        envelope = await make_pipeline(catalog, reasoning, redis=redis).handle_turn(
            UserTurn(image=PNG_BYTES, image_filename="room.png")
        )

        assert item_ids(envelope) == ["p9"]
        assert "Warm wood and plants." in envelope.reply_text
        prompt, image, model = reasoning.calls[0]
        assert image == PNG_BYTES
        assert model == "vision-model"
        record = json.loads(redis.lists[IMAGE_UPLOADS_KEY][0])
        assert record["mime_type"] == "image/png"
        assert record["size_bytes"] == len(PNG_BYTES)

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_apology(self, catalog):
        settings_store = Mock()
        settings_store.get = AsyncMock(side_effect=RuntimeError("redis exploded"))
        pipeline = RecommendationPipeline(catalog, settings_store=settings_store)

        envelope = await pipeline.handle_turn(UserTurn(raw_text="blue art"))

        assert envelope.reply_text == APOLOGY_REPLY
        assert envelope.presentation == Presentation.ACTION_BUTTONS


class TestReplyHelpers:

    @pytest.mark.parametrize("budget,expected", [
        ("5000", 5000.0),
        ("under ₹5,000", 5000.0),
        ("5k", 5000.0),
        ("2.5 lakh", 250000.0),
        ("1,000-2,000", 2000.0),
        ("5000rs", 5000.0),
        (1500, 1500.0),
        ("any", None),
        ("", None),
        (0, None),
    ])
    def test_parse_price(self, budget, expected):
        assert _parse_price(budget) == expected

    def test_no_results_never_suggests_the_searched_theme(self):
        reply = _no_results_reply("Abstract")
        assert reply.count("Abstract") == 1
        assert '"Nature" or "Modern"' in reply

    def test_no_results_default_suggestions(self):
        assert '"Abstract" or "Nature"' in _no_results_reply("blue bedroom art")
