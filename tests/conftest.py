"""
Shared fixtures: in-memory catalog, scripted reasoning client, and a tiny Redis stand-in.
"""

import json
from unittest.mock import AsyncMock

import pytest

from catalog_client import CatalogServiceError
from groq_utils import ReasoningServiceError
from resilience import ReasoningProvider, ResilienceOrchestrator, RetryPolicy


def make_record(item_id, title, price=1500, tags=(), product_type="", description=""):
    handle = title.lower().replace(" ", "-")
    return {
        "id": item_id,
        "handle": handle,
        "title": title,
        "price": price,
        "currency": "INR",
        "image": f"https://cdn.example.com/{handle}.jpg",
        "url": f"/products/{handle}",
        "tags": list(tags),
        "type": product_type,
        "description": description,
    }


ART_RECORDS = [
    make_record("p1", "Blue Waterfall Canvas", 4200, ["Vastu-North", "Water", "Blue"], "Canvas"),
    make_record("p2", "Seven Running Horses", 6500, ["Vastu-South", "Horses", "Red"], "Painting"),
    make_record("p3", "Rising Sun Forest", 3100, ["Vastu-East", "Green", "Sun"], "Canvas"),
    make_record("p4", "Golden Mountains", 2800, ["Vastu-West", "Gold"], "Canvas"),
    make_record("p5", "Meditating Shiva", 5200, ["Vastu-North-East", "Spiritual", "Shiva"], "Painting"),
    make_record("p6", "Abstract Blue Waves Poster", 900, ["Abstract", "Blue"], "Poster"),
    make_record("p7", "Bold Abstract Canvas", 3600, ["Abstract", "Modern"], "Canvas"),
    make_record("p8", "Calm Lake Print", 700, ["Nature", "Blue", "Print"], "Poster"),
    make_record("p9", "Lotus Pond Painting", 4800, ["Nature", "Spiritual"], "Painting"),
    make_record("p10", "Modern Art Trio", 2500, ["Modern", "Abstract"], "Canvas"),
]


class FakeCatalog:
    """Keyword search over a fixed record list; the empty query returns the whole listing."""

    def __init__(self, records=None, fail_queries=()):
        self.records = list(ART_RECORDS if records is None else records)
        self.fail_queries = set(fail_queries)
        self.calls = []
        self.added = []
        self.removed = []

    async def search(self, query, limit=10, sort_key=None):
        self.calls.append((query, limit, sort_key))
        if query in self.fail_queries:
            raise CatalogServiceError(f"search failed for {query}")
        if not query:
            return self.records[:limit]

        if query.lower().startswith("tag:"):
            tag = query[4:]
            matches = [r for r in self.records if tag in r["tags"]]
        else:
            words = query.lower().split()
            matches = [
                r for r in self.records
                if any(w in " ".join([r["title"], r["type"]] + r["tags"]).lower() for w in words)
            ]
        return matches[:limit]

    async def products_with_tags(self, tags, limit=100):
        return [
            {"id": r["id"], "title": r["title"], "image": r["image"], "tags": r["tags"]}
            for r in self.records if set(tags) & set(r["tags"])
        ][:limit]

    async def add_label(self, item_id, label):
        self.added.append((item_id, label))

    async def remove_label(self, item_id, label):
        self.removed.append((item_id, label))


class FakeReasoning:
    """
    Reasoning client stand-in.

    ``responder`` receives the prompt and returns the raw model text, or raises.
    Every call is recorded in ``calls`` as (prompt, image, model).
    """

    def __init__(self, responder=None):
        self.responder = responder
        self.calls = []

    async def generate(self, prompt, image=None, model="test-model", system_prompt=None, json_mode=True):
        self.calls.append((prompt, image, model))
        if self.responder is None:
            raise ReasoningServiceError("no responder configured")
        return self.responder(prompt)


def scripted_responder(plan=None, curation=None, consult=None):
    """Answer by prompt type with JSON payloads; a missing payload raises."""

    def respond(prompt):
        if "Decide on exactly one action" in prompt:
            payload = consult
        elif "You are the curator" in prompt:
            payload = curation
        else:
            payload = plan
        if payload is None:
            raise ReasoningServiceError("unexpected prompt")
        if isinstance(payload, Exception):
            raise payload
        return payload if isinstance(payload, str) else json.dumps(payload)

    return respond


class FakeRedis:
    """Hash and list commands used by the settings store and interaction log."""

    def __init__(self):
        self.hashes = {}
        self.lists = {}

    async def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    async def hset(self, name, key, value):
        self.hashes.setdefault(name, {})[key] = value
        return 1

    async def hdel(self, name, key):
        return 1 if self.hashes.get(name, {}).pop(key, None) is not None else 0

    async def hincrby(self, name, key, amount=1):
        bucket = self.hashes.setdefault(name, {})
        bucket[key] = str(int(bucket.get(key, 0)) + amount)
        return int(bucket[key])

    async def hgetall(self, name):
        return dict(self.hashes.get(name, {}))

    async def lpush(self, name, value):
        self.lists.setdefault(name, []).insert(0, value)
        return len(self.lists[name])

    async def ltrim(self, name, start, end):
        self.lists[name] = self.lists.get(name, [])[start:end + 1]
        return True


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def make_orchestrator(no_sleep):
    """Factory for an orchestrator over two providers that never really sleeps."""

    def factory(catalog=None, providers=None, policy=None):
        if providers is None:
            providers = [ReasoningProvider("groq:fast", "fast-model"), ReasoningProvider("groq:large", "large-model")]
        return ResilienceOrchestrator(
            providers,
            policy or RetryPolicy(max_attempts=3, backoff_base=1.0, deadline_seconds=None),
            catalog=catalog,
            sleep=no_sleep,
        )

    return factory
