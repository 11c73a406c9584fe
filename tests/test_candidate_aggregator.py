import asyncio

import pytest

from candidate_aggregator import FALLBACK_LIMIT, CandidateAggregator
from conftest import FakeCatalog, make_record


class GatedCatalog(FakeCatalog):
    """Every search blocks until all expected searches have started."""

    def __init__(self, expected):
        super().__init__()
        self.expected = expected
        self.started = 0
        self.all_started = asyncio.Event()

    async def search(self, query, limit=10, sort_key=None):
        self.started += 1
        if self.started == self.expected:
            self.all_started.set()
        await self.all_started.wait()
        return await super().search(query, limit, sort_key)


class TestCandidateAggregator:

    @pytest.mark.asyncio
    async def test_merge_keeps_first_occurrence_in_query_order(self, catalog):
        aggregator = CandidateAggregator(catalog, min_pool_size=1)
        pool = await aggregator.aggregate(["abstract", "blue"])

        # abstract: p6 p7 p10, then blue adds p1 p8 (p6 already present)
        assert list(pool) == ["p6", "p7", "p10", "p1", "p8"]
        assert [call[0] for call in catalog.calls] == ["abstract", "blue"]

    @pytest.mark.asyncio
    async def test_failed_query_contributes_nothing(self):
        catalog = FakeCatalog(fail_queries={"abstract"})
        aggregator = CandidateAggregator(catalog, min_pool_size=1)
        pool = await aggregator.aggregate(["abstract", "horses"])

        assert list(pool) == ["p2"]

    @pytest.mark.asyncio
    async def test_small_pool_is_broadened(self, catalog):
        aggregator = CandidateAggregator(catalog)
        pool = await aggregator.aggregate(["horses"])

        assert list(pool)[0] == "p2"
        assert len(pool) == len(catalog.records)
        assert catalog.calls[-1] == ("", FALLBACK_LIMIT, None)

    @pytest.mark.asyncio
    async def test_max_price_filters_every_source(self, catalog):
        aggregator = CandidateAggregator(catalog)
        pool = await aggregator.aggregate(["abstract"], max_price=1000)

        assert set(pool) == {"p6", "p8"}
        assert all(c.price_amount <= 1000 for c in pool.values())

    @pytest.mark.asyncio
    async def test_everything_failing_gives_empty_pool(self):
        catalog = FakeCatalog(fail_queries={"blue", ""})
        pool = await CandidateAggregator(catalog).aggregate(["blue"])
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_records_without_id_use_handle(self):
        record = make_record("", "Untitled Sketch")
        pool = await CandidateAggregator(FakeCatalog([record]), min_pool_size=1).aggregate(["sketch"])
        assert list(pool) == ["untitled-sketch"]

    @pytest.mark.asyncio
    async def test_repeated_query_does_not_grow_pool(self, catalog):
        once = await CandidateAggregator(catalog).aggregate(["abstract"])
        twice = await CandidateAggregator(catalog).aggregate(["abstract", "abstract"])
        assert len(once) == len(twice)

    @pytest.mark.asyncio
    async def test_small_catalog_keeps_its_true_size(self):
        catalog = FakeCatalog([make_record(f"s{i}", f"Sketch {i}") for i in range(3)])
        pool = await CandidateAggregator(catalog).aggregate(["1"])
        assert list(pool) == ["s1", "s0", "s2"]

    @pytest.mark.asyncio
    async def test_queries_run_concurrently(self):
        queries = ["abstract", "blue", "nature", "modern"]
        catalog = GatedCatalog(expected=len(queries))
        aggregator = CandidateAggregator(catalog, min_pool_size=1)

        # a one-at-a-time loop would wait forever on the first search
        pool = await asyncio.wait_for(aggregator.aggregate(queries), timeout=2)

        assert catalog.started == len(queries)
        assert list(pool)[:3] == ["p6", "p7", "p10"]
