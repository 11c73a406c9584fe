import asyncio
from collections import OrderedDict
from typing import Dict, List, Optional

from catalog_client import Candidate
from logger_config import logger, log_error, log_search_query

MIN_POOL_SIZE = 5
RESULTS_PER_QUERY = 10
# Empty keyword = the catalog's default-ordered listing, the broadest search there is
FALLBACK_QUERY = ""
FALLBACK_LIMIT = 20

CandidatePool = Dict[str, Candidate]


class CandidateAggregator:
    """Fans a query batch out to the catalog and merges the results into one pool."""

    def __init__(self, catalog, results_per_query: int = RESULTS_PER_QUERY, min_pool_size: int = MIN_POOL_SIZE):
        self.catalog = catalog
        self.results_per_query = results_per_query
        self.min_pool_size = min_pool_size

    async def _search(self, query: str, limit: int) -> List[Candidate]:
        records = await self.catalog.search(query, limit)
        return [Candidate.from_record(record) for record in records]

    def _merge(self, pool: CandidatePool, candidates: List[Candidate], max_price: Optional[float]) -> None:
        for candidate in candidates:
            if not candidate.key or candidate.key in pool:
                continue
            if max_price is not None and candidate.price_amount > max_price:
                continue
            pool[candidate.key] = candidate

    async def aggregate(self, queries: List[str], max_price: Optional[float] = None) -> CandidatePool:
        """
        Run every query concurrently and merge them in submission order, first occurrence wins.

        A failing query contributes nothing. If the merged pool is smaller than
        min_pool_size, one broad listing is merged in on top.
        """
        print(f"🔍 Searching catalog with {len(queries)} queries: {queries}")
        tasks = [asyncio.create_task(self._search(query, self.results_per_query)) for query in queries]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        pool: CandidatePool = OrderedDict()
        for query, result in zip(queries, results):
            if isinstance(result, Exception):
                log_error(result, "CandidateAggregator.aggregate", {"query": query})
                log_search_query(query, 0, False)
                continue
            log_search_query(query, len(result), True)
            self._merge(pool, result, max_price)

        if len(pool) < self.min_pool_size:
            logger.info(f"Pool has {len(pool)} candidates, broadening with the default listing")
            try:
                fallback = await self._search(FALLBACK_QUERY, FALLBACK_LIMIT)
            except Exception as e:
                log_error(e, "CandidateAggregator.aggregate fallback")
                fallback = []
            self._merge(pool, fallback, max_price)

        print(f"✅ Candidate pool: {len(pool)} unique products")
        return pool
