"""
Catalog access for the recommendation pipeline.

Search goes through the Shopify Storefront API; label (tag) changes used by the
Vastu admin screen go through the Admin API. Records are normalised into plain
dicts and projected into read-only Candidate objects.
"""

import re
import time
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

import httpx

from config import SHOPIFY_SHOP_DOMAIN, SHOPIFY_STOREFRONT_TOKEN, SHOPIFY_ADMIN_TOKEN, SHOPIFY_API_VERSION
from logger_config import logger, log_api_call, error_handler

PAINTING = "painting"
POSTER = "poster"
UNKNOWN_FORMAT = "unknown"

BEST_SELLING = "BEST_SELLING"

POSTER_MARKERS = {"poster", "posters", "print", "prints"}
PAINTING_MARKERS = {"canvas", "original", "painting", "paintings"}
# Words that disqualify an item when the customer insisted on the other format
EXCLUDED_MARKERS = {
    PAINTING: POSTER_MARKERS,
    POSTER: {"canvas", "original"},
}

WORD_PATTERN = re.compile(r"[a-z0-9]+")


class CatalogServiceError(Exception):
    """The catalog API rejected or failed a request."""


def _words(values) -> set:
    words = set()
    for value in values:
        words.update(WORD_PATTERN.findall(str(value).lower()))
    return words


@dataclass(frozen=True)
class Candidate:
    id: str
    title: str
    price_amount: float
    price_currency: str
    image_url: str
    detail_url: str
    tags: FrozenSet[str]
    product_type: str = ""
    description: str = ""
    handle: str = ""
    format: str = UNKNOWN_FORMAT

    @property
    def key(self) -> str:
        return self.id or self.handle

    @property
    def display_price(self) -> str:
        amount = f"{self.price_amount:.2f}"
        return f"{amount} {self.price_currency}".strip()

    def marker_words(self) -> set:
        return _words(list(self.tags) + [self.product_type])

    def excluded_for(self, required_format: Optional[str]) -> bool:
        markers = EXCLUDED_MARKERS.get(required_format)
        if not markers:
            return False
        return bool(self.marker_words() & markers)

    def projection(self) -> Dict[str, Any]:
        """Compact view sent to the reasoning service."""
        return {
            "id": self.key,
            "title": self.title,
            "price": self.display_price,
            "description": (self.description or "")[:160],
            "tags": sorted(self.tags),
            "type": self.product_type,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Candidate":
        tags = frozenset(str(t) for t in (record.get("tags") or []))
        product_type = record.get("type") or ""
        words = _words(list(tags) + [product_type])
        if words & POSTER_MARKERS:
            item_format = POSTER
        elif words & PAINTING_MARKERS:
            item_format = PAINTING
        else:
            item_format = UNKNOWN_FORMAT

        handle = record.get("handle") or ""
        try:
            price_amount = float(record.get("price") or 0)
        except (TypeError, ValueError):
            price_amount = 0.0

        return cls(
            id=str(record.get("id") or handle),
            title=record.get("title") or "Untitled",
            price_amount=price_amount,
            price_currency=record.get("currency") or "",
            image_url=record.get("image") or "",
            detail_url=record.get("url") or (f"/products/{handle}" if handle else ""),
            tags=tags,
            product_type=product_type,
            description=record.get("description") or "",
            handle=handle,
            format=item_format,
        )


PRODUCT_FIELDS = """
    id
    handle
    title
    description
    productType
    tags
    featuredImage { url }
    priceRange { minVariantPrice { amount currencyCode } }
"""

SEARCH_QUERY = """
query ($q: String, $n: Int!, $sortKey: ProductSortKeys) {
  products(first: $n, query: $q, sortKey: $sortKey) {
    edges { node { %s } }
  }
}
""" % PRODUCT_FIELDS

ADMIN_TAGGED_QUERY = """
query ($q: String!, $n: Int!) {
  products(first: $n, query: $q) {
    edges { node { id title handle tags featuredImage { url } } }
  }
}
"""

TAGS_ADD_MUTATION = """
mutation addTags($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) {
    node { id }
    userErrors { field message }
  }
}
"""

TAGS_REMOVE_MUTATION = """
mutation removeTags($id: ID!, $tags: [String!]!) {
  tagsRemove(id: $id, tags: $tags) {
    node { id }
    userErrors { field message }
  }
}
"""


def node_to_record(node: Dict[str, Any]) -> Dict[str, Any]:
    price = ((node.get("priceRange") or {}).get("minVariantPrice") or {})
    handle = node.get("handle") or ""
    return {
        "id": node.get("id") or handle,
        "handle": handle,
        "title": node.get("title") or "",
        "price": price.get("amount") or 0,
        "currency": price.get("currencyCode") or "",
        "image": (node.get("featuredImage") or {}).get("url") or "",
        "url": f"/products/{handle}" if handle else "",
        "tags": node.get("tags") or [],
        "type": node.get("productType") or "",
        "description": node.get("description") or "",
    }


class ShopifyCatalogClient:
    """Catalog search and tag mutation over Shopify GraphQL."""

    def __init__(self, http_client: httpx.AsyncClient, shop_domain: str = SHOPIFY_SHOP_DOMAIN,
                 storefront_token: str = SHOPIFY_STOREFRONT_TOKEN, admin_token: str = SHOPIFY_ADMIN_TOKEN,
                 api_version: str = SHOPIFY_API_VERSION):
        self.http_client = http_client
        self.shop_domain = shop_domain
        self.storefront_token = storefront_token
        self.admin_token = admin_token
        self.api_version = api_version

    @property
    def storefront_url(self) -> str:
        return f"https://{self.shop_domain}/api/{self.api_version}/graphql.json"

    @property
    def admin_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def _graphql(self, url: str, headers: Dict[str, str], query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        if not self.shop_domain:
            raise CatalogServiceError("SHOPIFY_SHOP_DOMAIN is not configured")

        start_time = time.time()
        try:
            response = await self.http_client.post(
                url,
                json={"query": query, "variables": variables},
                headers={"Content-Type": "application/json", **headers},
            )
        except httpx.HTTPError as e:
            log_api_call("shopify", url, "error", time.time() - start_time)
            raise CatalogServiceError(f"Catalog request failed: {e}") from e

        log_api_call("shopify", url, str(response.status_code), time.time() - start_time)
        if response.status_code >= 400:
            raise CatalogServiceError(f"Catalog returned HTTP {response.status_code}: {response.text[:200]}")

        payload = response.json()
        if payload.get("errors"):
            raise CatalogServiceError(f"Catalog GraphQL errors: {payload['errors']}")
        return payload.get("data") or {}

    async def search(self, query: str, limit: int = 10, sort_key: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Keyword search over the storefront catalog.

        An empty query returns the default-ordered listing; pass sort_key=BEST_SELLING
        for the best seller listing.
        """
        variables: Dict[str, Any] = {"n": limit, "q": query or None}
        if sort_key:
            variables["sortKey"] = sort_key
        elif query:
            variables["sortKey"] = "RELEVANCE"

        data = await self._graphql(
            self.storefront_url,
            {"X-Shopify-Storefront-Access-Token": self.storefront_token},
            SEARCH_QUERY,
            variables,
        )
        edges = ((data.get("products") or {}).get("edges")) or []
        records = [node_to_record(edge["node"]) for edge in edges if edge.get("node")]
        logger.info(f"Catalog search '{query}' (sort={variables.get('sortKey')}) returned {len(records)} items")
        return records

    async def products_with_tags(self, tags: List[str], limit: int = 100) -> List[Dict[str, Any]]:
        """Admin listing of products carrying any of the given tags."""
        query = " OR ".join(f"tag:{tag}" for tag in tags)
        data = await self._graphql(
            self.admin_url,
            {"X-Shopify-Access-Token": self.admin_token},
            ADMIN_TAGGED_QUERY,
            {"q": query, "n": limit},
        )
        edges = ((data.get("products") or {}).get("edges")) or []
        return [
            {
                "id": edge["node"].get("id"),
                "title": edge["node"].get("title") or "",
                "image": (edge["node"].get("featuredImage") or {}).get("url") or "",
                "tags": edge["node"].get("tags") or [],
            }
            for edge in edges if edge.get("node")
        ]

    async def _mutate_tags(self, mutation: str, operation: str, item_id: str, label: str) -> None:
        data = await self._graphql(
            self.admin_url,
            {"X-Shopify-Access-Token": self.admin_token},
            mutation,
            {"id": item_id, "tags": [label]},
        )
        user_errors = (data.get(operation) or {}).get("userErrors") or []
        if user_errors:
            raise CatalogServiceError(f"{operation} rejected for {item_id}: {user_errors}")

    @error_handler("Catalog Labels")
    async def add_label(self, item_id: str, label: str) -> None:
        await self._mutate_tags(TAGS_ADD_MUTATION, "tagsAdd", item_id, label)
        logger.info(f"Added label {label} to {item_id}")

    @error_handler("Catalog Labels")
    async def remove_label(self, item_id: str, label: str) -> None:
        await self._mutate_tags(TAGS_REMOVE_MUTATION, "tagsRemove", item_id, label)
        logger.info(f"Removed label {label} from {item_id}")
