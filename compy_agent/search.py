"""Product search over the Typesense catalog.

Provides:
- AbstractSearchClient: interface the agent depends on
- TypesenseSearchClient: one GET per query via httpx
- parse_hit / parse_search_response: Typesense JSON -> RawHit / SearchResults
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import (
    FEATURE_PREFIX,
    SEARCH_PAGE_SIZE,
    SEARCH_QUERY_BY,
    SEARCH_QUERY_BY_WEIGHTS,
    SEARCH_SORT_BY,
    SEARCH_TIMEOUT_SECONDS,
    TYPESENSE_API_KEY,
    TYPESENSE_COLLECTION,
    TYPESENSE_URL,
)
from .errors import SearchUnavailable
from .models import PriceMetrics, RawHit, SearchQuery, SearchResults, StorePrice

logger = logging.getLogger(__name__)


class AbstractSearchClient:
    """Interface for product search backends."""

    async def search(self, query: SearchQuery, filter_by: str = "") -> SearchResults:
        # Return one page of hits; raise SearchUnavailable when the backend cannot answer
        raise NotImplementedError


class TypesenseSearchClient(AbstractSearchClient):
    """Async adapter for the Typesense documents/search endpoint."""

    def __init__(
        self,
        base_url: str = TYPESENSE_URL,
        api_key: str = TYPESENSE_API_KEY,
        collection: str = TYPESENSE_COLLECTION,
        page_size: int = SEARCH_PAGE_SIZE,
        timeout: float = SEARCH_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.collection = collection
        self.page_size = page_size
        self.timeout = timeout
        # Reuse a caller-owned client when given; otherwise one client per call.
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/collections/{self.collection}/documents/search"

    def build_params(self, query: SearchQuery, filter_by: str = "") -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "q": query.query_text,
            "query_by": SEARCH_QUERY_BY,
            "query_by_weights": SEARCH_QUERY_BY_WEIGHTS,
            "sort_by": SEARCH_SORT_BY,
            "per_page": self.page_size,
        }
        if filter_by:
            params["filter_by"] = filter_by
        return params

    async def search(self, query: SearchQuery, filter_by: str = "") -> SearchResults:
        params = self.build_params(query, filter_by)
        headers = {"X-TYPESENSE-API-KEY": self.api_key}
        logger.info("Searching for %r with filter %r", query.query_text, filter_by or None)

        try:
            if self._http_client is not None:
                resp = await self._http_client.get(self.endpoint, params=params, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.get(self.endpoint, params=params, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Search backend returned HTTP %s: %s", e.response.status_code, e.response.text[:300])
            raise SearchUnavailable(
                f"Search backend returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            logger.error("Search backend unreachable: %s", e)
            raise SearchUnavailable(f"Search backend unreachable: {e}") from e
        except ValueError as e:
            raise SearchUnavailable("Search backend returned a non-JSON body") from e

        return parse_search_response(data, query.query_text)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _feature_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value if v not in (None, ""))
    return str(value).strip()


def _images(doc: Dict[str, Any]) -> List[str]:
    # Catalog documents carry either plain URLs or per-store image groups with `urls`.
    urls: List[str] = []
    for image in doc.get("images") or []:
        if isinstance(image, str):
            urls.append(image)
        elif isinstance(image, dict):
            urls.extend(u for u in image.get("urls") or [] if isinstance(u, str))
    return [u for u in urls if u]


def _store_prices(doc: Dict[str, Any]) -> List[StorePrice]:
    skus = doc.get("skus") or []
    if skus:
        offers = [
            StorePrice(
                store=str(sku.get("store")),
                price=_to_float(sku.get("bestprice", sku.get("price"))),
                url=sku.get("url"),
            )
            for sku in skus
            if isinstance(sku, dict) and sku.get("store")
        ]
        return sorted(offers, key=lambda o: (o.price is None, o.price or 0.0))
    return [StorePrice(store=str(s)) for s in doc.get("stores") or [] if s]


def _metrics(doc: Dict[str, Any], current: Optional[float]) -> Optional[PriceMetrics]:
    metrics = doc.get("metrics")
    if not isinstance(metrics, dict):
        return None
    return PriceMetrics(
        current=current,
        previous=_to_float(metrics.get("prev_price")),
        historical_minimum=_to_float(metrics.get("price_minimum")),
        percent_save=_to_float(metrics.get("percent_save")),
    )


def parse_hit(hit: Dict[str, Any]) -> RawHit:
    """Convert one Typesense hit into a RawHit."""
    doc = hit.get("document") or {}
    price = _to_float(doc.get("bestprice", doc.get("price")))

    # Keep catalog order; keys are "f.<name>".
    features = [
        (key[len(FEATURE_PREFIX):], _feature_value(value))
        for key, value in doc.items()
        if key.startswith(FEATURE_PREFIX) and value is not None
    ]

    categories = doc.get("categories") or {}
    category_path = [
        categories[level]
        for level in ("level1", "level2", "level3")
        if isinstance(categories, dict) and categories.get(level)
    ]

    return RawHit(
        title=str(doc.get("title") or ""),
        brand=doc.get("brand"),
        model=doc.get("repmodel") or doc.get("model"),
        price=price,
        features=features,
        images=_images(doc),
        store_prices=_store_prices(doc),
        top_store=doc.get("topstore"),
        url_compy=doc.get("url_compy"),
        url=doc.get("url"),
        category_path=category_path,
        metrics=_metrics(doc, price),
        text_match=hit.get("text_match"),
    )


def parse_search_response(data: Dict[str, Any], query_text: str) -> SearchResults:
    """Convert a Typesense search response body into SearchResults."""
    if not isinstance(data, dict) or not isinstance(data.get("hits", []), list):
        raise SearchUnavailable("Search backend returned an unexpected payload")
    request_params = data.get("request_params")
    if not isinstance(request_params, dict):
        request_params = {}
    try:
        return SearchResults(
            query_text=str(request_params.get("q") or query_text),
            found=int(data.get("found") or 0),
            page=int(data.get("page") or 1),
            hits=[parse_hit(h) for h in data.get("hits") or [] if isinstance(h, dict)],
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise SearchUnavailable(f"Search backend returned an unexpected payload: {e}") from e
