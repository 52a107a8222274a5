"""Compress search hits into a dense markdown table for the model.

Each hit keeps only what the model needs to answer: identity, price, one
feature string, one image, store availability, a link and the price verdict.
Everything else in the document (image sets, SKUs, highlights, scores) is
dropped, and so is any column that is empty for every hit on the page.
"""

from typing import List

from .config import UNSPECIFIED_VALUES
from .models import CompressedProduct, RawHit, Recommendation, SearchResults
from .recommendation import classify, describe
from .utils import escape_cell, format_price

COLUMNS = ["Title", "Brand", "Model", "Price", "Features", "Image", "Stores", "URL", "Price verdict"]

NO_RESULTS_NOTE = (
    "No products matched this search. Suggest different or broader search terms "
    "to the user. Do not invent products."
)


def feature_string(hit: RawHit) -> str:
    return "; ".join(
        f"{key}: {value}"
        for key, value in hit.features
        if value and value.strip().upper() not in UNSPECIFIED_VALUES
    )


def stores_string(hit: RawHit) -> str:
    if hit.store_prices:
        return ", ".join(
            f"{offer.store} {format_price(offer.price)}".strip() for offer in hit.store_prices
        )
    return hit.top_store or ""


def compress_hit(hit: RawHit) -> CompressedProduct:
    return CompressedProduct(
        title=hit.title,
        brand=hit.brand or "",
        model=hit.model or "",
        price=format_price(hit.price),
        features=feature_string(hit),
        image=hit.images[0] if hit.images else None,
        stores=stores_string(hit),
        url=hit.url_compy or hit.url or "",
        recommendation=classify(hit.metrics),
    )


def verdict_cell(hit: RawHit, recommendation: Recommendation) -> str:
    # Blank when there is no usable price history.
    if recommendation is Recommendation.UNKNOWN:
        return ""
    return describe(hit.metrics, recommendation)


def _header(results: SearchResults, shown: int) -> str:
    line = f'Query: "{escape_cell(results.query_text)}" - Found: {results.found} (Page {results.page})'
    if shown < results.found:
        line += f" - Showing {shown} of {results.found}"
    return line + "\n"


def _row(cells: List[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def table(hits: List[RawHit]) -> str:
    """One markdown row per hit; columns empty on every row are left out."""
    rows = []
    for hit in hits:
        product = compress_hit(hit)
        rows.append([
            escape_cell(value)
            for value in (
                product.title,
                product.brand,
                product.model,
                product.price,
                product.features,
                product.image,
                product.stores,
                product.url,
                verdict_cell(hit, product.recommendation),
            )
        ])

    keep = [i for i in range(len(COLUMNS)) if i == 0 or any(row[i] for row in rows)]
    lines = [
        _row([COLUMNS[i] for i in keep]),
        "|" + "|".join("---" for _ in keep) + "|",
    ]
    lines.extend(_row([row[i] for i in keep]) for row in rows)
    return "\n".join(lines) + "\n"


def compress(results: SearchResults) -> str:
    """Render SearchResults as a one-line header plus the hit table."""
    if not results.hits:
        return f"{_header(results, 0)}{NO_RESULTS_NOTE}\n"
    return _header(results, len(results.hits)) + table(results.hits)
