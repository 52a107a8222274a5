"""Typesense `filter_by` translation for structured search filters.

Both price bounds are inclusive. Clauses are always emitted in the order
category, brand, price_min, price_max so equal filters give equal strings.
"""

from typing import Any, Dict, List, Optional

from .errors import InvalidFilter
from .models import SearchQuery

CATEGORY_FIELD = "categories.level1"
BRAND_FIELD = "brand"
PRICE_FIELD = "bestprice"


def _exact(field: str, value: str) -> str:
    # Backticks delimit the value in Typesense, so they cannot be escaped inside it.
    if "`" in value:
        raise InvalidFilter(f"{field} must not contain backticks: {value!r}")
    return f"{field}:=`{value}`"


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def validate(query: SearchQuery) -> SearchQuery:
    """Check the invariants of a SearchQuery; return it unchanged."""
    if not query.query_text or not query.query_text.strip():
        raise InvalidFilter("query must be a non-empty string")
    for name in ("price_min", "price_max"):
        value = getattr(query, name)
        if value is not None and value < 0:
            raise InvalidFilter(f"{name} must be non-negative, got {value}")
    if query.price_min is not None and query.price_max is not None and query.price_min > query.price_max:
        raise InvalidFilter(f"price_min ({query.price_min}) is greater than price_max ({query.price_max})")
    return query


def translate(query: SearchQuery) -> str:
    """Build the filter expression for `query`; empty string when no filter is set."""
    validate(query)
    clauses: List[str] = []
    if query.category:
        clauses.append(_exact(CATEGORY_FIELD, query.category.strip()))
    if query.brand:
        clauses.append(_exact(BRAND_FIELD, query.brand.strip()))
    if query.price_min is not None:
        clauses.append(f"{PRICE_FIELD}:>={_number(query.price_min)}")
    if query.price_max is not None:
        clauses.append(f"{PRICE_FIELD}:<={_number(query.price_max)}")
    return " && ".join(clauses)


def _optional_str(args: Dict[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFilter(f"{name} must be a string")
    return value.strip() or None


def _optional_price(args: Dict[str, Any], name: str) -> Optional[float]:
    value = args.get(name)
    if value is None:
        return None
    # bool is an int subclass; a JSON true is not a price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidFilter(f"{name} must be a number")
    return float(value)


def query_from_tool_args(args: Dict[str, Any]) -> SearchQuery:
    """Map searchProducts tool arguments to a validated SearchQuery."""
    query_text = args.get("query")
    if not isinstance(query_text, str):
        raise InvalidFilter("query must be a non-empty string")
    return validate(
        SearchQuery(
            query_text=query_text.strip(),
            brand=_optional_str(args, "brand"),
            category=_optional_str(args, "category"),
            price_min=_optional_price(args, "priceMin"),
            price_max=_optional_price(args, "priceMax"),
        )
    )
