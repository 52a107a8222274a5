# Data models for interactions.
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


@dataclass
class SearchQuery:
    """Search request built from the model's tool arguments.

    This is the front-facing search model; the gateway maps it to Typesense params.
    """

    query_text: str
    brand: Optional[str] = None
    category: Optional[str] = None  # categories.level1, e.g. "Tecnologia"
    price_min: Optional[float] = None  # inclusive
    price_max: Optional[float] = None  # inclusive


@dataclass
class StorePrice:
    """Offer for a product at one store."""
    store: str
    price: Optional[float] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class PriceMetrics:
    """Current vs. historical price for one product."""
    current: Optional[float]
    previous: Optional[float] = None
    historical_minimum: Optional[float] = None
    percent_save: Optional[float] = None  # vs. previous price

    @property
    def effective_minimum(self) -> Optional[float]:
        """Historical minimum, corrected so it never exceeds the current price."""
        if self.historical_minimum is None or self.current is None:
            return self.historical_minimum
        return min(self.historical_minimum, self.current)

    @property
    def percent_above_minimum(self) -> Optional[float]:
        minimum = self.effective_minimum
        if self.current is None or minimum is None or minimum <= 0:
            return None
        return max(0.0, (self.current - minimum) * 100 / minimum)


class Recommendation(str, Enum):
    GOOD_TIME_TO_BUY = "good_time_to_buy"
    CONSIDER_WAITING = "consider_waiting"
    WAIT_FOR_BETTER_OFFER = "wait_for_better_offer"
    UNKNOWN = "unknown"


@dataclass
class RawHit:
    """One Typesense document, parsed but not yet compressed."""
    title: str
    brand: Optional[str] = None
    model: Optional[str] = None
    price: Optional[float] = None
    features: List[Tuple[str, str]] = field(default_factory=list)  # ("Color", "Negro"), prefix stripped
    images: List[str] = field(default_factory=list)
    store_prices: List[StorePrice] = field(default_factory=list)
    top_store: Optional[str] = None
    url_compy: Optional[str] = None
    url: Optional[str] = None
    category_path: List[str] = field(default_factory=list)
    metrics: Optional[PriceMetrics] = None
    text_match: Optional[int] = None


@dataclass
class SearchResults:
    """One page of hits plus the counts the backend reported."""
    query_text: str
    found: int
    page: int
    hits: List[RawHit] = field(default_factory=list)


@dataclass
class CompressedProduct:
    """Dense, model-facing view of a RawHit."""
    title: str
    brand: str
    model: str
    price: str
    features: str
    image: Optional[str]
    stores: str
    url: str
    recommendation: Recommendation = Recommendation.UNKNOWN


@dataclass(frozen=True)
class AdmissionResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the oldest counted request leaves the window


@dataclass
class StreamEvent:
    """One incremental piece of a streamed reply.

    kind is one of: "text", "tool_call", "tool_result", "error", "finish".
    """
    kind: str
    data: Any = None
