"""Buy/wait verdict from a product's price history."""

from typing import Optional

from .config import CONSIDER_THRESHOLD_PERCENT, WAIT_THRESHOLD_PERCENT
from .models import PriceMetrics, Recommendation

LABELS = {
    Recommendation.GOOD_TIME_TO_BUY: "Good time to buy",
    Recommendation.CONSIDER_WAITING: "Consider waiting",
    Recommendation.WAIT_FOR_BETTER_OFFER: "Wait for a better offer",
    Recommendation.UNKNOWN: "Not enough price history",
}


def classify(
    metrics: Optional[PriceMetrics],
    wait_threshold: float = WAIT_THRESHOLD_PERCENT,
    consider_threshold: float = CONSIDER_THRESHOLD_PERCENT,
) -> Recommendation:
    """Classify by how far the current price sits above the historical minimum.

    <= consider_threshold          GOOD_TIME_TO_BUY
    (consider, wait] thresholds    CONSIDER_WAITING
    > wait_threshold               WAIT_FOR_BETTER_OFFER
    no usable minimum              UNKNOWN
    """
    if metrics is None:
        return Recommendation.UNKNOWN
    above = metrics.percent_above_minimum
    if above is None:
        return Recommendation.UNKNOWN
    if above > wait_threshold:
        return Recommendation.WAIT_FOR_BETTER_OFFER
    if above > consider_threshold:
        return Recommendation.CONSIDER_WAITING
    return Recommendation.GOOD_TIME_TO_BUY


def describe(metrics: Optional[PriceMetrics], recommendation: Recommendation) -> str:
    """Short verdict text for a table cell, e.g. 'Consider waiting (+18% vs min 999)'."""
    label = LABELS[recommendation]
    if metrics is None or recommendation is Recommendation.UNKNOWN:
        return label
    details = [f"+{metrics.percent_above_minimum:.0f}% vs min {metrics.effective_minimum:,.0f}"]
    if metrics.percent_save and metrics.percent_save > 0:
        details.append(f"-{metrics.percent_save:.0f}% vs prev")
    return f"{label} ({', '.join(details)})"
