"""Error taxonomy for the request pipeline.

Stage-local errors (InvalidFilter) are reported back to the model as tool
output so it can retry; the rest end the turn or the request.
"""

from typing import Optional


class CompyAgentError(Exception):
    """Base class for every error raised by the assistant pipeline."""


class AdmissionDenied(CompyAgentError):
    """Client exhausted its quota for the current window."""

    def __init__(self, admission, retry_after: int = 1) -> None:
        super().__init__(
            f"Rate limit of {admission.limit} requests exceeded; retry after {admission.reset_at:.0f}"
        )
        self.admission = admission
        self.retry_after = retry_after


class RateLimiterUnavailable(CompyAgentError):
    """The rate-limit store could not be reached."""


class InvalidFilter(CompyAgentError):
    """Search arguments from the model were malformed."""


class SearchUnavailable(CompyAgentError):
    """Search backend unreachable or answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelProviderError(CompyAgentError):
    """Upstream language model call failed."""


class BudgetExceeded(CompyAgentError):
    """Wall-clock budget for the request ran out."""
