"""
Auction Comparator - Error Types

Every failure that crosses a module boundary carries a machine-readable
code and a human-readable message.
"""

from __future__ import annotations


class ComparatorError(Exception):
    """Base class for all comparator errors."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ExtractionFailure(ComparatorError):
    """No usable title/price after every extraction method. Non-fatal."""

    code = "EXTRACTION_FAILED"


class NormalizationError(ComparatorError):
    """
    AI normalization failed.

    Codes: INVALID_REQUEST, NORMALIZATION_FAILED, PROVIDER_ERROR.
    Recovered by falling back to deterministic normalization.
    """

    code = "NORMALIZATION_FAILED"


class SearchProviderError(ComparatorError):
    """The web search collaborator failed at the transport or HTTP level."""

    code = "API_ERROR"


class CompareError(ComparatorError):
    """
    Comparison could not produce a response.

    Codes: INVALID_REQUEST, API_ERROR, NO_RESULTS.
    """

    code = "API_ERROR"
