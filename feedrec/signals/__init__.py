"""External relevance signals."""

from feedrec.signals.errors import SimilarityServiceError
from feedrec.signals.protocols import SimilarityProvider
from feedrec.signals.similarity import HttpSimilarityProvider


__all__ = [
    "HttpSimilarityProvider",
    "SimilarityProvider",
    "SimilarityServiceError",
]
