"""Error types for external relevance signals."""


class SimilarityServiceError(Exception):
    """Similarity backend call failure.

    Attributes:
        status_code: HTTP status code from the backend, 0 for network errors.
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code
