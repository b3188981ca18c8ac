"""HTTP client for the embedding similarity service."""

from http import HTTPStatus

import httpx
import structlog

from feedrec.settings import AppSettings
from feedrec.signals.errors import SimilarityServiceError


logger = structlog.get_logger()

_SIMILARITY_PATH = "/v1/similarity"


class HttpSimilarityProvider:
    """Looks up user/resource similarity from a remote embedding service.

    The service answers ``POST /v1/similarity`` with
    ``{"similarity": <float>}`` for a ``{"user_id", "resource_id"}`` body.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 5.0,
    ) -> None:
        """Initialize the provider.

        Args:
            base_url: Service root URL.
            api_key: Optional bearer token.
            timeout_seconds: Per-request timeout.
        """
        self._url = base_url.rstrip("/") + _SIMILARITY_PATH
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._log = logger.bind(component="signals", subcomponent="similarity")

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "HttpSimilarityProvider | None":
        """Build a provider from settings, or None when not configured."""
        if not settings.similarity_service_url:
            return None
        return cls(
            base_url=settings.similarity_service_url,
            api_key=settings.similarity_api_key,
            timeout_seconds=settings.similarity_timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def similarity(self, user_id: str, resource_id: str) -> float:
        """Fetch the similarity for a user and resource.

        Args:
            user_id: User identifier.
            resource_id: Resource identifier.

        Returns:
            Similarity value as reported by the service.

        Raises:
            SimilarityServiceError: On network errors, non-200 responses, or
                a body without a numeric ``similarity``.
        """
        try:
            response = httpx.post(
                self._url,
                headers=self._headers(),
                json={"user_id": user_id, "resource_id": resource_id},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            msg = f"Similarity request failed: {exc}"
            raise SimilarityServiceError(msg) from exc

        if response.status_code != HTTPStatus.OK:
            self._log.warning(
                "similarity_request_rejected",
                status_code=response.status_code,
                resource_id=resource_id,
            )
            msg = f"Similarity service returned {response.status_code}"
            raise SimilarityServiceError(msg, status_code=response.status_code)

        try:
            value = response.json()["similarity"]
        except (ValueError, KeyError, TypeError) as exc:
            msg = "Similarity response missing 'similarity'"
            raise SimilarityServiceError(msg) from exc

        if isinstance(value, bool) or not isinstance(value, int | float):
            msg = f"Similarity value is not numeric: {value!r}"
            raise SimilarityServiceError(msg)
        return float(value)
