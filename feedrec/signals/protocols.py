"""Protocol interface for similarity backends."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SimilarityProvider(Protocol):
    """Protocol for user/resource similarity lookups.

    Any backend exposing ``similarity`` with the matching signature can feed
    the similarity scorer, whether it is a vector index or a remote service.
    """

    def similarity(self, user_id: str, resource_id: str) -> float:
        """Get the similarity between a user's interests and a resource.

        Args:
            user_id: User whose interest embedding is compared.
            resource_id: Resource whose embedding is compared.

        Returns:
            Similarity, nominally in [0, 1].

        Raises:
            SimilarityServiceError: If the lookup fails.
        """
        ...
