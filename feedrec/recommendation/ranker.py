"""Deterministic ordering and top-N selection."""

from dataclasses import dataclass
from datetime import UTC

import structlog

from feedrec.recommendation.models import ScoredResource


logger = structlog.get_logger()


def ranking_key(scored: ScoredResource) -> tuple[float, float, str]:
    """Sort key: final score desc, then created_at desc, then resource ID asc."""
    created_at = scored.resource.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    return (-scored.final_score, -created_at.timestamp(), scored.resource.id)


@dataclass(frozen=True)
class RankedResource:
    """A scored resource with its 1-based position."""

    position: int
    scored: ScoredResource


class Ranker:
    """Orders scored candidates and keeps the top ``count``.

    Identical input always yields identical positions; ties never depend on
    input order.
    """

    def __init__(self) -> None:
        self._log = logger.bind(component="recommendation", subcomponent="ranker")

    def rank(self, candidates: list[ScoredResource], count: int) -> list[RankedResource]:
        """Rank candidates.

        Args:
            candidates: Scored candidates in any order.
            count: Maximum number of results.

        Returns:
            At most ``count`` results with positions 1..N.
        """
        if count < 0:
            msg = f"count must be non-negative, got {count}"
            raise ValueError(msg)

        ordered = sorted(candidates, key=ranking_key)[:count]
        ranked = [
            RankedResource(position=i, scored=s) for i, s in enumerate(ordered, start=1)
        ]
        self._log.debug(
            "candidates_ranked",
            candidates_in=len(candidates),
            ranked_out=len(ranked),
        )
        return ranked
