"""User interest profiles built from vote history."""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

import structlog

from feedrec.recommendation.constants import (
    DECLARED_INTEREST_SCORE,
    DOWNVOTE_WEIGHT,
    NEUTRAL_SCORE,
    UPVOTE_WEIGHT,
)
from feedrec.recommendation.models import UserInterestProfile
from feedrec.store.models import ResourceVote, VoteType
from feedrec.store.protocols import UserRepository, VoteRepository


logger = structlog.get_logger()


def _normalize(raw: dict[str, float]) -> dict[str, float]:
    """Min-max normalize to [0, 1]; equal values all map to 0.5."""
    if not raw:
        return {}
    low = min(raw.values())
    high = max(raw.values())
    spread = high - low
    if spread <= 0:
        return dict.fromkeys(raw, NEUTRAL_SCORE)
    return {key: (value - low) / spread for key, value in raw.items()}


def build_profile(
    user_id: str,
    votes: Sequence[ResourceVote],
    interest_topic_ids: Iterable[str] = (),
    now: datetime | None = None,
) -> UserInterestProfile:
    """Build an interest profile from votes and declared topics.

    Each upvote adds 1.0 and each downvote adds -0.5 to every topic and to
    the source of the voted resource. Totals are min-max normalized.
    Declared topics without any vote get full interest.

    Args:
        user_id: Profile owner.
        votes: The user's votes.
        interest_topic_ids: Topics the user chose to follow.
        now: Build timestamp.

    Returns:
        The profile.
    """
    topic_raw: dict[str, float] = {}
    source_raw: dict[str, float] = {}

    for vote in votes:
        weight = UPVOTE_WEIGHT if vote.vote_type == VoteType.UPVOTE else DOWNVOTE_WEIGHT
        for topic_id in vote.resource_topic_ids:
            topic_raw[topic_id] = topic_raw.get(topic_id, 0.0) + weight
        if vote.resource_source_id is not None:
            source_id = vote.resource_source_id
            source_raw[source_id] = source_raw.get(source_id, 0.0) + weight

    topic_scores = _normalize(topic_raw)
    for topic_id in interest_topic_ids:
        topic_scores.setdefault(topic_id, DECLARED_INTEREST_SCORE)

    return UserInterestProfile(
        user_id=user_id,
        topic_scores=topic_scores,
        source_scores=_normalize(source_raw),
        total_interactions=len(votes),
        last_updated=now or datetime.now(UTC),
    )


class UserProfileService:
    """Builds interest profiles from the user and vote repositories."""

    def __init__(
        self,
        votes: VoteRepository,
        users: UserRepository | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            votes: Vote history source.
            users: Optional user source for declared interests.
        """
        self._votes = votes
        self._users = users
        self._log = logger.bind(component="recommendation", subcomponent="profile")

    def build(
        self,
        user_id: str,
        votes: Sequence[ResourceVote] | None = None,
    ) -> UserInterestProfile:
        """Build the profile for a user.

        Args:
            user_id: Profile owner.
            votes: Already loaded votes; fetched when omitted.

        Returns:
            The profile.
        """
        if votes is None:
            votes = self._votes.get_votes_by_user(user_id)

        interest_topic_ids: list[str] = []
        if self._users is not None:
            user = self._users.get_user(user_id)
            if user is not None:
                interest_topic_ids = list(user.interest_topic_ids)

        profile = build_profile(user_id, votes, interest_topic_ids)
        self._log.debug(
            "profile_built",
            user_id=user_id,
            total_interactions=profile.total_interactions,
            topic_count=len(profile.topic_scores),
            source_count=len(profile.source_scores),
        )
        return profile
