"""Data models for resources, users, votes, and persisted recommendations."""

from datetime import UTC, date, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeedType(str, Enum):
    """Resource category that recommendations are grouped and requested by.

    Declaration order is the order feeds are reported in.
    """

    PAPER = "Paper"
    VIDEO = "Video"
    BLOG_POST = "BlogPost"
    CURRENT_EVENT = "CurrentEvent"
    SOCIAL_MEDIA_POST = "SocialMediaPost"


class VoteType(str, Enum):
    """Direction of a user's vote on a resource."""

    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


class Topic(BaseModel):
    """Subject area a resource can be tagged with."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Topic identifier")]
    name: Annotated[str, Field(min_length=1, description="Display name")]
    slug: str = Field(default="", description="URL-friendly name")


class Resource(BaseModel):
    """A learning item produced by ingestion.

    Read-only to the recommendation pipeline. The same model is stored as
    the denormalized snapshot on each recommendation row.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Resource identifier")]
    title: Annotated[str, Field(min_length=1, description="Resource title")]
    url: Annotated[str, Field(min_length=1, description="Where the resource lives")]
    description: str | None = Field(default=None, description="Summary text")
    published_date: datetime | None = Field(
        default=None, description="Publication timestamp (nullable)"
    )
    feed_type: FeedType = Field(description="Feed this resource belongs to")
    source_id: str | None = Field(default=None, description="Originating source")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the resource was added to the system",
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the resource was last updated",
    )
    topics: list[Topic] = Field(default_factory=list)

    @field_validator("feed_type", mode="before")
    @classmethod
    def coerce_feed_type(cls, v: Any) -> FeedType:
        """Accept enum members or their string values."""
        if isinstance(v, FeedType):
            return v
        if isinstance(v, str):
            return FeedType(v)
        msg = f"Invalid feed_type: {v}"
        raise ValueError(msg)

    @property
    def topic_ids(self) -> list[str]:
        """Identifiers of the topics this resource is tagged with."""
        return [topic.id for topic in self.topics]


class User(BaseModel):
    """A user receiving recommendations."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, description="User identifier")]
    email: Annotated[str, Field(min_length=3, description="Login email")]
    display_name: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    interest_topic_ids: list[str] = Field(
        default_factory=list, description="Topics the user asked to follow"
    )


class ResourceVote(BaseModel):
    """A user's vote on a resource.

    Carries the voted resource's source and topics so scorers can use vote
    history without further lookups.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: Annotated[str, Field(min_length=1)]
    resource_id: Annotated[str, Field(min_length=1)]
    vote_type: VoteType
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    resource_source_id: str | None = None
    resource_topic_ids: list[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    """A persisted, ranked recommendation row.

    Unique per (user, feed type, date, resource) and per
    (user, feed type, date, position). Positions are 1-based.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Row identifier")]
    user_id: Annotated[str, Field(min_length=1)]
    feed_type: FeedType
    feed_date: date = Field(description="Date the feed was generated for")
    resource_id: Annotated[str, Field(min_length=1)]
    resource: Resource = Field(description="Snapshot of the resource at generation")
    position: Annotated[int, Field(ge=1, description="1-based rank in the feed")]
    score: float = Field(description="Final composite score")
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
