"""Constants for the recommendation pipeline."""

# Scorer keys as they appear in score maps and config weights
TOPIC_SCORER_KEY = "topic"
SOURCE_SCORER_KEY = "source"
RECENCY_SCORER_KEY = "recency"
VOTE_HISTORY_SCORER_KEY = "vote_history"
SIMILARITY_SCORER_KEY = "similarity"

# Returned when a signal has nothing to go on
NEUTRAL_SCORE: float = 0.5

# Profile contribution of a single vote
UPVOTE_WEIGHT: float = 1.0
DOWNVOTE_WEIGHT: float = -0.5

# Score given to declared interests with no vote history
DECLARED_INTEREST_SCORE: float = 1.0

SECONDS_PER_DAY: float = 86_400.0
