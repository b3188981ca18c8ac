"""Daily learning-resource feed recommendations.

Generates per-user, per-feed-type ranked recommendation sets once a day
and serves them back with a most-recent-date fallback.
"""

__version__ = "0.1.0"
