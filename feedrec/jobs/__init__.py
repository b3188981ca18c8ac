"""Batch jobs driving recommendation generation."""

from feedrec.jobs.daily_feed import DailyFeedJob, DailyFeedJobResult, UnitOutcome


__all__ = ["DailyFeedJob", "DailyFeedJobResult", "UnitOutcome"]
