"""Pipeline orchestration - the feed polling loop."""

from .scheduler import FeedScheduler, CycleResult, SchedulerState, parse_interval

__all__ = ["FeedScheduler", "CycleResult", "SchedulerState", "parse_interval"]
