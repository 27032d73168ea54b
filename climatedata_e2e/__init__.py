"""End-to-end test helpers for the climate data portal's adjusted station data page."""
from .polling import ConditionPoller, PollAttempt, PollConfig, PollOutcome, PollTimeoutError, poll

__all__ = [
    "ConditionPoller",
    "PollAttempt",
    "PollConfig",
    "PollOutcome",
    "PollTimeoutError",
    "poll",
]
