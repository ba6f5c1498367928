"""
Daily request quota accounting.

Pure functions over a key's counters and the current UTC day number. A
request arriving on a later day than ``last_request_day`` starts a new
window: it is admitted against an effective count of zero. The rollover
is only ever committed together with an admitted request, so a rejected
request leaves every counter as it was.
"""
from typing import NamedTuple


class RateDecision(NamedTuple):
    """Outcome of a quota admission check."""
    admitted: bool
    requests_today: int
    last_request_day: int
    rolled_over: bool


def effective_requests_today(requests_today: int, last_request_day: int, current_day: int) -> int:
    """Requests counted against ``current_day`` before any new request."""
    if current_day > last_request_day:
        return 0
    return requests_today


def evaluate(
    requests_today: int,
    last_request_day: int,
    rate_limit: int,
    current_day: int,
) -> RateDecision:
    """
    Decide whether one more request fits in today's quota.

    Args:
        requests_today: Stored count for ``last_request_day``
        last_request_day: Day the stored count belongs to
        rate_limit: Requests allowed per day
        current_day: Current UTC day number

    Returns:
        RateDecision: on admission, the counter values to store; on
            rejection, the stored values unchanged.
    """
    rolled_over = current_day > last_request_day
    effective = effective_requests_today(requests_today, last_request_day, current_day)

    if effective >= rate_limit:
        return RateDecision(False, requests_today, last_request_day, False)

    # A clock running behind last_request_day stays in the stored window.
    return RateDecision(
        True,
        effective + 1,
        current_day if rolled_over else last_request_day,
        rolled_over,
    )


def remaining(requests_today: int, last_request_day: int, rate_limit: int, current_day: int) -> int:
    """Requests still available on ``current_day``."""
    used = effective_requests_today(requests_today, last_request_day, current_day)
    return max(rate_limit - used, 0)
