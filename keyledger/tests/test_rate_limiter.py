"""
Unit tests for daily quota accounting.
"""
from datetime import datetime, timezone

from keyledger.services import rate_limiter
from keyledger.utils.time import day_number


class TestDayNumber:
    """Test UTC day numbering"""

    def test_epoch_is_day_zero(self):
        assert day_number(datetime(1970, 1, 1, tzinfo=timezone.utc)) == 0

    def test_day_boundary_is_utc_midnight(self):
        before = datetime(2024, 1, 1, 23, 59, 59, tzinfo=timezone.utc)
        after = datetime(2024, 1, 2, 0, 0, 0, tzinfo=timezone.utc)
        assert day_number(after) == day_number(before) + 1

    def test_independent_of_caller_timezone(self):
        from datetime import timedelta
        tokyo = timezone(timedelta(hours=9))
        # 2024-01-02 08:00 in Tokyo is still 2024-01-01 in UTC
        local = datetime(2024, 1, 2, 8, 0, tzinfo=tokyo)
        assert day_number(local) == day_number(datetime(2024, 1, 1, 23, 0, tzinfo=timezone.utc))

    def test_naive_datetime_is_treated_as_utc(self):
        assert day_number(datetime(2024, 1, 1)) == day_number(datetime(2024, 1, 1, tzinfo=timezone.utc))


class TestEvaluate:
    """Test admission decisions"""

    def test_admits_under_limit(self):
        decision = rate_limiter.evaluate(3, 100, 5, 100)
        assert decision.admitted is True
        assert decision.requests_today == 4
        assert decision.last_request_day == 100
        assert decision.rolled_over is False

    def test_rejects_at_limit(self):
        decision = rate_limiter.evaluate(5, 100, 5, 100)
        assert decision.admitted is False
        assert decision.requests_today == 5
        assert decision.last_request_day == 100

    def test_rollover_resets_count(self):
        decision = rate_limiter.evaluate(5, 100, 5, 101)
        assert decision.admitted is True
        assert decision.requests_today == 1
        assert decision.last_request_day == 101
        assert decision.rolled_over is True

    def test_rejection_on_new_day_does_not_roll_over(self):
        decision = rate_limiter.evaluate(7, 100, 0, 105)
        assert decision.admitted is False
        assert decision.requests_today == 7
        assert decision.last_request_day == 100
        assert decision.rolled_over is False

    def test_clock_behind_stays_in_stored_window(self):
        decision = rate_limiter.evaluate(2, 100, 5, 99)
        assert decision.admitted is True
        assert decision.requests_today == 3
        assert decision.last_request_day == 100

    def test_zero_limit_never_admits(self):
        assert rate_limiter.evaluate(0, 100, 0, 100).admitted is False


class TestRemaining:
    """Test remaining quota"""

    def test_remaining_same_day(self):
        assert rate_limiter.remaining(3, 100, 10, 100) == 7

    def test_remaining_after_rollover(self):
        assert rate_limiter.remaining(10, 100, 10, 101) == 10

    def test_remaining_never_negative(self):
        # limit lowered below today's count
        assert rate_limiter.remaining(10, 100, 4, 100) == 0
