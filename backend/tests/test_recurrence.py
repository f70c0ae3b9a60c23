"""
Tests for recurring due date calculation
"""

from datetime import date

import pytest

from retailhub.services.recurrence import advance_due_date


class TestAdvanceDueDate:
    """Tests for advance_due_date"""

    @pytest.mark.parametrize(
        "frequency, expected",
        [
            ("daily", date(2024, 1, 16)),
            ("weekly", date(2024, 1, 22)),
            ("biweekly", date(2024, 1, 29)),
            ("monthly", date(2024, 2, 15)),
            ("quarterly", date(2024, 4, 15)),
            ("yearly", date(2025, 1, 15)),
        ],
    )
    def test_frequencies(self, frequency, expected):
        assert advance_due_date(date(2024, 1, 15), frequency) == expected

    def test_month_end_clamped(self):
        """Jan 31 advances to the last day of February"""
        assert advance_due_date(date(2024, 1, 31), "monthly") == date(2024, 2, 29)
        assert advance_due_date(date(2023, 1, 31), "monthly") == date(2023, 2, 28)

    def test_anchor_day_prevents_drift(self):
        """After a short month the original day of month is restored"""
        feb = advance_due_date(date(2024, 1, 31), "monthly", anchor_day=31)
        assert advance_due_date(feb, "monthly", anchor_day=31) == date(2024, 3, 31)

    def test_year_rollover(self):
        assert advance_due_date(date(2024, 12, 10), "monthly") == date(2025, 1, 10)
        assert advance_due_date(date(2024, 11, 30), "quarterly") == date(2025, 2, 28)

    def test_leap_day_yearly(self):
        assert advance_due_date(date(2024, 2, 29), "yearly") == date(2025, 2, 28)

    def test_unknown_frequency(self):
        with pytest.raises(ValueError):
            advance_due_date(date(2024, 1, 1), "hourly")
