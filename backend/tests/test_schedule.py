# Overview: Pytest coverage for installment schedule generation and calendar arithmetic.

from datetime import date

import pytest

from closet.errors import InvalidSchedule
from closet.services.schedule import generate_schedule
from closet.time_utils import add_months, end_of_week


class TestGenerateSchedule:

    def test_three_even_installments(self):
        rows = generate_schedule(30000, 0, 3, start_date=date(2024, 1, 1))

        assert [r.amount_due_cents for r in rows] == [10000, 10000, 10000]
        assert [r.due_date for r in rows] == [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]
        assert [r.sequence for r in rows] == [1, 2, 3]

    def test_remainder_lands_on_last_installment(self):
        rows = generate_schedule(10000, 0, 3, start_date=date(2024, 1, 1))
        assert [r.amount_due_cents for r in rows] == [3333, 3333, 3334]

    def test_entry_payment_is_not_financed(self):
        rows = generate_schedule(30000, 5000, 2, start_date=date(2024, 1, 1))
        assert sum(r.amount_due_cents for r in rows) == 25000

    @pytest.mark.parametrize("total, entry, n", [
        (30000, 0, 3),
        (10001, 1, 7),
        (99999, 333, 12),
        (500, 499, 1),
        (12345, 0, 10),
    ])
    def test_sum_equals_principal(self, total, entry, n):
        rows = generate_schedule(total, entry, n, start_date=date(2024, 5, 15))
        assert sum(r.amount_due_cents for r in rows) == total - entry
        assert len(rows) == n

    def test_month_end_clamping_is_computed_from_start(self):
        rows = generate_schedule(40000, 0, 4, start_date=date(2023, 12, 31))
        assert [r.due_date for r in rows] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]

    def test_start_defaults_to_creation_date(self):
        rows = generate_schedule(20000, 0, 2, created_on=date(2024, 6, 10))
        assert [r.due_date for r in rows] == [date(2024, 7, 10), date(2024, 8, 10)]

    def test_single_installment_is_due_on_start(self):
        rows = generate_schedule(15000, 5000, 1, start_date=date(2024, 3, 5))
        assert len(rows) == 1
        assert rows[0].due_date == date(2024, 3, 5)
        assert rows[0].amount_due_cents == 10000

    def test_single_installment_without_start_is_due_on_creation(self):
        rows = generate_schedule(15000, 0, 1, created_on=date(2024, 3, 5))
        assert rows[0].due_date == date(2024, 3, 5)

    def test_principal_smaller_than_count(self):
        rows = generate_schedule(2, 0, 3, start_date=date(2024, 1, 1))
        assert [r.amount_due_cents for r in rows] == [0, 0, 2]
        assert rows[-1].due_date == date(2024, 4, 1)

    @pytest.mark.parametrize("total, entry, n", [
        (10000, 10000, 2),   # nothing financed
        (10000, 12000, 2),   # entry above total
        (10000, 0, 0),
        (10000, 0, -1),
        (10000, -1, 2),
        (10000, 0, 241),     # more than twenty years
    ])
    def test_invalid_inputs(self, total, entry, n):
        with pytest.raises(InvalidSchedule):
            generate_schedule(total, entry, n, start_date=date(2024, 1, 1))


class TestCalendarHelpers:

    def test_add_months_crosses_year(self):
        assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)

    def test_add_months_leap_year(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_end_of_week_is_next_sunday(self):
        # 2024-03-06 is a Wednesday
        assert end_of_week(date(2024, 3, 6)) == date(2024, 3, 10)

    def test_end_of_week_on_sunday_is_following_sunday(self):
        assert end_of_week(date(2024, 3, 10)) == date(2024, 3, 17)
