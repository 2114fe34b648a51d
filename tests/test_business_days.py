import unittest
from datetime import datetime, timezone

from app.contexts.rfq.domain.business_days import add_business_days
from app.errors import ValidationError


MONDAY = datetime(2026, 3, 2, 14, 30, tzinfo=timezone.utc)
FRIDAY = datetime(2026, 3, 6, 14, 30, tzinfo=timezone.utc)
SATURDAY = datetime(2026, 3, 7, 8, 0, tzinfo=timezone.utc)


class AddBusinessDaysTest(unittest.TestCase):
    def test_friday_plus_one_lands_on_monday(self) -> None:
        result = add_business_days(FRIDAY, 1)
        self.assertEqual(result.date(), datetime(2026, 3, 9).date())
        self.assertEqual(result.weekday(), 0)

    def test_monday_plus_five_is_next_monday(self) -> None:
        self.assertEqual(add_business_days(MONDAY, 5).date(), datetime(2026, 3, 9).date())

    def test_weekend_start_counts_from_next_weekday(self) -> None:
        self.assertEqual(add_business_days(SATURDAY, 1).date(), datetime(2026, 3, 9).date())

    def test_zero_days_returns_start(self) -> None:
        self.assertEqual(add_business_days(SATURDAY, 0), SATURDAY)

    def test_time_of_day_is_preserved(self) -> None:
        result = add_business_days(MONDAY, 3)
        self.assertEqual((result.hour, result.minute), (14, 30))
        self.assertEqual(result.date(), datetime(2026, 3, 5).date())

    def test_result_never_falls_on_weekend(self) -> None:
        for days in range(1, 25):
            self.assertLess(add_business_days(FRIDAY, days).weekday(), 5, f"days={days}")

    def test_negative_days_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            add_business_days(MONDAY, -1)

    def test_non_integer_days_are_rejected(self) -> None:
        for value in (1.5, "3", True):
            with self.assertRaises(ValidationError):
                add_business_days(MONDAY, value)


if __name__ == "__main__":
    unittest.main()
