"""Period value type tests."""

from datetime import datetime

import pytest

from riskintel.errors import InvalidPeriodError
from riskintel.periods.schemas import Period


class TestParse:
    @pytest.mark.parametrize(
        "text", ["Q3 2025", "q3 2025", "2025-Q3", "2025-q3", " 2025 - Q3 ", "Q3  2025"]
    )
    def test_accepted_forms(self, text):
        assert Period.parse(text) == Period(2025, 3)

    @pytest.mark.parametrize("text", ["", "Q5 2025", "Q0 2025", "2025", "Q3/2025", "third quarter"])
    def test_rejected(self, text):
        with pytest.raises(InvalidPeriodError):
            Period.parse(text)

    def test_direct_construction_is_validated(self):
        with pytest.raises(InvalidPeriodError):
            Period(2025, 5)


class TestArithmetic:
    def test_next_and_previous_wrap_years(self):
        assert Period(2025, 4).next() == Period(2026, 1)
        assert Period(2026, 1).previous() == Period(2025, 4)
        assert Period(2025, 2).next() == Period(2025, 3)

    def test_ordering(self):
        assert Period(2024, 4) < Period(2025, 1) < Period(2025, 2)
        assert sorted([Period(2025, 2), Period(2024, 3)]) == [Period(2024, 3), Period(2025, 2)]

    def test_str(self):
        assert str(Period(2025, 3)) == "Q3 2025"
        assert Period.parse(str(Period(2031, 1))) == Period(2031, 1)

    @pytest.mark.parametrize(
        "month,quarter", [(1, 1), (3, 1), (4, 2), (6, 2), (7, 3), (9, 3), (10, 4), (12, 4)]
    )
    def test_current(self, month, quarter):
        assert Period.current(datetime(2025, month, 15)) == Period(2025, quarter)
