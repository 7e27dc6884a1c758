from datetime import date, timedelta

import pytest

from app.services.cycle_calculator import CycleBounds, add_calendar_months, compute_cycle_bounds


def test_monthly_cycle_from_first_of_month() -> None:
    assert compute_cycle_bounds(date(2025, 1, 1), "monthly") == CycleBounds(
        end=date(2025, 1, 31),
        next_start=date(2025, 2, 1),
    )


def test_month_end_start_clamps_into_leap_february() -> None:
    bounds = compute_cycle_bounds(date(2024, 1, 31), "monthly")
    assert bounds.end == date(2024, 2, 28)
    assert bounds.next_start == date(2024, 2, 29)


def test_month_end_start_clamps_into_common_february() -> None:
    bounds = compute_cycle_bounds(date(2023, 1, 31), "monthly")
    assert bounds.end == date(2023, 2, 27)
    assert bounds.next_start == date(2023, 2, 28)


def test_quarterly_and_yearly_periods() -> None:
    assert compute_cycle_bounds(date(2025, 1, 15), "quarterly") == CycleBounds(
        end=date(2025, 4, 14),
        next_start=date(2025, 4, 15),
    )
    assert compute_cycle_bounds(date(2025, 11, 30), "quarterly") == CycleBounds(
        end=date(2026, 2, 27),
        next_start=date(2026, 2, 28),
    )
    assert compute_cycle_bounds(date(2025, 3, 1), "yearly") == CycleBounds(
        end=date(2026, 2, 28),
        next_start=date(2026, 3, 1),
    )
    assert compute_cycle_bounds(date(2024, 2, 29), "yearly") == CycleBounds(
        end=date(2025, 2, 27),
        next_start=date(2025, 2, 28),
    )


@pytest.mark.parametrize("cadence", ["monthly", "quarterly", "yearly"])
def test_successive_cycles_are_contiguous(cadence: str) -> None:
    start = date(2024, 1, 31)
    for _ in range(30):
        bounds = compute_cycle_bounds(start, cadence)
        assert bounds.end >= start
        assert bounds.next_start == bounds.end + timedelta(days=1)

        following = compute_cycle_bounds(bounds.next_start, cadence)
        assert following.end > bounds.end
        start = bounds.next_start


def test_add_calendar_months_crosses_year_boundary() -> None:
    assert add_calendar_months(date(2025, 11, 30), 3) == date(2026, 2, 28)
    assert add_calendar_months(date(2025, 12, 31), 1) == date(2026, 1, 31)


@pytest.mark.parametrize("cadence", ["custom", "weekly", ""])
def test_unsupported_cadence_is_rejected(cadence: str) -> None:
    with pytest.raises(ValueError, match="Unsupported cadence"):
        compute_cycle_bounds(date(2025, 1, 1), cadence)
