from datetime import date

from renderer import choose_timeline_mode


def test_timeline_mode_days_up_to_six_weeks():
    assert choose_timeline_mode(date(2026, 1, 1), date(2026, 2, 11)) == "days"  # 42 days


def test_timeline_mode_weeks_under_4_months():
    assert choose_timeline_mode(date(2026, 1, 1), date(2026, 3, 31)) == "weeks"


def test_timeline_mode_months_at_4_months():
    assert choose_timeline_mode(date(2026, 1, 1), date(2026, 4, 30)) == "months"


def test_timeline_mode_months_for_long_ranges():
    assert choose_timeline_mode(date(2026, 1, 1), date(2028, 1, 1)) == "months"
