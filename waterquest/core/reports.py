"""Report Generation - Pure functions for hydration history reports.

All functions are pure: same input always produces same output, no side effects.
"""

from datetime import date, timedelta

from .models import DayTotal, HydrationEntry, HydrationReport


REPORT_TIMEFRAMES = (7, 30)


def generate_day_total(entries: list[HydrationEntry], day: date, goal_ml: float) -> DayTotal:
    """Summarize a single calendar day.

    Args:
        entries: Entry history (entries on other days are ignored)
        day: The day to summarize
        goal_ml: Goal the day is judged against

    Returns:
        DayTotal for the day
    """
    day_entries = [e for e in entries if e.logged_at.date() == day]
    total = sum(e.volume_ml for e in day_entries)

    return DayTotal(
        day=day,
        total_ml=round(total, 1),
        entry_count=len(day_entries),
        goal_met=total >= max(1.0, goal_ml),
    )


def generate_hydration_report(
    entries: list[HydrationEntry],
    goal_ml: float,
    days: int = 7,
    today: date | None = None,
) -> HydrationReport:
    """Generate a report over the trailing `days` days ending today.

    Every day in the window appears, including days with no entries, and the
    average is taken over the whole window. Historic days are judged against
    the current goal.

    Args:
        entries: Entry history
        goal_ml: Current goal total
        days: Window length (7 and 30 are the standard timeframes)
        today: Last day of the window (defaults to today)

    Returns:
        HydrationReport with per-day totals oldest first
    """
    if days < 1:
        raise ValueError("days must be at least 1")

    if today is None:
        today = date.today()

    start = today - timedelta(days=days - 1)
    day_totals = [generate_day_total(entries, start + timedelta(days=offset), goal_ml) for offset in range(days)]

    total_ml = sum(d.total_ml for d in day_totals)

    return HydrationReport(
        start=start,
        end=today,
        days=day_totals,
        total_ml=round(total_ml, 1),
        average_ml=round(total_ml / days, 1),
        days_logged=sum(1 for d in day_totals if d.entry_count > 0),
        days_goal_met=sum(1 for d in day_totals if d.goal_met),
    )
