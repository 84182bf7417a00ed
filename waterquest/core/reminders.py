"""Reminder Scheduling - Pure functions deciding when and what to remind.

Nothing here keeps a job store. Every plan is a function of the profile,
the entries, the goal and the current time, so callers can throw away all
pending reminders in the `waterquest.` namespace and recompute at any time.

Two adaptive models exist:
    - schedule_pass: a batch of future-dated requests up to sleep time
    - evaluate_live: a single fire-now decision for a long-running loop,
      with at most one escalation per quiet stretch
Fixed-schedule mode ignores intake entirely.
"""

from datetime import datetime, timedelta
from typing import Optional

from .dates import at_minute, is_same_day, minute_of_day
from .messages import REMINDER_TITLE, canned_message, fixed_message, progress_fraction
from .models import HydrationEntry, LiveReminderState, ReminderKind, ReminderRequest, UserProfile


REMINDER_NAMESPACE = "waterquest."
ADAPTIVE_PREFIX = REMINDER_NAMESPACE + "smart."
FIXED_PREFIX = REMINDER_NAMESPACE + "classic."
LIVE_PREFIX = REMINDER_NAMESPACE + "live."

REMINDERS_PER_DAY = 8
MIN_INTERVAL_MINUTES = 60
MAX_INTERVAL_MINUTES = 150
MIN_AWAKE_MINUTES = 60
MAX_SCHEDULED_REMINDERS = 20
MAX_FIXED_REMINDERS = 12
IMMINENT_DELAY = timedelta(seconds=60)
ESCALATION_MULTIPLIER = 2


def awake_minutes(profile: UserProfile) -> int:
    return max(MIN_AWAKE_MINUTES, profile.sleep_minutes - profile.wake_minutes)


def interval_minutes(profile: UserProfile) -> float:
    """Aim for REMINDERS_PER_DAY across the awake window, clamped to 60-150 minutes."""
    return min(max(awake_minutes(profile) / REMINDERS_PER_DAY, MIN_INTERVAL_MINUTES), MAX_INTERVAL_MINUTES)


def base_interval(profile: UserProfile) -> timedelta:
    return timedelta(minutes=interval_minutes(profile))


def today_entries(entries: list[HydrationEntry], now: datetime) -> list[HydrationEntry]:
    return [e for e in entries if is_same_day(e.logged_at, now)]


def today_total_ml(entries: list[HydrationEntry], now: datetime) -> float:
    return sum(e.volume_ml for e in today_entries(entries, now))


def last_entry_today(entries: list[HydrationEntry], now: datetime) -> Optional[HydrationEntry]:
    todays = today_entries(entries, now)
    if not todays:
        return None
    return max(todays, key=lambda e: e.logged_at)


def schedule_pass(
    profile: UserProfile,
    entries: list[HydrationEntry],
    goal_ml: float,
    now: datetime,
) -> list[ReminderRequest]:
    """Plan adaptive reminders from now until sleep time.

    Nothing is planned once the day is over or the goal is met. The first
    candidate is one interval after the most recent entry today (or after
    wake time); an overdue candidate is collapsed to fire imminently rather
    than skipped.

    Args:
        profile: User profile
        entries: Entry history (only today's entries matter)
        goal_ml: Current goal total
        now: Wall-clock time of the pass

    Returns:
        Up to MAX_SCHEDULED_REMINDERS requests, earliest first
    """
    if minute_of_day(now) >= profile.sleep_minutes:
        return []

    total = today_total_ml(entries, now)
    if total >= goal_ml:
        return []

    interval = base_interval(profile)
    recent = last_entry_today(entries, now)
    anchor = recent.logged_at if recent is not None else at_minute(now, profile.wake_minutes)

    fire_at = anchor + interval
    imminent = False
    if fire_at <= now:
        fire_at = now + IMMINENT_DELAY
        imminent = True

    sleep_at = at_minute(now, profile.sleep_minutes)
    progress = progress_fraction(total, goal_ml)

    requests = []
    while fire_at < sleep_at and len(requests) < MAX_SCHEDULED_REMINDERS:
        index = len(requests)
        requests.append(ReminderRequest(
            identifier=f"{ADAPTIVE_PREFIX}{index}",
            kind=ReminderKind.ADAPTIVE,
            fire_at=fire_at,
            minute_of_day=minute_of_day(fire_at),
            title=REMINDER_TITLE,
            body=canned_message(progress, index),
            progress=progress,
            imminent=imminent and index == 0,
        ))
        fire_at += interval

    return requests


def fixed_reminder_count(profile: UserProfile) -> int:
    count = round(awake_minutes(profile) / interval_minutes(profile))
    return max(1, min(MAX_FIXED_REMINDERS, count))


def fixed_reminder_minutes(wake_minutes: int, sleep_minutes: int, count: int) -> list[int]:
    """Evenly divide the awake window into `count` clock times starting at wake."""
    count = max(1, min(MAX_FIXED_REMINDERS, count))
    gap = max(1, sleep_minutes - wake_minutes) // count
    return [wake_minutes + i * gap for i in range(count)]


def fixed_schedule(profile: UserProfile, now: datetime) -> list[ReminderRequest]:
    """Daily repeating reminders at fixed clock times, regardless of intake."""
    minutes = fixed_reminder_minutes(profile.wake_minutes, profile.sleep_minutes, fixed_reminder_count(profile))
    return [
        ReminderRequest(
            identifier=f"{FIXED_PREFIX}{index}",
            kind=ReminderKind.FIXED,
            fire_at=at_minute(now, minute),
            minute_of_day=minute,
            title=REMINDER_TITLE,
            body=fixed_message(index),
            repeats_daily=True,
        )
        for index, minute in enumerate(minutes)
    ]


def plan_reminders(
    profile: UserProfile,
    entries: list[HydrationEntry],
    goal_ml: float,
    now: datetime,
) -> list[ReminderRequest]:
    """Plan the full batch for whichever mode the profile selects."""
    if not profile.reminders_enabled:
        return []
    if profile.smart_reminders_enabled:
        return schedule_pass(profile, entries, goal_ml, now)
    return fixed_schedule(profile, now)


def evaluate_live(
    profile: UserProfile,
    entries: list[HydrationEntry],
    goal_ml: float,
    now: datetime,
    state: LiveReminderState,
) -> tuple[Optional[ReminderRequest], LiveReminderState]:
    """Decide whether a live loop should fire a reminder right now.

    A reminder is due one interval after the later of the most recent entry
    today (or wake time) and the last reminder fired today. If the user has
    been quiet for more than twice the interval and no escalation has fired
    since the last intake, the reminder is an escalation.

    Args:
        profile: User profile
        entries: Entry history
        goal_ml: Current goal total
        now: Wall-clock time of the evaluation
        state: Transient latch state from the previous evaluation

    Returns:
        Tuple of (request or None, next state)
    """
    if not profile.reminders_enabled or not profile.smart_reminders_enabled:
        return None, state

    minute = minute_of_day(now)
    if minute < profile.wake_minutes or minute >= profile.sleep_minutes:
        return None, state

    total = today_total_ml(entries, now)
    if total >= goal_ml:
        return None, state

    interval = base_interval(profile)
    recent = last_entry_today(entries, now)
    quiet_since = recent.logged_at if recent is not None else at_minute(now, profile.wake_minutes)

    anchor = quiet_since
    if state.last_fired_at is not None and is_same_day(state.last_fired_at, now):
        anchor = max(anchor, state.last_fired_at)
    if now < anchor + interval:
        return None, state

    escalate = not state.escalation_fired and now - quiet_since > interval * ESCALATION_MULTIPLIER
    progress = progress_fraction(total, goal_ml)
    index = int((now - at_minute(now, profile.wake_minutes)) / interval)

    request = ReminderRequest(
        identifier=f"{LIVE_PREFIX}{now:%Y%m%d%H%M}",
        kind=ReminderKind.ESCALATION if escalate else ReminderKind.ADAPTIVE,
        fire_at=now,
        minute_of_day=minute,
        title=REMINDER_TITLE,
        body=canned_message(progress, index, is_escalation=escalate),
        progress=progress,
        is_escalation=escalate,
        imminent=True,
    )
    next_state = LiveReminderState(
        escalation_fired=state.escalation_fired or escalate,
        last_fired_at=now,
    )
    return request, next_state
