"""Progression - Pure functions for quests, streaks and achievements.

Every function takes a GameState and returns a new one; inputs are never
mutated. Streak and achievements are always recomputed from the full entry
history, so a deleted or edited entry goes through the same path as a newly
logged one.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from .dates import is_same_day, is_yesterday_of
from .models import Achievement, GameState, HydrationEntry, Quest


EARLY_BIRD_HOUR = 7
NIGHT_OWL_HOUR = 22

# (id, title, detail, goal fraction, deadline hour, reward xp)
QUEST_TEMPLATE = (
    ("morning-splash", "Morning Splash", "Hit 20% before 11 AM", 0.2, 11, 40),
    ("steady-sips", "Steady Sips", "Reach 50% before 4 PM", 0.5, 16, 70),
    ("finish-line", "Finish Line", "Complete your full goal", 1.0, None, 120),
)


@dataclass(frozen=True)
class HistoryStats:
    """Aggregates over the full entry history that milestone predicates read."""

    entries: tuple[HydrationEntry, ...]
    today_total_ml: float
    goal_ml: float
    streak_days: int
    total_ml: float
    logged_days: int
    goal_days: int

    @classmethod
    def collect(
        cls,
        entries: list[HydrationEntry],
        today_total_ml: float,
        goal_ml: float,
        streak_days: int,
    ) -> "HistoryStats":
        return cls(
            entries=tuple(entries),
            today_total_ml=today_total_ml,
            goal_ml=goal_ml,
            streak_days=streak_days,
            total_ml=sum(e.volume_ml for e in entries),
            logged_days=count_logged_days(entries),
            goal_days=count_goal_days(entries, goal_ml),
        )


@dataclass(frozen=True)
class Milestone:
    """Catalog definition of an achievement."""

    id: str
    title: str
    detail: str
    predicate: Callable[[HistoryStats], bool]

    def to_achievement(self) -> Achievement:
        return Achievement(id=self.id, title=self.title, detail=self.detail)


def _has_entry_before_hour(hour: int) -> Callable[[HistoryStats], bool]:
    return lambda s: any(e.logged_at.hour < hour for e in s.entries)


def _has_entry_at_or_after_hour(hour: int) -> Callable[[HistoryStats], bool]:
    return lambda s: any(e.logged_at.hour >= hour for e in s.entries)


ACHIEVEMENT_CATALOG: tuple[Milestone, ...] = (
    Milestone("first-sip", "First Sip", "Log your first drink.", lambda s: len(s.entries) > 0),
    Milestone("early-bird", "Early Bird", "Log water before 7 AM.", _has_entry_before_hour(EARLY_BIRD_HOUR)),
    Milestone("night-owl", "Night Owl", "Log water after 10 PM.", _has_entry_at_or_after_hour(NIGHT_OWL_HOUR)),
    Milestone("streak-3", "3-Day Flow", "Keep a 3-day streak.", lambda s: s.streak_days >= 3),
    Milestone("streak-7", "7-Day River", "Keep a 7-day streak.", lambda s: s.streak_days >= 7),
    Milestone("streak-14", "14-Day Current", "Keep a 14-day streak.", lambda s: s.streak_days >= 14),
    Milestone("streak-30", "30-Day Tide", "Keep a 30-day streak.", lambda s: s.streak_days >= 30),
    Milestone("days-30", "Consistency Champ", "Log water on 30 different days.", lambda s: s.logged_days >= 30),
    Milestone("goal-day", "Goal Day", "Reach your daily goal once.", lambda s: s.today_total_ml >= s.goal_ml),
    Milestone("goal-10", "Tenfold", "Hit your goal 10 times.", lambda s: s.goal_days >= 10),
    Milestone("goal-25", "Quarter Century", "Hit your goal 25 times.", lambda s: s.goal_days >= 25),
    Milestone("entries-25", "Steady Sipper", "Log 25 water entries.", lambda s: len(s.entries) >= 25),
    Milestone("entries-100", "Hydration Habit", "Log 100 water entries.", lambda s: len(s.entries) >= 100),
    Milestone("total-10k", "Deep Reservoir", "Log 10,000 mL total.", lambda s: s.total_ml >= 10_000),
    Milestone("total-50k", "Lake Maker", "Log 50,000 mL total.", lambda s: s.total_ml >= 50_000),
)


# ==================== Quests ====================


def build_daily_quests(goal_ml: float) -> list[Quest]:
    """Instantiate the quest template against the current goal."""
    return [
        Quest(
            id=quest_id,
            title=title,
            detail=detail,
            target_ml=goal_ml * fraction,
            deadline_hour=deadline_hour,
            reward_xp=reward,
        )
        for quest_id, title, detail, fraction, deadline_hour, reward in QUEST_TEMPLATE
    ]


def refresh_daily_quests(state: GameState, goal_ml: float, now: datetime) -> GameState:
    """Replace the quest list once per calendar day.

    A no-op if quests were already refreshed on `now`'s calendar day, even if
    the goal has changed since. Progress from a prior day is discarded.

    Args:
        state: Current game state
        goal_ml: Current goal total
        now: Wall-clock time of the refresh

    Returns:
        The same state if already refreshed today, otherwise a new state
    """
    if state.last_quest_refresh is not None and is_same_day(state.last_quest_refresh, now):
        return state

    return state.model_copy(update={
        "quests": build_daily_quests(goal_ml),
        "last_quest_refresh": now,
    })


def advance_quests(quests: list[Quest], hour: int, today_total_ml: float, goal_ml: float) -> list[Quest]:
    """Apply today's total to every open, incomplete quest.

    Completed quests stay completed. Quests past their deadline hour are
    frozen.
    """
    progress = min(goal_ml, today_total_ml)
    advanced = []
    for quest in quests:
        if quest.is_completed or not quest.is_open_at(hour):
            advanced.append(quest)
            continue
        advanced.append(quest.model_copy(update={
            "progress_ml": progress,
            "is_completed": progress >= quest.target_ml,
        }))
    return advanced


# ==================== Streak ====================


def update_streak(
    streak_days: int,
    last_streak_date: Optional[datetime],
    entries: list[HydrationEntry],
) -> tuple[int, Optional[datetime]]:
    """Recompute the streak from the chronologically last entry.

    Same day as the recorded streak day: unchanged. Recorded day is the day
    before: +1. Anything else (a gap, or a last entry dated before the
    recorded day after a deletion): reset to 1. No entries: unchanged.

    Args:
        streak_days: Current streak count
        last_streak_date: Day the streak was last counted
        entries: Full entry history, any order

    Returns:
        Tuple of (streak_days, last_streak_date)
    """
    if not entries:
        return streak_days, last_streak_date

    last_entry = max(entries, key=lambda e: e.logged_at)
    last_day = last_entry.logged_at

    if last_streak_date is None:
        return 1, last_day
    if is_same_day(last_day, last_streak_date):
        return streak_days, last_streak_date
    if is_yesterday_of(last_streak_date, last_day):
        return streak_days + 1, last_day
    return 1, last_day


# ==================== Achievements ====================


def count_logged_days(entries: list[HydrationEntry]) -> int:
    return len({e.logged_at.date() for e in entries})


def daily_totals(entries: list[HydrationEntry]) -> dict[date, float]:
    totals: dict[date, float] = defaultdict(float)
    for entry in entries:
        totals[entry.logged_at.date()] += entry.volume_ml
    return dict(totals)


def count_goal_days(entries: list[HydrationEntry], goal_ml: float) -> int:
    """Days whose total reaches the goal. Every day is judged against the current goal."""
    return sum(1 for total in daily_totals(entries).values() if total >= goal_ml)


def merge_achievement_catalog(achievements: list[Achievement]) -> list[Achievement]:
    """Merge persisted achievements with the current catalog.

    Catalog entries take their title and detail from the catalog and their
    unlock state from persistence. Ids no longer in the catalog are kept
    after the catalog entries, untouched.
    """
    persisted = {a.id: a for a in achievements}
    catalog_ids = {m.id for m in ACHIEVEMENT_CATALOG}

    merged = []
    for milestone in ACHIEVEMENT_CATALOG:
        achievement = milestone.to_achievement()
        existing = persisted.get(milestone.id)
        if existing is not None:
            achievement = achievement.model_copy(update={
                "is_unlocked": existing.is_unlocked,
                "unlocked_at": existing.unlocked_at,
            })
        merged.append(achievement)

    legacy = [a for a in achievements if a.id not in catalog_ids]
    return merged + legacy


def evaluate_achievements(
    achievements: list[Achievement],
    stats: HistoryStats,
    now: datetime,
) -> tuple[list[Achievement], list[Achievement]]:
    """Latch every achievement whose predicate holds.

    Flags are never cleared. Already-unlocked achievements keep their
    original unlock time.

    Returns:
        Tuple of (all achievements, newly unlocked achievements)
    """
    predicates = {m.id: m.predicate for m in ACHIEVEMENT_CATALOG}
    updated = []
    newly_unlocked = []

    for achievement in achievements:
        predicate = predicates.get(achievement.id)
        if achievement.is_unlocked or predicate is None or not predicate(stats):
            updated.append(achievement)
            continue
        unlocked = achievement.model_copy(update={"is_unlocked": True, "unlocked_at": now})
        updated.append(unlocked)
        newly_unlocked.append(unlocked)

    return updated, newly_unlocked


def refresh_milestones(
    state: GameState,
    entries: list[HydrationEntry],
    today_total_ml: float,
    goal_ml: float,
    now: datetime,
) -> tuple[GameState, list[Achievement]]:
    """Recompute streak, merge the catalog and re-evaluate achievements."""
    streak_days, last_streak_date = update_streak(state.streak_days, state.last_streak_date, entries)
    stats = HistoryStats.collect(entries, today_total_ml, goal_ml, streak_days)
    achievements, newly_unlocked = evaluate_achievements(
        merge_achievement_catalog(state.achievements), stats, now
    )

    return state.model_copy(update={
        "streak_days": streak_days,
        "last_streak_date": last_streak_date,
        "achievements": achievements,
    }), newly_unlocked


# ==================== Entry points ====================


def apply_intake(
    state: GameState,
    entry: HydrationEntry,
    today_total_ml: float,
    goal_ml: float,
    all_entries: list[HydrationEntry],
    now: Optional[datetime] = None,
) -> tuple[GameState, list[Achievement]]:
    """Advance the game state for a newly logged entry.

    Quest deadlines are judged against the entry's hour.

    Args:
        state: Current game state
        entry: The entry just logged
        today_total_ml: Today's total including the entry
        goal_ml: Current goal total
        all_entries: Full entry history including the entry
        now: Unlock timestamp (defaults to the wall clock)

    Returns:
        Tuple of (new state, newly unlocked achievements)
    """
    now = now or datetime.now()
    quests = advance_quests(state.quests, entry.logged_at.hour, today_total_ml, goal_ml)
    return refresh_milestones(
        state.model_copy(update={"quests": quests}), all_entries, today_total_ml, goal_ml, now
    )


def recompute_progress(
    state: GameState,
    today_total_ml: float,
    goal_ml: float,
    all_entries: list[HydrationEntry],
    now: datetime,
) -> tuple[GameState, list[Achievement]]:
    """Recompute after an edit, deletion, sync or input change.

    Same path as apply_intake, with quest deadlines judged against `now`.
    """
    quests = advance_quests(state.quests, now.hour, today_total_ml, goal_ml)
    return refresh_milestones(
        state.model_copy(update={"quests": quests}), all_entries, today_total_ml, goal_ml, now
    )
