"""Unit tests for progression - quests, streaks and achievements."""

from datetime import datetime, timedelta

from waterquest.core.models import Achievement, GameState, HydrationEntry
from waterquest.core.progression import (
    ACHIEVEMENT_CATALOG,
    HistoryStats,
    apply_intake,
    count_goal_days,
    count_logged_days,
    evaluate_achievements,
    merge_achievement_catalog,
    recompute_progress,
    refresh_daily_quests,
    update_streak,
)


DAY = datetime(2025, 3, 10)


def entry(day_offset: int = 0, hour: int = 12, minute: int = 0, volume: float = 250) -> HydrationEntry:
    return HydrationEntry(
        logged_at=DAY + timedelta(days=day_offset, hours=hour, minutes=minute),
        volume_ml=volume,
    )


def fresh_state(goal_ml: float = 2400, now: datetime = DAY + timedelta(hours=7)) -> GameState:
    state = GameState(achievements=merge_achievement_catalog([]))
    return refresh_daily_quests(state, goal_ml, now)


class TestRefreshDailyQuests:
    """Tests for refresh_daily_quests."""

    def test_builds_template(self):
        """Three quests at 20%, 50% and 100% of the goal."""
        state = fresh_state(2400)
        assert [q.id for q in state.quests] == ["morning-splash", "steady-sips", "finish-line"]
        assert [q.target_ml for q in state.quests] == [480, 1200, 2400]
        assert [q.deadline_hour for q in state.quests] == [11, 16, None]
        assert all(q.progress_ml == 0 and not q.is_completed for q in state.quests)

    def test_idempotent_within_day(self):
        """A second refresh on the same day changes nothing, even with a new goal."""
        state = fresh_state(2400, DAY + timedelta(hours=7))
        again = refresh_daily_quests(state, 3000, DAY + timedelta(hours=21))
        assert again.quests == state.quests
        assert again.last_quest_refresh == state.last_quest_refresh

    def test_new_day_discards_progress(self):
        """The next day instantiates a fresh template."""
        state = fresh_state(2400)
        state, _ = apply_intake(state, entry(hour=8, volume=600), 600, 2400, [entry(hour=8, volume=600)], DAY)
        assert state.quests[0].is_completed

        tomorrow = refresh_daily_quests(state, 2000, DAY + timedelta(days=1, hours=6))
        assert [q.target_ml for q in tomorrow.quests] == [400, 1000, 2000]
        assert not any(q.is_completed for q in tomorrow.quests)

    def test_input_not_mutated(self):
        """Refreshing returns a new state."""
        state = GameState()
        refreshed = refresh_daily_quests(state, 2400, DAY)
        assert state.quests == []
        assert len(refreshed.quests) == 3


class TestQuestProgress:
    """Tests for quest progress via apply_intake."""

    def test_progress_capped_at_goal(self):
        """Progress is today's total capped at the goal."""
        drink = entry(hour=9, volume=3000)
        state, _ = apply_intake(fresh_state(2400), drink, 3000, 2400, [drink], DAY)
        assert all(q.progress_ml == 2400 for q in state.quests)
        assert all(q.is_completed for q in state.quests)

    def test_deadline_freezes_quest(self):
        """A quest past its deadline hour gets no further progress."""
        drink = entry(hour=12, volume=600)
        state, _ = apply_intake(fresh_state(2400), drink, 600, 2400, [drink], DAY)
        morning, steady, finish = state.quests
        assert morning.progress_ml == 0
        assert not morning.is_completed
        assert steady.progress_ml == 600
        assert finish.progress_ml == 600

    def test_deadline_hour_itself_counts(self):
        """An entry during the deadline hour still counts."""
        drink = entry(hour=11, minute=45, volume=500)
        state, _ = apply_intake(fresh_state(2400), drink, 500, 2400, [drink], DAY)
        assert state.quests[0].is_completed

    def test_completed_quest_not_reopened(self):
        """Recomputing with a lower total leaves completed quests alone."""
        drink = entry(hour=9, volume=500)
        state, _ = apply_intake(fresh_state(2400), drink, 500, 2400, [drink], DAY)
        state, _ = recompute_progress(state, 0, 2400, [], DAY + timedelta(hours=10))
        assert state.quests[0].is_completed
        assert state.quests[0].progress_ml == 500
        assert state.quests[2].progress_ml == 0


class TestUpdateStreak:
    """Tests for update_streak."""

    def test_no_entries_unchanged(self):
        """Empty history leaves the streak alone."""
        assert update_streak(4, DAY, []) == (4, DAY)

    def test_first_entry_starts_streak(self):
        """No recorded streak day starts at 1."""
        e = entry()
        assert update_streak(0, None, [e]) == (1, e.logged_at)

    def test_consecutive_days(self):
        """D, D+1, D+2 yields a streak of 3."""
        history = []
        streak, last = 0, None
        for offset in range(3):
            history.append(entry(offset))
            streak, last = update_streak(streak, last, history)
        assert streak == 3

    def test_same_day_reentry(self):
        """More entries on the same day do not change the streak."""
        first = entry(hour=8)
        streak, last = update_streak(0, None, [first])
        streak, last = update_streak(streak, last, [first, entry(hour=20)])
        assert streak == 1
        assert last == first.logged_at

    def test_gap_resets(self):
        """A gap after D+2 resets to 1 at D+4."""
        history = []
        streak, last = 0, None
        for offset in (0, 1, 2, 4):
            history.append(entry(offset))
            streak, last = update_streak(streak, last, history)
        assert streak == 1
        assert last.date() == (DAY + timedelta(days=4)).date()

    def test_deleting_latest_entry_resets(self):
        """A last entry dated before the recorded day resets to 1."""
        history = [entry(0), entry(1), entry(2)]
        streak, last = 0, None
        for n in range(1, 4):
            streak, last = update_streak(streak, last, history[:n])
        assert streak == 3

        streak, last = update_streak(streak, last, history[:2])
        assert streak == 1
        assert last.date() == (DAY + timedelta(days=1)).date()

    def test_order_independent(self):
        """Entries in any order use the chronologically last one."""
        history = [entry(1, hour=9), entry(0, hour=23)]
        streak, last = update_streak(1, DAY, history)
        assert streak == 2


class TestHistoryCounts:
    """Tests for day counting helpers."""

    def test_count_logged_days(self):
        """Distinct calendar days with at least one entry."""
        assert count_logged_days([entry(0), entry(0, hour=20), entry(3)]) == 2

    def test_count_goal_days(self):
        """A day counts when its entries sum to the goal."""
        history = [entry(0, volume=1000), entry(0, hour=18, volume=1000), entry(1, volume=1500)]
        assert count_goal_days(history, 2000) == 1
        assert count_goal_days(history, 1500) == 2


class TestMergeAchievementCatalog:
    """Tests for merge_achievement_catalog."""

    def test_fresh_catalog(self):
        """An empty list yields the full catalog, all locked."""
        merged = merge_achievement_catalog([])
        assert [a.id for a in merged] == [m.id for m in ACHIEVEMENT_CATALOG]
        assert not any(a.is_unlocked for a in merged)

    def test_preserves_unlock_state(self):
        """Persisted unlock state survives; titles come from the catalog."""
        unlocked_at = DAY + timedelta(hours=9)
        persisted = [Achievement(id="first-sip", title="Old title", detail="", is_unlocked=True, unlocked_at=unlocked_at)]
        merged = {a.id: a for a in merge_achievement_catalog(persisted)}
        assert merged["first-sip"].is_unlocked
        assert merged["first-sip"].unlocked_at == unlocked_at
        assert merged["first-sip"].title == "First Sip"

    def test_preserves_legacy_ids(self):
        """Ids missing from the catalog are kept with their flag."""
        legacy = Achievement(id="hydro-hero-2019", title="Hero", detail="", is_unlocked=True, unlocked_at=DAY)
        merged = merge_achievement_catalog([legacy])
        assert merged[-1] == legacy
        assert len(merged) == len(ACHIEVEMENT_CATALOG) + 1


class TestEvaluateAchievements:
    """Tests for evaluate_achievements."""

    def test_empty_history_is_noop(self):
        """No entries unlocks nothing."""
        achievements = merge_achievement_catalog([])
        stats = HistoryStats.collect([], 0, 2400, 0)
        updated, newly = evaluate_achievements(achievements, stats, DAY)
        assert updated == achievements
        assert newly == []

    def test_unlock_is_idempotent(self):
        """Checking twice does not re-fire or move the unlock time."""
        history = [entry(hour=12)]
        stats = HistoryStats.collect(history, 250, 2400, 1)
        first, newly = evaluate_achievements(merge_achievement_catalog([]), stats, DAY)
        assert [a.id for a in newly] == ["first-sip"]

        second, newly_again = evaluate_achievements(first, stats, DAY + timedelta(hours=5))
        assert newly_again == []
        assert second == first

    def test_latch_survives_false_predicate(self):
        """An unlocked streak achievement stays unlocked after the streak drops."""
        stats = HistoryStats.collect([entry()], 250, 2400, 3)
        achievements, _ = evaluate_achievements(merge_achievement_catalog([]), stats, DAY)
        dropped = HistoryStats.collect([entry()], 250, 2400, 1)
        achievements, _ = evaluate_achievements(achievements, dropped, DAY)
        assert "streak-3" in {a.id for a in achievements if a.is_unlocked}

    def test_time_of_day_achievements(self):
        """Early bird before 07:00, night owl at or after 22:00."""
        history = [entry(hour=6, minute=59), entry(hour=22)]
        stats = HistoryStats.collect(history, 500, 2400, 1)
        _, newly = evaluate_achievements(merge_achievement_catalog([]), stats, DAY)
        assert {"first-sip", "early-bird", "night-owl"} <= {a.id for a in newly}

    def test_volume_and_count_thresholds(self):
        """Entry-count and cumulative-volume milestones."""
        history = [entry(offset % 5, hour=8 + offset // 5, volume=400) for offset in range(25)]
        stats = HistoryStats.collect(history, 0, 2400, 1)
        _, newly = evaluate_achievements(merge_achievement_catalog([]), stats, DAY)
        ids = {a.id for a in newly}
        assert "entries-25" in ids
        assert "total-10k" in ids
        assert "entries-100" not in ids

    def test_unknown_ids_never_unlock(self):
        """Legacy ids have no predicate and are left untouched."""
        legacy = Achievement(id="retired", title="Retired", detail="")
        stats = HistoryStats.collect([entry()], 250, 2400, 1)
        updated, _ = evaluate_achievements([legacy], stats, DAY)
        assert updated == [legacy]


class TestApplyIntake:
    """Tests for apply_intake end to end."""

    def test_streak_and_achievements_recomputed(self):
        """A logged entry updates quests, streak and achievements together."""
        drink = entry(hour=9, volume=500)
        state, newly = apply_intake(fresh_state(2400), drink, 500, 2400, [drink], DAY + timedelta(hours=9))
        assert state.streak_days == 1
        assert state.quests[0].is_completed
        assert [a.id for a in newly] == ["first-sip"]
        assert newly[0].unlocked_at == DAY + timedelta(hours=9)

    def test_goal_day_uses_today_total(self):
        """Reaching the goal today unlocks the goal-day achievement."""
        drink = entry(hour=15, volume=2400)
        state, newly = apply_intake(fresh_state(2400), drink, 2400, 2400, [drink], DAY)
        assert "goal-day" in {a.id for a in newly}
