"""Hydration Engine - Facade over goals, progression and reminders.

The engine is the only owner of the persisted snapshot and the transient
live-reminder latch. It performs no I/O: persistence, delivery and text
generation belong to the shell, which reads `snapshot()` after each call.

Each mutating call is one atomic step: progression is recomputed before any
reminders are planned, so reminders never see a stale total.
"""

from collections import deque
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from .dates import is_same_day
from .goals import compute_goal
from .messages import MessageContext, progress_fraction
from .models import (
    Achievement,
    EngineSnapshot,
    GameState,
    GoalBreakdown,
    HydrationEntry,
    HydrationReport,
    HydrationSource,
    IntakeResult,
    LiveReminderState,
    ReminderRequest,
    UnitSystem,
    UserProfile,
    WeatherSnapshot,
    WorkoutSummary,
)
from .progression import apply_intake, merge_achievement_catalog, recompute_progress, refresh_daily_quests
from .reminders import evaluate_live, plan_reminders
from .reports import generate_hydration_report


SYNC_TOLERANCE = timedelta(milliseconds=500)


class EntryNotFoundError(LookupError):
    """Raised when editing or deleting an entry id that does not exist."""


def is_newer(candidate: datetime, reference: datetime) -> bool:
    """Whether `candidate` is newer than `reference` beyond clock jitter."""
    return candidate > reference + SYNC_TOLERANCE


class HydrationEngine:
    """Owns entries, profile, inputs and game state for one user.

    Args:
        snapshot: Persisted state to start from (defaults to a fresh one)
        clock: Source of local wall-clock time, injectable for tests
    """

    def __init__(
        self,
        snapshot: Optional[EngineSnapshot] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._clock = clock
        self._snapshot = (snapshot or EngineSnapshot(updated_at=clock())).model_copy(deep=True)
        self._live = LiveReminderState()
        self._celebrations: deque[Achievement] = deque()
        self._prepare_day(clock())

    # ==================== Read-only views ====================

    @property
    def profile(self) -> UserProfile:
        return self._snapshot.profile

    @property
    def entries(self) -> list[HydrationEntry]:
        return list(self._snapshot.entries)

    @property
    def game_state(self) -> GameState:
        return self._snapshot.game_state

    @property
    def updated_at(self) -> datetime:
        return self._snapshot.updated_at

    @property
    def pending_celebrations(self) -> int:
        return len(self._celebrations)

    def goal(self) -> GoalBreakdown:
        """Current goal, always recomputed from the current inputs."""
        return compute_goal(self.profile, self._snapshot.last_weather, self._snapshot.last_workout)

    def today_entries(self, now: Optional[datetime] = None) -> list[HydrationEntry]:
        now = now or self._clock()
        return [e for e in self._snapshot.entries if is_same_day(e.logged_at, now)]

    def today_total(self, now: Optional[datetime] = None) -> float:
        return sum(e.volume_ml for e in self.today_entries(now))

    def snapshot(self) -> EngineSnapshot:
        return self._snapshot.model_copy(deep=True)

    def report(self, days: int = 7, now: Optional[datetime] = None) -> HydrationReport:
        now = now or self._clock()
        return generate_hydration_report(self._snapshot.entries, self.goal().total_ml, days, now.date())

    # ==================== Intake ====================

    def log_intake(
        self,
        amount: float,
        unit_system: Optional[UnitSystem] = None,
        source: HydrationSource = HydrationSource.MANUAL,
        note: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> IntakeResult:
        """Log a drink and advance quests, streak and achievements.

        Args:
            amount: Volume in `unit_system` units (defaults to the profile's)
            unit_system: Unit of `amount`
            source: Manual entry or external sync
            note: Optional free text
            at: When the drink happened (defaults to now)

        Returns:
            IntakeResult with the new entry, state, goal and fresh reminder plan
        """
        now = self._clock()
        units = unit_system or self.profile.unit_system
        entry = HydrationEntry(
            logged_at=at or now,
            volume_ml=units.ml_from(amount),
            source=source,
            note=note,
        )
        entries = self._snapshot.entries + [entry]
        self._snapshot = self._snapshot.model_copy(update={"entries": entries})

        goal = self.goal()
        total = self.today_total(now)
        state = refresh_daily_quests(self.game_state, goal.total_ml, now)
        state, newly_unlocked = apply_intake(state, entry, total, goal.total_ml, entries, now)
        self._commit(state, newly_unlocked, now)
        self._rearm_escalation()

        return IntakeResult(
            entry=entry,
            game_state=self.game_state,
            goal=goal,
            today_total_ml=total,
            newly_unlocked=newly_unlocked,
            reminders=self.plan_reminders(now),
        )

    def update_entry(
        self,
        entry_id: str,
        volume_ml: Optional[float] = None,
        note: Optional[str] = None,
    ) -> HydrationEntry:
        """Correct an entry's volume and/or note, then recompute progression."""
        index = self._index_of(entry_id)
        current = self._snapshot.entries[index]
        changes = current.model_dump()
        if volume_ml is not None:
            changes["volume_ml"] = volume_ml
        if note is not None:
            changes["note"] = note
        updated = HydrationEntry.model_validate(changes)

        entries = list(self._snapshot.entries)
        entries[index] = updated
        self._replace_entries(entries)
        return updated

    def delete_entry(self, entry_id: str) -> HydrationEntry:
        """Remove an entry, then recompute progression."""
        index = self._index_of(entry_id)
        entries = list(self._snapshot.entries)
        removed = entries.pop(index)
        self._replace_entries(entries)
        return removed

    def sync_external_entries(self, synced: list[HydrationEntry], day: Optional[date] = None) -> int:
        """Replace every synced entry on `day` with the given batch.

        Manual entries are never touched. Incoming entries are stored with the
        synced source tag.

        Returns:
            Number of synced entries now held for the day
        """
        day = day or self._clock().date()
        kept = [
            e for e in self._snapshot.entries
            if not (e.source == HydrationSource.SYNCED and e.logged_at.date() == day)
        ]
        incoming = [e.model_copy(update={"source": HydrationSource.SYNCED}) for e in synced]
        self._replace_entries(sorted(kept + incoming, key=lambda e: e.logged_at))
        if incoming:
            self._rearm_escalation()
        return len(incoming)

    def reset_today(self) -> int:
        """Remove all of today's entries. Returns how many were removed."""
        now = self._clock()
        kept = [e for e in self._snapshot.entries if not is_same_day(e.logged_at, now)]
        removed = len(self._snapshot.entries) - len(kept)
        self._replace_entries(kept)
        return removed

    # ==================== Inputs ====================

    def update_profile(self, **changes) -> UserProfile:
        """Apply field changes to the profile (validated), then recompute.

        Raises:
            TypeError: If a change names a field the profile does not have
        """
        unknown = sorted(set(changes) - set(UserProfile.model_fields))
        if unknown:
            raise TypeError(f"Unknown profile fields: {', '.join(unknown)}")
        profile = UserProfile.model_validate({**self.profile.model_dump(), **changes})
        self._snapshot = self._snapshot.model_copy(update={"profile": profile})
        self._recompute(self._clock())
        return profile

    def update_weather(self, weather: Optional[WeatherSnapshot]) -> GoalBreakdown:
        self._snapshot = self._snapshot.model_copy(update={"last_weather": weather})
        self._recompute(self._clock())
        return self.goal()

    def update_workout(self, workout: Optional[WorkoutSummary]) -> GoalBreakdown:
        self._snapshot = self._snapshot.model_copy(update={"last_workout": workout})
        self._recompute(self._clock())
        return self.goal()

    # ==================== Day lifecycle and sync ====================

    def is_day_stale(self, now: Optional[datetime] = None) -> bool:
        """Whether quests were last refreshed on an earlier calendar day."""
        now = now or self._clock()
        refreshed = self.game_state.last_quest_refresh
        return refreshed is None or not is_same_day(refreshed, now)

    def refresh_day(self, now: Optional[datetime] = None) -> list[ReminderRequest]:
        """Merge the catalog, refresh quests, recompute, and replan reminders."""
        now = now or self._clock()
        self._prepare_day(now)
        self._recompute(now)
        return self.plan_reminders(now)

    def apply_external_state(self, remote: EngineSnapshot) -> bool:
        """Replace local state wholesale if `remote` is newer, then refresh.

        Returns:
            True if the remote snapshot was adopted
        """
        if not is_newer(remote.updated_at, self._snapshot.updated_at):
            return False

        self._snapshot = remote.model_copy(deep=True)
        self._live = LiveReminderState()
        now = self._clock()
        self._prepare_day(now)
        state, _ = recompute_progress(
            self.game_state, self.today_total(now), self.goal().total_ml, self._snapshot.entries, now
        )
        # updated_at stays at the remote value
        self._snapshot = self._snapshot.model_copy(update={"game_state": state})
        return True

    # ==================== Reminders ====================

    def plan_reminders(self, now: Optional[datetime] = None) -> list[ReminderRequest]:
        """Pre-scheduled batch. Callers clear their pending batch before installing it."""
        now = now or self._clock()
        return plan_reminders(self.profile, self._snapshot.entries, self.goal().total_ml, now)

    def tick_live(self, now: Optional[datetime] = None) -> Optional[ReminderRequest]:
        """Live-mode decision. Updates the escalation latch when a reminder fires."""
        now = now or self._clock()
        request, self._live = evaluate_live(
            self.profile, self._snapshot.entries, self.goal().total_ml, now, self._live
        )
        return request

    def message_context(self, request: ReminderRequest, now: Optional[datetime] = None) -> MessageContext:
        goal_ml = self.goal().total_ml
        total = self.today_total(now)
        return MessageContext(
            progress=progress_fraction(total, goal_ml),
            today_total_ml=total,
            goal_ml=goal_ml,
            is_escalation=request.is_escalation,
        )

    # ==================== Celebrations ====================

    def next_celebration(self) -> Optional[Achievement]:
        """Pop the next newly unlocked achievement to present, oldest first."""
        if not self._celebrations:
            return None
        return self._celebrations.popleft()

    # ==================== Internals ====================

    def _index_of(self, entry_id: str) -> int:
        for index, entry in enumerate(self._snapshot.entries):
            if entry.id == entry_id:
                return index
        raise EntryNotFoundError(entry_id)

    def _rearm_escalation(self) -> None:
        """A new intake of any source starts a fresh quiet stretch."""
        self._live = self._live.model_copy(update={"escalation_fired": False})

    def _prepare_day(self, now: datetime) -> None:
        state = self.game_state.model_copy(update={
            "achievements": merge_achievement_catalog(self.game_state.achievements),
        })
        state = refresh_daily_quests(state, self.goal().total_ml, now)
        self._snapshot = self._snapshot.model_copy(update={"game_state": state})

    def _replace_entries(self, entries: list[HydrationEntry]) -> None:
        self._snapshot = self._snapshot.model_copy(update={"entries": entries})
        self._recompute(self._clock())

    def _recompute(self, now: datetime) -> None:
        goal_ml = self.goal().total_ml
        state = refresh_daily_quests(self.game_state, goal_ml, now)
        state, newly_unlocked = recompute_progress(
            state, self.today_total(now), goal_ml, self._snapshot.entries, now
        )
        self._commit(state, newly_unlocked, now)

    def _commit(self, state: GameState, newly_unlocked: list[Achievement], now: datetime) -> None:
        self._snapshot = self._snapshot.model_copy(update={"game_state": state, "updated_at": now})
        self._celebrations.extend(newly_unlocked)
