"""Core Data Models - Pydantic models for type safety.

All models are value objects. The only behavior they carry is unit conversion
and status derived from their own fields.
"""

from datetime import datetime
from datetime import date as DateType
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field
import uuid


ML_PER_FLUID_OUNCE = 29.5735
KG_PER_POUND = 0.453592


class UnitSystem(str, Enum):
    """Display unit system. Volumes are always stored in milliliters."""

    METRIC = "metric"
    IMPERIAL = "imperial"

    @property
    def volume_unit(self) -> str:
        return "ml" if self is UnitSystem.METRIC else "oz"

    @property
    def weight_unit(self) -> str:
        return "kg" if self is UnitSystem.METRIC else "lb"

    def ml_from(self, amount: float) -> float:
        if self is UnitSystem.IMPERIAL:
            return amount * ML_PER_FLUID_OUNCE
        return amount

    def amount_from_ml(self, ml: float) -> float:
        if self is UnitSystem.IMPERIAL:
            return ml / ML_PER_FLUID_OUNCE
        return ml

    def kg_from(self, amount: float) -> float:
        if self is UnitSystem.IMPERIAL:
            return amount * KG_PER_POUND
        return amount

    def amount_from_kg(self, kg: float) -> float:
        if self is UnitSystem.IMPERIAL:
            return kg / KG_PER_POUND
        return kg


class ActivityLevel(str, Enum):
    """Activity tier. Each tier maps to a fixed ml-per-kg multiplier."""

    CHILL = "chill"
    STEADY = "steady"
    INTENSE = "intense"

    @property
    def multiplier(self) -> float:
        return _ACTIVITY_MULTIPLIERS[self]


_ACTIVITY_MULTIPLIERS = {
    ActivityLevel.CHILL: 32.0,
    ActivityLevel.STEADY: 35.0,
    ActivityLevel.INTENSE: 38.0,
}


class HydrationSource(str, Enum):
    """Where an intake entry came from."""

    MANUAL = "manual"
    SYNCED = "synced"


class UserProfile(BaseModel):
    """User configuration for goal calculation and reminders."""

    name: str = Field(default="", description="Display name")
    unit_system: UnitSystem = Field(default=UnitSystem.METRIC)
    weight_kg: float = Field(default=70.0, gt=0, description="Body weight in kilograms")
    activity_level: ActivityLevel = Field(default=ActivityLevel.STEADY)
    custom_goal_ml: Optional[float] = Field(
        default=None, description="Manual goal override in ml (floored by the calculator)"
    )
    reminders_enabled: bool = Field(default=True)
    wake_minutes: int = Field(default=7 * 60, ge=0, le=1440, description="Wake time, minutes since midnight")
    sleep_minutes: int = Field(default=22 * 60, ge=0, le=1440, description="Sleep time, minutes since midnight")
    prefers_weather_goal: bool = Field(default=False, description="Adjust goal for weather")
    prefers_workout_goal: bool = Field(default=False, description="Adjust goal for workouts")
    smart_reminders_enabled: bool = Field(default=True, description="Adaptive (vs. fixed-schedule) reminders")


class WeatherSnapshot(BaseModel):
    """A weather reading supplied by the caller."""

    temperature_c: float
    humidity_percent: float
    condition: str = ""


class WorkoutSummary(BaseModel):
    """Today's workout totals supplied by the caller."""

    exercise_minutes: float = Field(default=0, description="Minutes of exercise")
    active_energy_kcal: float = Field(default=0, description="Active energy burned")


class HydrationEntry(BaseModel):
    """A single logged drink."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    logged_at: datetime = Field(default_factory=datetime.now, description="Local wall-clock time")
    volume_ml: float = Field(ge=0, description="Volume in milliliters")
    source: HydrationSource = Field(default=HydrationSource.MANUAL)
    note: Optional[str] = Field(default=None)


class GoalBreakdown(BaseModel):
    """Derived daily goal. Recomputed on demand, never stored."""

    base_ml: float
    weather_adjustment_ml: float = 0
    workout_adjustment_ml: float = 0
    total_ml: float


class QuestStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


class Quest(BaseModel):
    """A daily mini-objective scaled to the goal."""

    id: str
    title: str
    detail: str
    target_ml: float
    deadline_hour: Optional[int] = Field(default=None, ge=0, le=23)
    progress_ml: float = 0
    is_completed: bool = False
    reward_xp: int = Field(ge=0)

    def is_open_at(self, hour: int) -> bool:
        """Whether progress can still be applied at the given hour."""
        return self.deadline_hour is None or hour <= self.deadline_hour

    def status(self, now: datetime) -> QuestStatus:
        if self.is_completed:
            return QuestStatus.COMPLETED
        if not self.is_open_at(now.hour):
            return QuestStatus.EXPIRED
        return QuestStatus.PENDING


class Achievement(BaseModel):
    """A permanent milestone. Unlocking is one-way."""

    id: str
    title: str
    detail: str
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class GameState(BaseModel):
    """Quests, streak and achievements."""

    quests: list[Quest] = Field(default_factory=list)
    streak_days: int = Field(default=0, ge=0)
    last_streak_date: Optional[datetime] = None
    last_quest_refresh: Optional[datetime] = None
    achievements: list[Achievement] = Field(default_factory=list)

    def unlocked_ids(self) -> set[str]:
        return {a.id for a in self.achievements if a.is_unlocked}


class EngineSnapshot(BaseModel):
    """Everything the caller persists. Opaque to the persistence layer."""

    entries: list[HydrationEntry] = Field(default_factory=list)
    profile: UserProfile = Field(default_factory=UserProfile)
    game_state: GameState = Field(default_factory=GameState)
    last_weather: Optional[WeatherSnapshot] = None
    last_workout: Optional[WorkoutSummary] = None
    updated_at: datetime = Field(default_factory=datetime.now, description="Logical update timestamp")


class ProgressBand(str, Enum):
    """Coarse bucket of today's total vs. goal used to pick reminder copy."""

    EARLY = "early"
    MID = "mid"
    LATE = "late"


class ReminderKind(str, Enum):
    ADAPTIVE = "adaptive"
    ESCALATION = "escalation"
    FIXED = "fixed"


class ReminderRequest(BaseModel):
    """A reminder to hand to the platform notification facility."""

    identifier: str = Field(description="Stable id inside the waterquest. namespace")
    kind: ReminderKind
    fire_at: datetime
    minute_of_day: int = Field(ge=0, le=1440)
    title: str
    body: str
    progress: float = Field(default=0, ge=0, description="Today's total / goal when planned")
    is_escalation: bool = False
    imminent: bool = Field(default=False, description="Collapsed from an overdue candidate")
    repeats_daily: bool = False


class LiveReminderState(BaseModel):
    """Transient live-mode state. Never persisted."""

    escalation_fired: bool = False
    last_fired_at: Optional[datetime] = None


class IntakeResult(BaseModel):
    """Everything a caller needs after logging a drink."""

    entry: HydrationEntry
    game_state: GameState
    goal: GoalBreakdown
    today_total_ml: float
    newly_unlocked: list[Achievement] = Field(default_factory=list)
    reminders: list[ReminderRequest] = Field(default_factory=list)


class DayTotal(BaseModel):
    """Summary for a single day in a hydration report."""

    day: DateType
    total_ml: float
    entry_count: int
    goal_met: bool


class HydrationReport(BaseModel):
    """Report over a trailing window of days."""

    start: DateType
    end: DateType
    days: list[DayTotal]
    total_ml: float
    average_ml: float = Field(description="Average over every day in the window, including empty days")
    days_logged: int
    days_goal_met: int
