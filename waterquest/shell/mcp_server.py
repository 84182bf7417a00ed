"""MCP Server - Tool definitions for Claude integration.

Defines all MCP tools that Claude can invoke for hydration tracking.
Every mutating tool runs one engine call, saves the snapshot, and replaces
the pending reminders, so persisted state and reminders never drift apart.
"""

import logging
import os
from contextvars import ContextVar
from datetime import date, datetime

from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from ..core.engine import EntryNotFoundError, HydrationEngine
from ..core.models import (
    Achievement,
    ActivityLevel,
    HydrationEntry,
    HydrationSource,
    UnitSystem,
    WeatherSnapshot,
    WorkoutSummary,
)
from ..core.reports import REPORT_TIMEFRAMES
from .firestore_client import FirestoreConfig, WaterQuestFirestoreClient
from .reminder_loop import ReminderLoop, reschedule


logger = logging.getLogger(__name__)

# Context variable to store current user_id per request
current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)

transport_security = TransportSecuritySettings(
    enable_dns_rebinding_protection=True,
    allowed_hosts=[
        "localhost:*",
        "127.0.0.1:*",
        "*.run.app:*",
        "*.run.app",
    ],
)

# Initialize FastMCP server with stateless HTTP for cloud deployments
mcp = FastMCP(
    "waterquest",
    instructions="""WaterQuest - Gamified hydration tracker.

Use these tools to log drinks, show progress toward the daily water goal,
and celebrate quests, streaks and achievements.

On first use, call setup_profile with the user's weight and schedule.
After logging, show today's progress and announce any newly unlocked
achievements one at a time using next_celebration.""",
    stateless_http=True,
    transport_security=transport_security,
)

# Lazy-initialized clients
_firestore_client: WaterQuestFirestoreClient | None = None
_engines: dict[str, HydrationEngine] = {}
_reminder_loops: dict[str, ReminderLoop] = {}


def get_firestore_client() -> WaterQuestFirestoreClient:
    """Get or create Firestore client."""
    global _firestore_client
    if _firestore_client is None:
        config = FirestoreConfig(
            project_id=os.environ.get("GOOGLE_CLOUD_PROJECT") or None,
            database=os.environ.get("FIRESTORE_DATABASE", "waterquest"),
        )
        _firestore_client = WaterQuestFirestoreClient(config)
    return _firestore_client


def get_user_id() -> str:
    """Get current authenticated user ID.

    Raises:
        RuntimeError: If no user is authenticated
    """
    user_id = current_user_id.get()
    if user_id is None:
        raise RuntimeError("No authenticated user. Ensure API token is provided.")
    return user_id


def get_engine(user_id: str) -> HydrationEngine:
    """Get the in-process engine for a user, adopting newer stored state.

    The first call loads the stored snapshot. Later calls compare against the
    stored copy and replace local state if another writer saved a newer one.
    An engine whose quests date from an earlier day is refreshed and saved.
    """
    db = get_firestore_client()
    stored = db.load_snapshot(user_id)

    engine = _engines.get(user_id)
    if engine is None:
        engine = HydrationEngine(stored)
        _engines[user_id] = engine
        logger.info("Loaded engine for user: %s", user_id[:8])
    elif stored is not None and engine.apply_external_state(stored):
        logger.info("Adopted newer stored state for user: %s", user_id[:8])

    if engine.is_day_stale():
        logger.info("Starting a new day for user: %s", user_id[:8])
        engine.refresh_day()
        _commit(user_id, engine)
    return engine


def register_reminder_loop(user_id: str, loop: ReminderLoop) -> None:
    _reminder_loops[user_id] = loop


def _commit(user_id: str, engine: HydrationEngine) -> bool:
    """Persist the engine snapshot and replace pending reminders."""
    db = get_firestore_client()
    saved = db.save_snapshot(user_id, engine.snapshot())
    reschedule(engine, db, user_id)
    loop = _reminder_loops.get(user_id)
    if loop is not None:
        loop.poke()
    return saved


def _entry_dict(entry: HydrationEntry) -> dict:
    return {
        "id": entry.id,
        "logged_at": entry.logged_at.isoformat(),
        "volume_ml": round(entry.volume_ml, 1),
        "source": entry.source.value,
        "note": entry.note,
    }


def _achievement_dict(achievement: Achievement) -> dict:
    return {
        "id": achievement.id,
        "title": achievement.title,
        "detail": achievement.detail,
        "unlocked": achievement.is_unlocked,
        "unlocked_at": achievement.unlocked_at.isoformat() if achievement.unlocked_at else None,
    }


def _progress_dict(engine: HydrationEngine) -> dict:
    now = datetime.now()
    goal = engine.goal()
    total = engine.today_total(now)
    state = engine.game_state
    return {
        "today_ml": round(total, 1),
        "goal": goal.model_dump(),
        "remaining_ml": round(max(0.0, goal.total_ml - total), 1),
        "streak_days": state.streak_days,
        "quests": [
            {
                "id": q.id,
                "title": q.title,
                "detail": q.detail,
                "target_ml": round(q.target_ml, 1),
                "progress_ml": round(q.progress_ml, 1),
                "status": q.status(now).value,
                "reward_xp": q.reward_xp,
            }
            for q in state.quests
        ],
    }


# ==================== Profile Tools ====================


@mcp.tool()
def setup_profile(
    weight: float,
    activity_level: str = "steady",
    unit_system: str = "metric",
    wake_time: str = "07:00",
    sleep_time: str = "22:00",
    custom_goal_ml: float | None = None,
    reminders_enabled: bool = True,
    smart_reminders: bool = True,
    weather_adjustment: bool = False,
    workout_adjustment: bool = False,
    name: str = "",
) -> dict:
    """Configure the user's profile. Call on first use or when anything changes.

    Args:
        weight: Body weight in the chosen unit system (kg or lb)
        activity_level: One of "chill", "steady", "intense"
        unit_system: "metric" or "imperial"
        wake_time: Wake time as HH:MM
        sleep_time: Sleep time as HH:MM
        custom_goal_ml: Optional manual goal override in ml
        reminders_enabled: Whether to send reminders at all
        smart_reminders: Adaptive reminders (True) or fixed clock times (False)
        weather_adjustment: Raise the goal in hot or humid weather
        workout_adjustment: Raise the goal after workouts
        name: Optional display name

    Returns:
        Saved profile and the resulting goal breakdown
    """
    user_id = get_user_id()

    try:
        units = UnitSystem(unit_system)
        level = ActivityLevel(activity_level)
        wake = datetime.strptime(wake_time, "%H:%M")
        sleep = datetime.strptime(sleep_time, "%H:%M")
    except ValueError as e:
        return {"error": f"Invalid profile value: {e}"}

    engine = get_engine(user_id)
    profile = engine.update_profile(
        name=name,
        unit_system=units,
        weight_kg=units.kg_from(weight),
        activity_level=level,
        custom_goal_ml=custom_goal_ml,
        reminders_enabled=reminders_enabled,
        smart_reminders_enabled=smart_reminders,
        prefers_weather_goal=weather_adjustment,
        prefers_workout_goal=workout_adjustment,
        wake_minutes=wake.hour * 60 + wake.minute,
        sleep_minutes=sleep.hour * 60 + sleep.minute,
    )

    if not _commit(user_id, engine):
        return {"error": "Failed to save profile. Please try again."}

    return {
        "profile": profile.model_dump(mode="json"),
        "goal": engine.goal().model_dump(),
    }


@mcp.tool()
def get_profile() -> dict:
    """Retrieve the user's profile and current goal breakdown."""
    user_id = get_user_id()
    engine = get_engine(user_id)

    return {
        "profile": engine.profile.model_dump(mode="json"),
        "goal": engine.goal().model_dump(),
    }


@mcp.tool()
def set_weather(temperature_c: float, humidity_percent: float, condition: str = "") -> dict:
    """Record the current weather. Only affects the goal if weather adjustment is on.

    Args:
        temperature_c: Temperature in degrees Celsius
        humidity_percent: Relative humidity 0-100
        condition: Optional description (e.g., "Sunny")

    Returns:
        Updated goal breakdown
    """
    user_id = get_user_id()
    engine = get_engine(user_id)

    goal = engine.update_weather(WeatherSnapshot(
        temperature_c=temperature_c,
        humidity_percent=humidity_percent,
        condition=condition,
    ))
    _commit(user_id, engine)
    return {"goal": goal.model_dump()}


@mcp.tool()
def set_workout(exercise_minutes: float, active_energy_kcal: float = 0) -> dict:
    """Record today's workout. Only affects the goal if workout adjustment is on.

    Args:
        exercise_minutes: Minutes of exercise today
        active_energy_kcal: Active energy burned today

    Returns:
        Updated goal breakdown
    """
    user_id = get_user_id()
    engine = get_engine(user_id)

    goal = engine.update_workout(WorkoutSummary(
        exercise_minutes=exercise_minutes,
        active_energy_kcal=active_energy_kcal,
    ))
    _commit(user_id, engine)
    return {"goal": goal.model_dump()}


# ==================== Logging Tools ====================


@mcp.tool()
def log_water(amount: float, unit_system: str | None = None, note: str | None = None) -> dict:
    """Log a drink.

    Args:
        amount: Volume in ml (metric) or fl oz (imperial)
        unit_system: Unit of amount; defaults to the profile's unit system
        note: Optional note (e.g., "post-run")

    Returns:
        The created entry, today's progress and any newly unlocked achievements
    """
    user_id = get_user_id()

    if amount <= 0:
        return {"error": "Amount must be positive."}
    try:
        units = UnitSystem(unit_system) if unit_system else None
    except ValueError:
        return {"error": "unit_system must be 'metric' or 'imperial'."}

    engine = get_engine(user_id)
    result = engine.log_intake(amount, unit_system=units, note=note)

    if not _commit(user_id, engine):
        return {"error": "Failed to log water. Please try again."}

    return {
        "entry": _entry_dict(result.entry),
        "progress": _progress_dict(engine),
        "newly_unlocked": [_achievement_dict(a) for a in result.newly_unlocked],
        "reminders_scheduled": len(result.reminders),
    }


@mcp.tool()
def update_water(entry_id: str, volume_ml: float | None = None, note: str | None = None) -> dict:
    """Correct a logged drink. Only provided fields are updated.

    Args:
        entry_id: The ID of the entry to update
        volume_ml: New volume in ml (optional)
        note: New note (optional)

    Returns:
        Updated entry and today's progress
    """
    user_id = get_user_id()

    if volume_ml is None and note is None:
        return {"error": "No updates provided."}
    if volume_ml is not None and volume_ml < 0:
        return {"error": "volume_ml cannot be negative."}

    engine = get_engine(user_id)
    try:
        entry = engine.update_entry(entry_id, volume_ml=volume_ml, note=note)
    except EntryNotFoundError:
        return {"error": "Entry not found."}

    _commit(user_id, engine)
    return {"entry": _entry_dict(entry), "progress": _progress_dict(engine)}


@mcp.tool()
def delete_water(entry_id: str) -> dict:
    """Delete a logged drink.

    Args:
        entry_id: The ID of the entry to delete

    Returns:
        Confirmation and today's progress
    """
    user_id = get_user_id()
    engine = get_engine(user_id)

    try:
        engine.delete_entry(entry_id)
    except EntryNotFoundError:
        return {"error": "Entry not found."}

    _commit(user_id, engine)
    return {"success": True, "progress": _progress_dict(engine)}


@mcp.tool()
def sync_health_entries(entries: list[dict], date_str: str | None = None) -> dict:
    """Replace synced health-data entries for a day.

    Args:
        entries: List of {"logged_at": ISO datetime, "volume_ml": float}
        date_str: Day being synced in YYYY-MM-DD format (defaults to today)

    Returns:
        Number of synced entries held for the day and today's progress
    """
    user_id = get_user_id()

    try:
        day = date.fromisoformat(date_str) if date_str else date.today()
        synced = [HydrationEntry.model_validate({**e, "source": HydrationSource.SYNCED}) for e in entries]
    except ValueError as e:
        return {"error": f"Invalid sync payload: {e}"}

    engine = get_engine(user_id)
    count = engine.sync_external_entries(synced, day)
    _commit(user_id, engine)
    return {"synced": count, "date": day.isoformat(), "progress": _progress_dict(engine)}


# ==================== Query Tools ====================


@mcp.tool()
def get_today() -> dict:
    """Get today's entries, goal, quests and streak."""
    user_id = get_user_id()
    engine = get_engine(user_id)

    return {
        "date": date.today().isoformat(),
        "entries": [_entry_dict(e) for e in engine.today_entries()],
        "progress": _progress_dict(engine),
    }


@mcp.tool()
def get_achievements(include_locked: bool = True) -> list[dict]:
    """List achievements.

    Args:
        include_locked: Also list achievements not yet unlocked

    Returns:
        Achievements with unlock state
    """
    user_id = get_user_id()
    engine = get_engine(user_id)

    return [
        _achievement_dict(a)
        for a in engine.game_state.achievements
        if include_locked or a.is_unlocked
    ]


@mcp.tool()
def next_celebration() -> dict:
    """Pop the next newly unlocked achievement to celebrate, one at a time."""
    user_id = get_user_id()
    engine = get_engine(user_id)

    achievement = engine.next_celebration()
    if achievement is None:
        return {"achievement": None, "remaining": 0}
    return {"achievement": _achievement_dict(achievement), "remaining": engine.pending_celebrations}


@mcp.tool()
def get_reminders() -> list[dict]:
    """Recompute and return the reminders scheduled for the rest of today."""
    user_id = get_user_id()
    engine = get_engine(user_id)

    requests = reschedule(engine, get_firestore_client(), user_id)
    return [
        {
            "id": r.identifier,
            "kind": r.kind.value,
            "fire_at": r.fire_at.isoformat(),
            "body": r.body,
            "imminent": r.imminent,
            "repeats_daily": r.repeats_daily,
        }
        for r in requests
    ]


@mcp.tool()
def get_report(days: int = 7) -> dict:
    """Hydration report for the last 7 or 30 days.

    Args:
        days: Window length, 7 or 30

    Returns:
        Per-day totals, average, days logged and days the goal was met
    """
    user_id = get_user_id()

    if days not in REPORT_TIMEFRAMES:
        return {"error": f"days must be one of {list(REPORT_TIMEFRAMES)}."}

    engine = get_engine(user_id)
    report = engine.report(days)

    return {
        "start": report.start.isoformat(),
        "end": report.end.isoformat(),
        "days": [
            {"date": d.day.isoformat(), "total_ml": d.total_ml, "entries": d.entry_count, "goal_met": d.goal_met}
            for d in report.days
        ],
        "total_ml": report.total_ml,
        "average_ml": report.average_ml,
        "days_logged": report.days_logged,
        "days_goal_met": report.days_goal_met,
    }
