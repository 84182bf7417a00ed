"""Reminder Copy - Canned messages, progress bands and the text generator hook.

Canned copy is selected deterministically by rotation index so that two
scheduling passes over the same inputs produce the same requests.
"""

from typing import Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .models import ProgressBand


REMINDER_TITLE = "WaterQuest"

EARLY_BAND_LIMIT = 0.25
MID_BAND_LIMIT = 0.6

EARLY_MESSAGES = (
    "Morning hydration kickstarts your day.",
    "Start fresh: a glass of water is all it takes.",
    "Your body woke up thirsty. Help it out!",
    "First sip of the day, let's go!",
)

MID_MESSAGES = (
    "Midday check-in: how's your water intake?",
    "A quick sip keeps the energy flowing.",
    "Halfway there, keep sipping!",
    "Take a water break and claim some XP.",
)

LATE_MESSAGES = (
    "Almost at your goal, one more glass!",
    "The finish line is close. Sip it home!",
    "You're doing great, just a bit more.",
    "You're so close. Finish strong!",
)

ESCALATION_MESSAGES = (
    "It's been a while. Time for a sip!",
    "Your body's been waiting. Water up!",
    "A quiet stretch calls for a quiet sip.",
    "One glass can make a difference. Give it a go!",
    "Check in with yourself: when did you last drink?",
)

FIXED_MESSAGES = (
    "Sip time! Your future self is cheering.",
    "Take a water break, you deserve it.",
    "Quick check-in: a few sips go far.",
    "A little hydration goes a long way.",
    "Tiny sip, big win. Let's go!",
)

_BAND_MESSAGES = {
    ProgressBand.EARLY: EARLY_MESSAGES,
    ProgressBand.MID: MID_MESSAGES,
    ProgressBand.LATE: LATE_MESSAGES,
}


def progress_fraction(today_total_ml: float, goal_ml: float) -> float:
    if goal_ml <= 0:
        return 0.0
    return max(0.0, today_total_ml / goal_ml)


def progress_band(progress: float) -> ProgressBand:
    """Map today/goal to a band: <25% early, 25-60% mid, >=60% late."""
    if progress < EARLY_BAND_LIMIT:
        return ProgressBand.EARLY
    if progress < MID_BAND_LIMIT:
        return ProgressBand.MID
    return ProgressBand.LATE


def canned_message(progress: float, index: int = 0, is_escalation: bool = False) -> str:
    """Pick a canned message for the band, rotating by index."""
    pool = ESCALATION_MESSAGES if is_escalation else _BAND_MESSAGES[progress_band(progress)]
    return pool[index % len(pool)]


def fixed_message(index: int) -> str:
    return FIXED_MESSAGES[index % len(FIXED_MESSAGES)]


class MessageContext(BaseModel):
    """What a text generator is told about the user's day."""

    progress: float = Field(ge=0)
    today_total_ml: float = Field(ge=0)
    goal_ml: float
    is_escalation: bool = False

    @property
    def band(self) -> ProgressBand:
        return progress_band(self.progress)


@runtime_checkable
class TextGenerator(Protocol):
    """Optional source of reminder copy.

    `is_available` is the capability check; `generate` may return None or an
    empty string to mean "no answer". Callers must fall back to canned copy.
    """

    def is_available(self) -> bool:
        ...

    async def generate(self, context: MessageContext) -> Optional[str]:
        ...

