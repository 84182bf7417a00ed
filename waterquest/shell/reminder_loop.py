"""Reminder Delivery - Live background loop and pre-scheduled rescheduling.

Both paths share the same contract: whatever was scheduled before is thrown
away and recomputed from the engine's current state. Delivery failures are
logged and dropped; the next pass tries again.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Union

from ..core.engine import HydrationEngine
from ..core.messages import MessageContext, TextGenerator
from ..core.models import ReminderRequest
from ..core.reminders import MIN_INTERVAL_MINUTES, base_interval
from .firestore_client import WaterQuestFirestoreClient


logger = logging.getLogger(__name__)

RETRY_INTERVAL = timedelta(minutes=MIN_INTERVAL_MINUTES)

Deliver = Callable[[ReminderRequest], Union[bool, Awaitable[bool]]]


async def compose_message(
    context: MessageContext,
    fallback: str,
    generator: Optional[TextGenerator] = None,
    timeout: float = 5.0,
) -> str:
    """Ask the generator for reminder copy, falling back to canned text.

    Never raises: an unavailable, failing, slow or silent generator all
    yield `fallback`.
    """
    if generator is None:
        return fallback

    try:
        if not generator.is_available():
            return fallback
        text = await asyncio.wait_for(generator.generate(context), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Text generator timed out after %.1fs", timeout)
        return fallback
    except Exception as e:
        logger.warning("Text generator failed: %s", str(e))
        return fallback

    text = (text or "").strip()
    return text or fallback


def reschedule(
    engine: HydrationEngine,
    store: WaterQuestFirestoreClient,
    user_id: str,
    now: Optional[datetime] = None,
) -> list[ReminderRequest]:
    """Replace the user's pending reminders with a fresh plan.

    Args:
        engine: Engine holding the current state
        store: Firestore client acting as the reminder outbox
        user_id: The user's ID
        now: Time of the pass (defaults to the engine clock)

    Returns:
        The planned reminders, whether or not the write succeeded
    """
    requests = engine.plan_reminders(now)
    if not store.replace_scheduled(user_id, requests):
        logger.warning("Reminder reschedule failed for user %s; next pass will retry", user_id[:8])
    return requests


class ReminderLoop:
    """Long-lived task that fires live reminders.

    Each cycle asks the engine for a live decision, delivers it, then sleeps
    for the profile's base interval. `poke()` (called after an intake) ends
    the sleep early so the loop re-evaluates immediately. `stop()` cancels at
    any sleep boundary.
    """

    def __init__(
        self,
        engine_provider: Callable[[], HydrationEngine],
        deliver: Deliver,
        generator: Optional[TextGenerator] = None,
        generator_timeout: float = 5.0,
    ) -> None:
        self._engine_provider = engine_provider
        self._deliver = deliver
        self._generator = generator
        self._generator_timeout = generator_timeout
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="waterquest-reminder-loop")
        logger.info("Live reminder loop started")

    def poke(self) -> None:
        """Interrupt the current sleep so the next cycle runs now."""
        self._wake.set()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Live reminder loop stopped")

    async def run_once(self, engine: Optional[HydrationEngine] = None) -> Optional[ReminderRequest]:
        """Evaluate and deliver at most one reminder.

        Args:
            engine: Engine to evaluate (defaults to a fresh one from the provider)

        Returns:
            The delivered request, or None if nothing was due
        """
        if engine is None:
            engine = self._engine_provider()
        request = engine.tick_live()
        if request is None:
            return None

        body = await compose_message(
            engine.message_context(request),
            request.body,
            self._generator,
            self._generator_timeout,
        )
        request = request.model_copy(update={"body": body})

        try:
            result = self._deliver(request)
            if inspect.isawaitable(result):
                result = await result
            if result is False:
                logger.warning("Reminder %s was not delivered", request.identifier)
        except Exception as e:
            logger.error("Reminder delivery failed: %s", str(e))

        return request

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        self._wake.clear()

    async def _run(self) -> None:
        while True:
            interval = RETRY_INTERVAL
            try:
                engine = self._engine_provider()
                await self.run_once(engine)
                interval = base_interval(engine.profile)
            except Exception as e:
                logger.error("Reminder evaluation failed: %s", str(e))
            await self._sleep(interval.total_seconds())
