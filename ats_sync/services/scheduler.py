"""
One-shot delayed triggers on the running event loop.

Handlers are registered by name and receive the ScheduledTrigger that fired
them. A trigger is listed by list_triggers() until its handler starts.
Handlers run in a fresh context, so they never inherit the scheduling
task's lock or hired-flow markers.
"""
import asyncio
import contextvars
import logging
import time
import uuid
from typing import Awaitable, Callable, Dict, List, Optional

from ats_sync.models import ScheduledTrigger

logger = logging.getLogger(__name__)

TriggerHandler = Callable[[ScheduledTrigger], Awaitable[None]]


class AsyncioScheduler:
    """Named handler registry plus asyncio tasks that sleep then fire."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._handlers: Dict[str, TriggerHandler] = {}
        self._triggers: Dict[str, ScheduledTrigger] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def register(self, name: str, handler: TriggerHandler) -> None:
        self._handlers[name] = handler
        logger.info(f"Registered scheduler handler | name={name}")

    def schedule(self, name: str, delay: float) -> ScheduledTrigger:
        """Fire handler `name` once after `delay` seconds."""
        if name not in self._handlers:
            raise KeyError(f"No handler registered for '{name}'")
        now = self.clock()
        trigger = ScheduledTrigger(
            trigger_id=uuid.uuid4().hex,
            handler=name,
            created_at=now,
            run_at=now + delay,
        )
        self._triggers[trigger.trigger_id] = trigger
        self._tasks[trigger.trigger_id] = asyncio.get_running_loop().create_task(
            self._fire_after(trigger, delay),
            context=contextvars.Context(),
        )
        return trigger

    def list_triggers(self, handler: Optional[str] = None) -> List[ScheduledTrigger]:
        """Pending triggers, optionally for one handler."""
        return [t for t in self._triggers.values() if handler is None or t.handler == handler]

    def exists(self, trigger_id: str) -> bool:
        return trigger_id in self._triggers

    def cancel(self, trigger_id: str) -> bool:
        """Remove a pending trigger. Returns False when it was not pending."""
        trigger = self._triggers.pop(trigger_id, None)
        task = self._tasks.pop(trigger_id, None)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        return trigger is not None

    async def _fire_after(self, trigger: ScheduledTrigger, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._fire(trigger)

    async def _fire(self, trigger: ScheduledTrigger) -> None:
        if self._triggers.pop(trigger.trigger_id, None) is None:
            return
        handler = self._handlers[trigger.handler]
        try:
            await handler(trigger)
        except Exception as e:
            logger.error(
                f"Scheduled handler failed | handler={trigger.handler} trigger_id={trigger.trigger_id} error={e}",
                exc_info=True
            )
        finally:
            self._tasks.pop(trigger.trigger_id, None)

    async def shutdown(self) -> None:
        """Cancel all pending triggers."""
        tasks = list(self._tasks.values())
        self._triggers.clear()
        self._tasks.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Scheduler stopped | cancelled={len(tasks)}")
