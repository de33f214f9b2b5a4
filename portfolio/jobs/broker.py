import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from taskiq import AsyncBroker, InMemoryBroker, TaskiqEvents, TaskiqScheduler, TaskiqState
from taskiq.schedule_sources import LabelScheduleSource

from portfolio.config import settings

logger = logging.getLogger(__name__)

broker: AsyncBroker
if settings.taskiq_enabled:
    from taskiq_redis import ListQueueBroker, RedisScheduleSource

    broker = ListQueueBroker(url=settings.redis_url, queue_name="portfolio_tasks")
    redis_source = RedisScheduleSource(url=settings.redis_url)
    scheduler = TaskiqScheduler(broker, [redis_source, LabelScheduleSource(broker)])
else:
    broker = InMemoryBroker()
    redis_source = None
    scheduler = TaskiqScheduler(broker, [LabelScheduleSource(broker)])


@broker.on_event(TaskiqEvents.WORKER_STARTUP)
async def startup(state: TaskiqState) -> None:
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    worker_logger = logging.getLogger(__name__)
    worker_logger.info("Starting task worker...")

    state.logger = worker_logger


@broker.on_event(TaskiqEvents.WORKER_SHUTDOWN)
async def shutdown(state: TaskiqState) -> None:
    state.logger.info("Task worker stopped")


_deferred: set[asyncio.Task] = set()


async def dispatch(task: Any, *args: Any, **kwargs: Any) -> None:
    await task.kiq(*args, **kwargs)


async def dispatch_later(task: Any, delay_seconds: float, *args: Any, **kwargs: Any) -> None:
    """Queue ``task`` so that it runs at or after ``delay_seconds`` from now."""
    if redis_source is not None:
        when = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        await task.schedule_by_time(redis_source, when, *args, **kwargs)
        return

    async def _run_later() -> None:
        await asyncio.sleep(delay_seconds)
        try:
            await task.kiq(*args, **kwargs)
        except Exception:
            logger.exception("Deferred dispatch of %s failed", getattr(task, "task_name", task))

    pending = asyncio.create_task(_run_later())
    _deferred.add(pending)
    pending.add_done_callback(_deferred.discard)
