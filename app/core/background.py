# app/core/background.py

import asyncio
import logging
from typing import Awaitable, Set

from app.core.config import settings

logger = logging.getLogger(__name__)

# Держим ссылки на запущенные задачи, иначе сборщик мусора может их прибить
_pending_tasks: Set[asyncio.Task] = set()


async def _guarded(coro: Awaitable, name: str):
    try:
        await coro
    except Exception:
        logger.error(f"Background task '{name}' failed", exc_info=True)


def fire_and_forget(coro: Awaitable, name: str = "background") -> asyncio.Task | None:
    """
    Запускает корутину в фоне. Ошибки только логируются и никогда не
    пробрасываются в вызывающий код (заказ уже закоммичен к этому моменту).
    Если очередь переполнена - задача отбрасывается.
    """
    if len(_pending_tasks) >= settings.MAX_BACKGROUND_TASKS:
        logger.error(
            f"Background queue is full ({len(_pending_tasks)} tasks). Dropping '{name}'."
        )
        coro.close()
        return None

    task = asyncio.create_task(_guarded(coro, name), name=name)
    _pending_tasks.add(task)
    task.add_done_callback(_pending_tasks.discard)
    return task



async def drain(timeout: float | None = None):
    """Дожидается завершения всех фоновых задач (остановка приложения, тесты)."""
    while _pending_tasks:
        tasks = list(_pending_tasks)
        done, not_done = await asyncio.wait(tasks, timeout=timeout)
        if not_done:
            logger.warning(f"{len(not_done)} background tasks did not finish in {timeout}s.")
            return
