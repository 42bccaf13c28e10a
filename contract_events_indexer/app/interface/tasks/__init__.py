from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from .backfill_contract_events_task import backfill_contract_events_task
from .follow_contract_events_task import follow_contract_events_task
from .register_event_signatures_task import register_event_signatures_task
from .reset_cursor_task import reset_cursor_task

TaskFn = Callable[..., Awaitable[Any]]

TASKS: dict[str, TaskFn] = {
    "follow_contract_events_task": follow_contract_events_task,
    "backfill_contract_events_task": backfill_contract_events_task,
    "register_event_signatures_task": register_event_signatures_task,
    "reset_cursor_task": reset_cursor_task,
}
