"""
Asynchronous task capability exposed to scripts as `Task`.

The scheduler owns a private asyncio event loop. Spawned script functions
are wrapped in coroutines and only make progress while the loop runs,
which happens inside `join`, `sleep` and `yield`. The interpreter itself
stays synchronous and never touches the loop.
"""

import asyncio
import itertools
import logging
import time
from typing import Dict, List, Optional

from .host import HostFunction, Namespace, Record
from .values import Value, ValueKind, ABSENT, bool_val, host_val
from ..errors import error_task, error_value_type

logger = logging.getLogger(__name__)


def invoke_callable(func: Value, args: List[Value]) -> Value:
    """Call a script closure or host function from outside the evaluator."""
    if func.kind == ValueKind.CLOSURE:
        return func.data.interpreter.call_value(func, args)
    if func.kind == ValueKind.HOST and isinstance(func.data, HostFunction):
        return func.data.invoke(args)
    raise error_value_type(f"Task.spawn expects a function, got {func.kind.value}")


class TaskScheduler(Namespace):
    """The `Task` namespace: spawn, join, cancel, sleep and yield."""

    def __init__(self):
        super().__init__("Task")
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Dict[int, asyncio.Task] = {}
        self._ids = itertools.count(1)
        self._depth = 0  # >0 while a spawned function is executing

        self.add(HostFunction("spawn", self.spawn, "Schedule fn(args...) and return a handle.", unwrap=False))
        self.add(HostFunction("join", self.join, "Wait for a task and return its result.", unwrap=False))
        self.add(HostFunction("cancel", self.cancel, "Cancel a task that has not finished.", unwrap=False))
        self.add(HostFunction("sleep", self.sleep, "Let pending tasks run for ms milliseconds.", unwrap=False))
        self.add(HostFunction("yield", self.yield_, "Run one iteration of the task loop.", unwrap=False))

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """The private event loop, opened on first use."""
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            logger.debug("task loop opened")
        return self._loop

    @property
    def is_open(self) -> bool:
        return self._loop is not None

    @property
    def in_task(self) -> bool:
        return self._depth > 0

    async def _run(self, task_id: int, func: Value, args: List[Value]) -> Value:
        logger.debug("task %d started", task_id)
        self._depth += 1
        try:
            return invoke_callable(func, args)
        finally:
            self._depth -= 1
            logger.debug("task %d finished", task_id)

    def spawn(self, func: Value = ABSENT, *args: Value) -> Value:
        if func.kind not in (ValueKind.CLOSURE, ValueKind.HOST):
            raise error_value_type(f"Task.spawn expects a function, got {func.kind.value}")
        task_id = next(self._ids)
        task = self.loop.create_task(self._run(task_id, func, list(args)))
        self._tasks[task_id] = task
        logger.debug("task %d spawned", task_id)
        return host_val(self._make_handle(task_id, task))

    def _make_handle(self, task_id: int, task: asyncio.Task) -> Record:
        return Record({
            "id": task_id,
            "done": HostFunction("done", task.done),
            "cancelled": HostFunction("cancelled", task.cancelled),
        }, type_name="Task")

    def _task_for(self, handle: Value, operation: str) -> asyncio.Task:
        record = handle.data if handle.kind == ValueKind.HOST else None
        if not isinstance(record, Record) or record.type_name != "Task":
            raise error_value_type(f"Task.{operation} expects a task handle, got {handle.kind.value}")
        task = self._tasks.get(int(record.fields["id"]))
        if task is None:
            raise error_task(f"unknown task {record.fields['id']}")
        return task

    def join(self, handle: Value = ABSENT) -> Value:
        task = self._task_for(handle, "join")
        if self.in_task:
            raise error_task("cannot join a task from inside a running task")
        if task.cancelled():
            raise error_task("cannot join a cancelled task")
        try:
            return self.loop.run_until_complete(task)
        except asyncio.CancelledError:
            raise error_task("cannot join a cancelled task")

    def cancel(self, handle: Value = ABSENT) -> Value:
        task = self._task_for(handle, "cancel")
        if task.done():
            return bool_val(False)
        logger.debug("task cancellation requested")
        return bool_val(task.cancel())

    def sleep(self, ms: Value = ABSENT) -> Value:
        if ms.kind != ValueKind.NUMBER:
            raise error_value_type(f"Task.sleep expects a number, got {ms.kind.value}")
        seconds = max(0.0, ms.data) / 1000.0
        if self.in_task:
            time.sleep(seconds)
        else:
            self.loop.run_until_complete(asyncio.sleep(seconds))
        return ABSENT

    def yield_(self) -> Value:
        if not self.in_task:
            self.loop.run_until_complete(asyncio.sleep(0))
        return ABSENT

    def pending(self) -> int:
        """Number of spawned tasks that have not finished."""
        return sum(1 for task in self._tasks.values() if not task.done())

    def close(self) -> None:
        """Cancel whatever is still pending and close the loop. Safe to call twice."""
        if self._loop is None:
            return
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        if self.pending():
            self._loop.run_until_complete(asyncio.gather(
                *[t for t in self._tasks.values() if not t.done()], return_exceptions=True))
        self._loop.close()
        self._loop = None
        self._tasks.clear()
        logger.debug("task loop closed")

    def __str__(self) -> str:
        return f"<namespace Task ({len(self._tasks)} tasks)>"