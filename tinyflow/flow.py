"""
Flow module for the tinyflow framework.
"""

from collections.abc import MutableMapping, Sequence
from functools import partial
from typing import TYPE_CHECKING, Any, Generic

import anyio
import sniffio

from .config import get_config
from .exceptions import (
    CyclicFlowError,
    EmptyFlowError,
    FlowStepBudgetExceeded,
    InvalidStepBudgetError,
)
from .logging import get_flow_logger
from .task import END, ERROR, SharedT
from .topology import Topology

if TYPE_CHECKING:  # pragma: no cover
    from .logging import ScopedLogger
    from .task import Task


class Flow(Generic[SharedT]):
    """
    Walks a graph of Tasks, running the current task and following the action it
    returns until a task ends the flow or routes to an action with no successor.

    `execute` never raises for task failures. A task that fails routes to `"error"`,
    which is followed only if the task has an explicit `"error"` successor.
    """

    def __init__(
        self,
        start_task: "Task[SharedT, Any, Any]",
        name: str | None = None,
        max_steps: int | None = None,
        logger: "ScopedLogger | None" = None,
    ) -> None:
        self._start_task = start_task
        self.current_task: "Task[SharedT, Any, Any] | None" = start_task
        self.name = name or "default"
        self.max_steps = (
            max_steps if max_steps is not None else get_config().flow_max_steps
        )
        self.logger = logger or get_flow_logger(self.name)
        self.visited: list[str] = []

    @property
    def start_task(self) -> "Task[SharedT, Any, Any]":
        return self._start_task

    @property
    def max_steps(self) -> int | None:
        return self._max_steps

    @max_steps.setter
    def max_steps(self, value: int | None) -> None:
        if value is not None and (
            isinstance(value, bool) or not isinstance(value, int) or value < 1
        ):
            raise InvalidStepBudgetError(value)

        self._max_steps = value

    def reset(self) -> None:
        self.current_task = self._start_task

    def _next_task(
        self, task: "Task[SharedT, Any, Any]", action: str
    ) -> "Task[SharedT, Any, Any] | None":
        if action == END:
            return None
        elif action == ERROR:
            # failures only continue when the task routes them somewhere explicitly
            return task.successors.get(ERROR)
        elif (successor := task.successors.get(action)) is None:
            self.logger.warning(
                f"No successor found for action: {action}",
                extra={"task": task.name, "action": action},
            )

        return successor

    async def execute(self, shared: SharedT) -> SharedT:
        """Run the flow from the current task and return the mutated `shared`."""
        task = self.current_task or self._start_task
        self.visited = []

        while True:
            self.current_task = task
            self.visited.append(task.name)

            action = await task.run(shared)
            if (successor := self._next_task(task, action)) is None:
                break

            if self.max_steps is not None and len(self.visited) >= self.max_steps:
                self.logger.error(
                    "Flow stopped before reaching a terminal action",
                    exc_info=FlowStepBudgetExceeded(self.name, self.max_steps),
                    extra={"task": task.name, "action": action},
                )
                break

            task = successor

        self.logger.debug("Flow completed", extra={"visited": list(self.visited)})
        return shared

    def execute_sync(
        self,
        shared: SharedT,
        backend: str = "asyncio",
        backend_options: dict[str, Any] | None = None,
    ) -> SharedT:
        """Run `execute` to completion on a new event loop."""
        try:
            sniffio.current_async_library()
        except sniffio.AsyncLibraryNotFoundError:
            return anyio.run(
                partial(self.execute, shared),
                backend=backend,
                backend_options=backend_options,
            )

        raise RuntimeError(
            "Flow.execute_sync cannot be called from within an event loop."
            " Await `Flow.execute` instead."
        )

    @property
    def topology(self) -> Topology:
        return Topology(self._start_task)

    def resolve(self, allow_cycles: bool = False) -> "Flow[SharedT]":
        """Ensure the graph reachable from the start task has no cycles."""
        topology = self.topology
        if not allow_cycles and not topology.acyclic:
            raise CyclicFlowError(topology.cycles)

        return self


def chain_tasks(*tasks: "Task[SharedT, Any, Any]") -> Flow[SharedT]:
    if not tasks:
        raise EmptyFlowError()

    for task, next_task in zip(tasks, tasks[1:]):
        task.connect(next_task)

    return Flow(tasks[0])


def create_flow(
    start_task: "Task[SharedT, Any, Any]", name: str | None = None
) -> Flow[SharedT]:
    return Flow(start_task, name=name)


def create_parallel_flow(*start_tasks: "Task[SharedT, Any, Any]") -> list[Flow[SharedT]]:
    return [Flow(task) for task in start_tasks]


async def execute_flows(
    flows: Sequence[Flow[Any]], shareds: Sequence[MutableMapping[str, Any]]
) -> list[MutableMapping[str, Any]]:
    """Execute each flow over its own shared mapping concurrently."""
    if len(flows) != len(shareds):
        raise ValueError(
            f"Expected one shared mapping per flow, got {len(shareds)} for"
            f" {len(flows)} flows."
        )

    async with anyio.create_task_group() as tg:
        for flow, shared in zip(flows, shareds):
            tg.start_soon(flow.execute, shared, name=f"flow:{flow.name}")

    return list(shareds)
