from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar, cast

from .exceptions import InvalidActionError
from .logging import get_task_logger

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable

    from .logging import ScopedLogger

DEFAULT = "default"
END = "end"
ERROR = "error"

RESERVED_ACTIONS: frozenset[str] = frozenset({DEFAULT, END, ERROR})

SharedT = TypeVar("SharedT", bound=MutableMapping[str, Any])
PreparedT = TypeVar("PreparedT")
ResultT = TypeVar("ResultT")


@dataclass(kw_only=True, frozen=True, slots=True)
class TaskOutcome:
    """The result of a single `Task.run_outcome` call."""

    action: str
    error: Exception | None = None
    skipped: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


class Task(ABC, Generic[SharedT, PreparedT, ResultT]):
    """
    A named unit of work with a prepare -> exec -> post -> merge lifecycle.

    Subclasses must implement `exec`. The action returned by `post` selects which
    successor a `Flow` runs next. A subclass may declare `allowed_actions` to have
    `connect` reject labels it never routes to.
    """

    allowed_actions: ClassVar[frozenset[str] | None] = None

    def __init__(self, name: str, logger: "ScopedLogger | None" = None) -> None:
        if not name:
            raise ValueError("Task name must be a non-empty string.")

        self._name = name
        self.successors: dict[str, Task[SharedT, Any, Any]] = {}
        self.logger = logger or get_task_logger(name)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"

    def connect(
        self, next_task: "Task[SharedT, Any, Any]", action: str = DEFAULT
    ) -> "Task[SharedT, Any, Any]":
        """Route `action` to `next_task`, replacing any existing edge for it."""
        if self.allowed_actions is not None and action not in (
            allowed := self.allowed_actions | RESERVED_ACTIONS
        ):
            raise InvalidActionError(self.name, action, allowed)

        self.successors[action] = next_task
        return next_task

    def is_valid_action(self, action: str) -> bool:
        return action == DEFAULT or action in self.successors

    async def run(self, shared: SharedT) -> str:
        """Run the full lifecycle and return the next action. Never raises."""
        return (await self.run_outcome(shared)).action

    async def run_outcome(self, shared: SharedT) -> TaskOutcome:
        try:
            self.logger.debug("Starting task execution")

            prepared = await self.prepare(shared)
            self.logger.debug("Data preparation completed")

            if self.should_skip(prepared):
                return TaskOutcome(action=DEFAULT, skipped=True)

            result = await self.exec(prepared)
            self.logger.debug("Task execution completed")

            action = await self.post(shared, prepared, result)
            self.logger.debug("Post-processing completed", extra={"action": action})

            self.merge(shared, result)
        except Exception as e:
            self.logger.error(
                "Task execution failed", exc_info=e, extra={"error": str(e)}
            )
            return TaskOutcome(action=ERROR, error=e)

        self.logger.info("Task completed successfully", extra={"action": action})
        return TaskOutcome(action=action)

    async def prepare(self, shared: SharedT) -> PreparedT:
        return cast("PreparedT", shared)

    def should_skip(self, prepared: PreparedT) -> bool:
        return False

    @abstractmethod
    async def exec(self, prepared: PreparedT) -> ResultT:
        raise NotImplementedError()

    async def post(self, shared: SharedT, prepared: PreparedT, result: ResultT) -> str:
        return DEFAULT

    def merge(self, shared: SharedT, result: ResultT) -> None:
        shared[self.name] = result


class FunctionTask(Task[SharedT, PreparedT, ResultT]):
    """A `Task` whose hooks are supplied as plain coroutine functions."""

    def __init__(
        self,
        name: str,
        exec_fn: "Callable[[PreparedT], Awaitable[ResultT]]",
        *,
        prepare_fn: "Callable[[SharedT], Awaitable[PreparedT]] | None" = None,
        post_fn: "Callable[[SharedT, PreparedT, ResultT], Awaitable[str]] | None" = None,
        merge_fn: "Callable[[SharedT, ResultT], None] | None" = None,
        logger: "ScopedLogger | None" = None,
    ) -> None:
        super().__init__(name, logger=logger)
        self._exec_fn = exec_fn
        self._prepare_fn = prepare_fn
        self._post_fn = post_fn
        self._merge_fn = merge_fn

    async def prepare(self, shared: SharedT) -> PreparedT:
        if self._prepare_fn is None:
            return await super().prepare(shared)

        return await self._prepare_fn(shared)

    async def exec(self, prepared: PreparedT) -> ResultT:
        return await self._exec_fn(prepared)

    async def post(self, shared: SharedT, prepared: PreparedT, result: ResultT) -> str:
        if self._post_fn is None:
            return await super().post(shared, prepared, result)

        return await self._post_fn(shared, prepared, result)

    def merge(self, shared: SharedT, result: ResultT) -> None:
        if self._merge_fn is None:
            return super().merge(shared, result)

        self._merge_fn(shared, result)


def create_task(
    name: str,
    exec_fn: "Callable[[Any], Awaitable[Any]]",
    *,
    prepare_fn: "Callable[[Any], Awaitable[Any]] | None" = None,
    post_fn: "Callable[[Any, Any, Any], Awaitable[str]] | None" = None,
    merge_fn: "Callable[[Any, Any], None] | None" = None,
    logger: "ScopedLogger | None" = None,
) -> FunctionTask[Any, Any, Any]:
    return FunctionTask(
        name,
        exec_fn,
        prepare_fn=prepare_fn,
        post_fn=post_fn,
        merge_fn=merge_fn,
        logger=logger,
    )
