from abc import abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import anyio
from pydantic import BaseModel, ConfigDict, PositiveFloat, PositiveInt, ValidationError

from .exceptions import InvalidConfigurationError, ItemTimeoutError
from .task import SharedT, Task

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Awaitable, Callable

    from .logging import ScopedLogger

ItemT = TypeVar("ItemT")
R = TypeVar("R")


class ParallelTaskConfig(BaseModel):
    max_concurrency: PositiveInt
    timeout: PositiveFloat | None = None
    """Per-item timeout in seconds. Items that exceed it are recorded as errors."""

    model_config = ConfigDict(extra="forbid", frozen=True)


@dataclass(kw_only=True, slots=True)
class ItemError:
    index: int
    error: Exception
    item: Any


@dataclass(kw_only=True, slots=True)
class ParallelTaskResult(Generic[R]):
    results: list[R | None] = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)
    total_processed: int = 0
    total_errors: int = 0
    processing_time: float = 0.0
    """Wall-clock duration of the whole batch in milliseconds."""


@dataclass(slots=True)
class _Settled:
    value: Any = None
    error: Exception | None = None


class ParallelTask(Task[SharedT, Sequence[ItemT], ParallelTaskResult[R]]):
    """
    A Task that fans its prepared items out to `exec_item`, at most
    `max_concurrency` at a time.

    Items are processed in contiguous chunks. Every item in a chunk settles before
    the next chunk begins. An item that raises is recorded in `errors` and never
    affects its siblings.
    """

    def __init__(
        self,
        name: str,
        config: "ParallelTaskConfig | Mapping[str, Any] | None" = None,
        logger: "ScopedLogger | None" = None,
        **options: "Any",
    ) -> None:
        super().__init__(name, logger=logger)

        if isinstance(config, ParallelTaskConfig):
            config = config.model_dump() if options else config

        if not isinstance(config, ParallelTaskConfig):
            try:
                config = ParallelTaskConfig(**{**(config or {}), **options})
            except ValidationError as e:
                raise InvalidConfigurationError(name, str(e)) from e

        self.config: ParallelTaskConfig = config

    @abstractmethod
    async def prepare(self, shared: SharedT) -> Sequence[ItemT]:
        raise NotImplementedError()

    @abstractmethod
    async def exec_item(self, item: ItemT) -> R:
        raise NotImplementedError()

    def should_skip(self, prepared: Sequence[ItemT]) -> bool:
        if isinstance(prepared, Sequence) and prepared:
            return False

        self.logger.warning(
            "No items to process", extra={"prepared_type": type(prepared).__name__}
        )
        return True

    async def exec(self, prepared: Sequence[ItemT]) -> ParallelTaskResult[R]:
        self.logger.info(
            f"Processing {len(prepared)} items with max concurrency"
            f" {self.config.max_concurrency}",
            extra={
                "items": len(prepared),
                "max_concurrency": self.config.max_concurrency,
            },
        )

        result = await self._process_in_batches(prepared)

        self.logger.info(
            f"Completed {result.total_processed} items, {result.total_errors} errors,"
            f" {result.processing_time:.0f}ms",
            extra={
                "total_processed": result.total_processed,
                "total_errors": result.total_errors,
                "processing_time": result.processing_time,
            },
        )
        return result

    async def _settle(
        self, slots: list[_Settled], slot: int, index: int, item: ItemT
    ) -> None:
        try:
            with anyio.move_on_after(self.config.timeout) as scope:
                slots[slot].value = await self.exec_item(item)
        except Exception as e:
            slots[slot].error = e
            return

        if scope.cancelled_caught:
            slots[slot].error = ItemTimeoutError(index, self.config.timeout)

    async def _process_in_batches(
        self, items: Sequence[ItemT]
    ) -> ParallelTaskResult[R]:
        start = anyio.current_time()
        results: list[R | None] = []
        errors: list[ItemError] = []
        step = self.config.max_concurrency

        for offset in range(0, len(items), step):
            batch = items[offset : offset + step]
            slots = [_Settled() for _ in batch]

            # the task group only exits once every item in the chunk has settled
            async with anyio.create_task_group() as tg:
                for slot, item in enumerate(batch):
                    tg.start_soon(self._settle, slots, slot, offset + slot, item)

            for slot, (item, settled) in enumerate(zip(batch, slots, strict=True)):
                index = offset + slot
                if settled.error is not None:
                    errors.append(ItemError(index=index, error=settled.error, item=item))
                    continue

                # grown lazily, so trailing failures leave `results` short
                while len(results) <= index:
                    results.append(None)
                results[index] = settled.value

        return ParallelTaskResult(
            results=results,
            errors=errors,
            total_processed=len(items),
            total_errors=len(errors),
            processing_time=(anyio.current_time() - start) * 1000,
        )


class FunctionParallelTask(ParallelTask[SharedT, ItemT, R]):
    def __init__(
        self,
        name: str,
        config: "ParallelTaskConfig | Mapping[str, Any]",
        prepare_fn: "Callable[[SharedT], Awaitable[Sequence[ItemT]]]",
        exec_fn: "Callable[[ItemT], Awaitable[R]]",
        logger: "ScopedLogger | None" = None,
    ) -> None:
        super().__init__(name, config, logger=logger)
        self._prepare_fn = prepare_fn
        self._exec_fn = exec_fn

    async def prepare(self, shared: SharedT) -> Sequence[ItemT]:
        return await self._prepare_fn(shared)

    async def exec_item(self, item: ItemT) -> R:
        return await self._exec_fn(item)


def create_parallel_task(
    name: str,
    max_concurrency: int,
    prepare_fn: "Callable[[Any], Awaitable[Sequence[Any]]]",
    exec_fn: "Callable[[Any], Awaitable[Any]]",
    *,
    timeout: float | None = None,
    logger: "ScopedLogger | None" = None,
) -> FunctionParallelTask[Any, Any, Any]:
    return FunctionParallelTask(
        name,
        {"max_concurrency": max_concurrency, "timeout": timeout},
        prepare_fn,
        exec_fn,
        logger=logger,
    )
