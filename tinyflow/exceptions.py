from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable
    from typing import Any


class TinyflowError(Exception):
    def __init__(self, *args: "Any", **kwargs: "Any") -> None:
        super().__init__(*args, **kwargs)


##
## FLOW GRAPH
##


class FlowError(TinyflowError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidActionError(FlowError):
    def __init__(self, task_name: str, action: str, allowed: "Iterable[str]") -> None:
        allowed_str = ", ".join(sorted(allowed))
        super().__init__(
            f"Task '{task_name}' cannot route to action '{action}'."
            f" Allowed actions: {allowed_str}."
        )


class EmptyFlowError(FlowError):
    def __init__(self) -> None:
        super().__init__("A Flow requires at least one Task.")


class CyclicFlowError(FlowError):
    def __init__(self, cycles: list[tuple[str, ...]]) -> None:
        self.cycles = cycles
        cycle_str = "\n  ".join(" -> ".join(cycle) for cycle in cycles)
        super().__init__(
            "Flow contains successor cycles. Offending cycles:\n" f"  {cycle_str}"
        )


class InvalidStepBudgetError(FlowError):
    def __init__(self, max_steps: "Any") -> None:
        super().__init__(
            f"Flow step budget must be a positive integer or None, got {max_steps!r}."
        )


class FlowStepBudgetExceeded(FlowError):
    def __init__(self, flow_name: str, max_steps: int) -> None:
        super().__init__(
            f"Flow '{flow_name}' ran {max_steps} tasks without reaching a terminal"
            " action."
        )


##
## PARALLEL EXECUTION
##


class ParallelTaskError(TinyflowError):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidConfigurationError(ParallelTaskError):
    def __init__(self, task_name: str, reason: str) -> None:
        super().__init__(f"Invalid configuration for parallel task '{task_name}': {reason}")


class ItemTimeoutError(ParallelTaskError):
    def __init__(self, index: int, timeout: float) -> None:
        self.index = index
        self.timeout = timeout
        super().__init__(f"Item {index} did not settle within {timeout}s.")
