from .flow import Flow, chain_tasks, create_flow, create_parallel_flow, execute_flows
from .logging import configure_logging, get_flow_logger, get_task_logger
from .parallel import (
    ItemError,
    ParallelTask,
    ParallelTaskConfig,
    ParallelTaskResult,
    create_parallel_task,
)
from .task import DEFAULT, END, ERROR, FunctionTask, Task, TaskOutcome, create_task

__all__ = [
    "DEFAULT",
    "END",
    "ERROR",
    "Flow",
    "FunctionTask",
    "ItemError",
    "ParallelTask",
    "ParallelTaskConfig",
    "ParallelTaskResult",
    "Task",
    "TaskOutcome",
    "chain_tasks",
    "configure_logging",
    "create_flow",
    "create_parallel_flow",
    "create_parallel_task",
    "create_task",
    "execute_flows",
    "get_flow_logger",
    "get_task_logger",
]
