from typing import TYPE_CHECKING, Any

import networkx as nx
from networkx import generate_network_text

if TYPE_CHECKING:  # pragma: no cover
    from .task import Task


class Topology:
    """The successor graph reachable from a start Task."""

    def __init__(self, start_task: "Task[Any, Any, Any]") -> None:
        self.start_task = start_task
        self.digraph = nx.DiGraph()

        seen: set["Task[Any, Any, Any]"] = set()
        pending = [start_task]
        while pending:
            task = pending.pop()
            if task in seen:
                continue

            seen.add(task)
            self.digraph.add_node(task, label=task.name)
            for action, successor in task.successors.items():
                # several actions may lead to the same successor
                if self.digraph.has_edge(task, successor):
                    self.digraph.edges[task, successor]["actions"].add(action)
                else:
                    self.digraph.add_edge(task, successor, actions={action})

                pending.append(successor)

    @property
    def tasks(self) -> list["Task[Any, Any, Any]"]:
        return list(self.digraph.nodes)

    @property
    def acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self.digraph)

    @property
    def cycles(self) -> list[tuple[str, ...]]:
        # sort cycles by length for better error reporting
        return sorted(
            (tuple(task.name for task in cycle) for cycle in nx.simple_cycles(self.digraph)),
            key=len,
        )

    def __str__(self) -> str:
        return "\n".join(generate_network_text(self.digraph, vertical_chains=True))
