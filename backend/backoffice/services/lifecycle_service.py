# Overview: Status state-machine helpers shared by orders and returns.

"""
Status lifecycle rules.

Orders and returns each declare their state graph as a mapping of
status -> set of directly reachable statuses. Everything that validates a
status change goes through require_transition so the two workflows reject
bad moves the same way.

RULES:
1. Only edges present in the graph are transitions
2. Staying in the same status is not a transition (callers decide whether
   that is an error or a no-op edit)
3. Terminal statuses have no outgoing edges
"""

from __future__ import annotations

from typing import Mapping


class LifecycleError(ValueError):
    """
    Raised when a status value or status change violates the lifecycle rules.

    This is a domain error, not a technical error.
    """


class InvalidTransitionError(LifecycleError):
    """Raised when the requested status is not reachable from the current one."""

    def __init__(self, entity: str, from_status: str, to_status: str):
        super().__init__(
            f"Cannot move {entity} from '{from_status}' to '{to_status}'"
        )
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status


def validate_status(graph: Mapping[str, frozenset[str]], status: str, entity: str) -> None:
    """
    Raises:
        LifecycleError: If status is not a state of the graph
    """
    if status not in graph:
        raise LifecycleError(
            f"Invalid {entity} status '{status}'. Must be one of: {', '.join(sorted(graph))}"
        )


def can_transition(graph: Mapping[str, frozenset[str]], from_status: str, to_status: str) -> bool:
    """True iff to_status is directly reachable from from_status."""
    return to_status in graph.get(from_status, frozenset())


def require_transition(
    graph: Mapping[str, frozenset[str]],
    from_status: str,
    to_status: str,
    entity: str,
) -> None:
    """
    Raises:
        InvalidTransitionError: If the edge from_status -> to_status is not in the graph
    """
    if not can_transition(graph, from_status, to_status):
        raise InvalidTransitionError(entity, from_status, to_status)


def is_terminal(graph: Mapping[str, frozenset[str]], status: str) -> bool:
    return not graph.get(status)
