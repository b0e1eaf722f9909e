"""
Predicates over repository events.

Each predicate is a pure boolean test over an Event. They are combined with
``&``, ``|`` and ``~`` (AllOf, AnyOf, Not) without changing the predicates
themselves.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from event_gateway.schemas.events import NODE_RESOURCE_TAG, Event


class Predicate(ABC):
    """Boolean test over an Event."""

    @abstractmethod
    def matches(self, event: Event) -> bool:
        pass

    def __call__(self, event: Event) -> bool:
        return self.matches(event)

    def __and__(self, other: "Predicate") -> "Predicate":
        return AllOf(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return AnyOf(self, other)

    def __invert__(self) -> "Predicate":
        return Not(self)


class NodeTypePredicate(Predicate):
    """True iff the event is about a node whose type equals ``expected_type``.

    Resources that are not node resources never match.
    """

    def __init__(self, expected_type: str):
        if not expected_type:
            raise ValueError("expected_type must be a non-empty node type")
        self.expected_type = expected_type

    def matches(self, event: Event) -> bool:
        resource = event.resource
        if resource.resource_type != NODE_RESOURCE_TAG:
            return False
        return resource.node_type == self.expected_type

    def __repr__(self) -> str:
        return f"NodeTypePredicate({self.expected_type!r})"


class AncestorPredicate(Predicate):
    """True iff ``target_ancestor_id`` appears in the node's primary hierarchy.

    Membership only: the position of the ancestor in the hierarchy is not
    checked.
    """

    def __init__(self, target_ancestor_id: str):
        if not target_ancestor_id:
            raise ValueError("target_ancestor_id must be a non-empty node id")
        self.target_ancestor_id = target_ancestor_id

    def matches(self, event: Event) -> bool:
        return any(
            entry.id == self.target_ancestor_id
            for entry in event.resource.primary_hierarchy
        )

    def __repr__(self) -> str:
        return f"AncestorPredicate({self.target_ancestor_id!r})"


class AllOf(Predicate):
    def __init__(self, *predicates: Predicate):
        self.predicates = _flatten(AllOf, predicates)

    def matches(self, event: Event) -> bool:
        return all(p.matches(event) for p in self.predicates)

    def __repr__(self) -> str:
        return f"AllOf({', '.join(map(repr, self.predicates))})"


class AnyOf(Predicate):
    def __init__(self, *predicates: Predicate):
        self.predicates = _flatten(AnyOf, predicates)

    def matches(self, event: Event) -> bool:
        return any(p.matches(event) for p in self.predicates)

    def __repr__(self) -> str:
        return f"AnyOf({', '.join(map(repr, self.predicates))})"


class Not(Predicate):
    def __init__(self, predicate: Predicate):
        self.predicate = predicate

    def matches(self, event: Event) -> bool:
        return not self.predicate.matches(event)

    def __repr__(self) -> str:
        return f"Not({self.predicate!r})"


def _flatten(kind: type, predicates: Iterable[Predicate]) -> tuple[Predicate, ...]:
    flat: list[Predicate] = []
    for p in predicates:
        if isinstance(p, kind):
            flat.extend(p.predicates)
        else:
            flat.append(p)
    return tuple(flat)


__all__ = [
    "Predicate",
    "NodeTypePredicate",
    "AncestorPredicate",
    "AllOf",
    "AnyOf",
    "Not",
]
