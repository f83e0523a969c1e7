"""Triplet records and the pattern-matched triple store.

The store is the source of truth for relationships. It performs no duplicate
checking: callers that want unique edges query before inserting.

A pattern is a mapping with any of the keys ``subject``, ``predicate`` and
``object``. Missing keys match anything; present keys match by exact
equality (predicates compare by value).
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, Union

from netviz.engine.core import Predicate

PATTERN_KEYS = ("subject", "predicate", "object")

Pattern = Mapping[str, Any]


class StoreError(RuntimeError):
    """Raised when the persistence medium behind a triplet store fails."""


@dataclass
class Triplet:
    """A persisted (subject, predicate, object) relationship."""

    subject: str
    predicate: Predicate
    object: str

    def __post_init__(self) -> None:
        if not isinstance(self.subject, str) or not self.subject:
            raise ValueError("Triplet subject must be a non-empty node hash")
        if not isinstance(self.object, str) or not self.object:
            raise ValueError("Triplet object must be a non-empty node hash")
        if not isinstance(self.predicate, Predicate):
            raise TypeError(
                f"Triplet predicate must be a Predicate, got: {type(self.predicate).__name__}"
            )

    def matches(self, pattern: Pattern) -> bool:
        _check_pattern(pattern)
        if "subject" in pattern and pattern["subject"] != self.subject:
            return False
        if "object" in pattern and pattern["object"] != self.object:
            return False
        if "predicate" in pattern:
            wanted = pattern["predicate"]
            if not isinstance(wanted, Predicate) or wanted.canonical() != self.predicate.canonical():
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "predicate": self.predicate.to_dict(),
            "object": self.object,
        }


TripletOrList = Union[Triplet, Iterable[Triplet]]
PatternOrList = Union[Pattern, Iterable[Pattern]]


def _check_pattern(pattern: Pattern) -> None:
    unknown = set(pattern) - set(PATTERN_KEYS)
    if unknown:
        raise ValueError(f"Unknown pattern keys: {sorted(unknown)}")


def as_triplet_list(triplets: TripletOrList) -> list[Triplet]:
    if isinstance(triplets, Triplet):
        return [triplets]
    return list(triplets)


def as_pattern_list(patterns: PatternOrList) -> list[Pattern]:
    if isinstance(patterns, Mapping):
        return [patterns]
    if isinstance(patterns, Triplet):
        return [_triplet_pattern(patterns)]
    result = []
    for p in patterns:
        # Triplets are valid patterns: delete exactly that relationship.
        result.append(_triplet_pattern(p) if isinstance(p, Triplet) else p)
    return result


def _triplet_pattern(t: Triplet) -> dict[str, Any]:
    return {"subject": t.subject, "predicate": t.predicate, "object": t.object}


class TripletStore(Protocol):
    """Boundary of the relationship store."""

    def get(self, pattern: Pattern) -> list[Triplet]: ...

    def put(self, triplets: TripletOrList) -> None: ...

    def delete(self, patterns: PatternOrList) -> int: ...

    def close(self) -> None: ...


class MemoryTripletStore:
    """Insertion-ordered in-memory triplet store.

    Triplets are copied on the way in and on the way out, so edits to a
    predicate object do not leak into the store until they are written back.
    """

    def __init__(self) -> None:
        self._triplets: list[Triplet] = []

    def get(self, pattern: Pattern) -> list[Triplet]:
        _check_pattern(pattern)
        return [copy.deepcopy(t) for t in self._triplets if t.matches(pattern)]

    def put(self, triplets: TripletOrList) -> None:
        for t in as_triplet_list(triplets):
            self._triplets.append(copy.deepcopy(t))

    def delete(self, patterns: PatternOrList) -> int:
        """Delete every triplet matching any of the patterns. Returns the count removed."""
        pattern_list = as_pattern_list(patterns)
        for p in pattern_list:
            _check_pattern(p)
        before = len(self._triplets)
        self._triplets = [
            t for t in self._triplets if not any(t.matches(p) for p in pattern_list)
        ]
        return before - len(self._triplets)

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._triplets)
