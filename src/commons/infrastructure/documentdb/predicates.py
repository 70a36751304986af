"""Store-neutral query predicates.

Services describe what they want with these values; each document store
provider translates them into its own query language. Nothing here knows
about Mongo operators.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any


class FilterOperator(str, Enum):
    """Comparison applied by a predicate."""

    EQ = "eq"
    GTE = "gte"
    LTE = "lte"
    IN = "in"  # field (scalar or list) shares at least one value
    RANGE = "range"  # value is (low, high); either side may be None
    CONTAINS = "contains"  # case-insensitive literal substring


@dataclass(frozen=True)
class Predicate:
    """A single field comparison."""

    field: str
    operator: FilterOperator
    value: Any

    def __post_init__(self) -> None:
        if self.operator == FilterOperator.RANGE:
            if not isinstance(self.value, tuple) or len(self.value) != 2:
                raise ValueError("RANGE predicates take a (low, high) tuple")
        if self.operator == FilterOperator.IN:
            object.__setattr__(self, "value", tuple(self.value))
        if self.operator == FilterOperator.CONTAINS and not isinstance(
            self.value, str
        ):
            raise ValueError("CONTAINS predicates take a string")


@dataclass(frozen=True)
class AnyOf:
    """Disjunction: matches when any inner predicate matches."""

    predicates: tuple[Predicate, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "predicates", tuple(self.predicates))


Filter = Predicate | AnyOf


@dataclass(frozen=True)
class SortField:
    """One key of a multi-key sort."""

    field: str
    descending: bool = False


def eq(field: str, value: Any) -> Predicate:
    return Predicate(field, FilterOperator.EQ, value)


def any_in(field: str, values: Sequence[Any]) -> Predicate:
    return Predicate(field, FilterOperator.IN, tuple(values))


def between(field: str, low: Any = None, high: Any = None) -> Predicate:
    return Predicate(field, FilterOperator.RANGE, (low, high))


def contains(field: str, term: str) -> Predicate:
    return Predicate(field, FilterOperator.CONTAINS, term)


def is_unsatisfiable(predicate: Predicate) -> bool:
    """True for a RANGE whose lower bound exceeds its upper bound."""
    if predicate.operator != FilterOperator.RANGE:
        return False
    low, high = predicate.value
    return low is not None and high is not None and low > high
