"""Filter conditions for list and count queries."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class FilterOperator(Enum):
    """How a filter value is matched against a column."""

    EQUALS = "equals"
    CONTAINS = "contains"  # Substring match, LIKE '%value%'
    IN_SET = "in_set"  # Many field holds all given target ids


@dataclass(frozen=True)
class FilterCondition:
    """A single filter: field, operator and value."""

    field: str
    operator: FilterOperator = FilterOperator.EQUALS
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.EQUALS, value)

    @classmethod
    def contains(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.CONTAINS, value)

    @classmethod
    def in_set(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.IN_SET, value)

    def target_ids(self) -> list[Any]:
        """The ids of an IN_SET value, unwrapping ``{"id": ...}`` items."""
        value = self.value
        if value is None:
            return []
        if not isinstance(value, (list, tuple, set)):
            value = [value]
        return [unwrap_id(v) for v in value]


def unwrap_id(value: Any) -> Any:
    """Return the id of a reference-style ``{"id": ...}`` value."""
    if isinstance(value, Mapping):
        return value.get("id")
    return value


def build_condition(column: str, condition: FilterCondition, param: str) -> tuple[str, dict[str, Any]]:
    """Build a SQL condition for EQUALS and CONTAINS filters.

    Args:
        column: Quoted column expression
        condition: The filter condition
        param: Bind parameter name to use

    Returns:
        The SQL fragment and its bind parameters.
    """
    value = unwrap_id(condition.value)

    if condition.operator == FilterOperator.EQUALS:
        if value is None:
            return f"{column} IS NULL", {}
        return f"{column} = :{param}", {param: value}

    if condition.operator == FilterOperator.CONTAINS:
        return f"{column} LIKE :{param}", {param: f"%{value}%"}

    raise ValueError(f"Operator {condition.operator.value} needs a join table lookup")
