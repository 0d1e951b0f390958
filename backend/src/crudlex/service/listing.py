"""List page helpers: filters from request parameters, pagination and sorting.

Request parameters use the names of the CRUDlex list views:

- ``crudFilter<field>``: filter value of a filterable field
- ``crudPage``: zero based page number
- ``crudSortField`` / ``crudSortAscending``: sort column and direction
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from crudlex.core.entity import Entity
from crudlex.definitions.entity_definition import EntityDefinition
from crudlex.persistence.data import AbstractData
from crudlex.persistence.filters import FilterCondition

FILTER_PREFIX = "crudFilter"


@dataclass
class ListFilter:
    """Filter state of a list page.

    Attributes:
        values: Submitted filter values keyed by field, for redisplay
        conditions: The conditions passed to the data layer
        active: True if any filter value was given
    """

    values: dict[str, Any] = field(default_factory=dict)
    conditions: list[FilterCondition] = field(default_factory=list)
    active: bool = False


def build_list_filter(definition: EntityDefinition, params: Mapping[str, Any]) -> ListFilter:
    """Build the list filter of an entity from request parameters.

    Boolean fields match ``"true"`` / anything else exactly, many fields
    must hold all given ids, reference fields match the id and all other
    fields match a substring. Empty values are ignored.
    """
    result = ListFilter()
    for name in definition.get_filter():
        value = params.get(f"{FILTER_PREFIX}{name}")
        result.values[name] = value
        if value is None or value == "" or value == []:
            continue

        result.active = True
        field_type = definition.get_type(name)
        if field_type == "boolean":
            result.conditions.append(FilterCondition.equals(name, str(value).lower() == "true"))
        elif field_type == "many":
            if not isinstance(value, (list, tuple)):
                value = [value]
            targets = [{"id": v} for v in value if v not in (None, "")]
            result.values[name] = targets
            result.conditions.append(FilterCondition.in_set(name, targets))
        elif field_type == "reference":
            result.conditions.append(FilterCondition.equals(name, value))
        else:
            result.conditions.append(FilterCondition.contains(name, value))
    return result


@dataclass
class Pagination:
    """Page position of a list.

    ``max_page`` is -1 for an empty list, and so is ``page``.
    """

    total: int
    page_size: int
    page: int
    max_page: int
    skip: int

    @classmethod
    def compute(cls, total: int, page_size: int, requested_page: Any = 0) -> "Pagination":
        max_page = total // page_size
        if total % page_size == 0:
            max_page -= 1

        page = abs(_to_int(requested_page))
        if page > max_page:
            page = max_page

        return cls(
            total=total,
            page_size=page_size,
            page=page,
            max_page=max_page,
            skip=max(page, 0) * page_size,
        )


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class ListPage:
    """One page of a filtered and sorted entity list."""

    entities: list[Entity]
    pagination: Pagination
    filter: ListFilter
    sort_field: str
    sort_ascending: bool


def list_page(data: AbstractData, params: Mapping[str, Any]) -> ListPage:
    """Fetch the list page described by request parameters."""
    definition = data.get_definition()
    list_filter = build_list_filter(definition, params)

    total = data.count_by(definition.get_table(), list_filter.conditions, True)
    pagination = Pagination.compute(total, definition.get_page_size(), params.get("crudPage", 0))

    sort_field = params.get("crudSortField") or definition.get_initial_sort_field()
    sort_ascending_param = params.get("crudSortAscending")
    if sort_ascending_param is not None:
        sort_ascending = str(sort_ascending_param).lower() == "true"
    else:
        sort_ascending = definition.is_initial_sort_ascending()

    entities: list[Entity] = []
    if pagination.total > 0:
        entities = data.list_entries(
            list_filter.conditions,
            skip=pagination.skip,
            amount=pagination.page_size,
            sort_field=sort_field,
            sort_ascending=sort_ascending,
        )

    return ListPage(
        entities=entities,
        pagination=pagination,
        filter=list_filter,
        sort_field=sort_field,
        sort_ascending=sort_ascending,
    )
