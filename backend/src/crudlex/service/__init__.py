"""Service layer - entity wiring and list page helpers."""

from crudlex.service.crud import CrudService, DataFactory
from crudlex.service.listing import (
    ListFilter,
    ListPage,
    Pagination,
    build_list_filter,
    list_page,
)

__all__ = [
    "CrudService",
    "DataFactory",
    "ListFilter",
    "ListPage",
    "Pagination",
    "build_list_filter",
    "list_page",
]
