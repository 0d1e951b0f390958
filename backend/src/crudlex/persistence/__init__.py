"""Persistence layer - data access, filters and database configuration."""

from crudlex.persistence.config import CrudConfig, DatabaseConfig, create_engine
from crudlex.persistence.data import AbstractData, DeletionResult
from crudlex.persistence.filters import FilterCondition, FilterOperator
from crudlex.persistence.sql import SQLData, SQLDataFactory

__all__ = [
    "AbstractData",
    "CrudConfig",
    "DatabaseConfig",
    "DeletionResult",
    "FilterCondition",
    "FilterOperator",
    "SQLData",
    "SQLDataFactory",
    "create_engine",
]
