"""
recordmap - table mapping and ad-hoc query construction over DB-API drivers.

This package maps named relational tables to record objects and provides:

- Parameterized predicate building from filter maps (equality and IN lists)
- CRUD operations with optional caller-supplied connections
- JSON projection driven by per-column type metadata
- A cache façade over a key-value client
- A maintenance-mode guard for Flask applications
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from recordmap.cache import RecordCache
from recordmap.config import Settings, get_settings
from recordmap.domain.models import ColumnDef, ColumnType, Mapping, Record
from recordmap.errors import (
    AlreadyPersistedError,
    ImmutableIdError,
    InvalidQueryError,
    RecordMapError,
    UnsavedRecordError,
)
from recordmap.mapper import RecordMapper
from recordmap.query import LimitSpec, Query, build_conditions, get_dialect
from recordmap.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "ColumnDef",
    "ColumnType",
    "Mapping",
    "Record",
    # Mapping and queries
    "RecordMapper",
    "RecordCache",
    "LimitSpec",
    "Query",
    "build_conditions",
    "get_dialect",
    # Errors
    "RecordMapError",
    "UnsavedRecordError",
    "AlreadyPersistedError",
    "ImmutableIdError",
    "InvalidQueryError",
    # Logging
    "configure_logging",
    "get_logger",
]
