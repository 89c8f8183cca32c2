"""
Domain package for recordmap.

Exports the mapping descriptor and the record value object.
Keep this package focused on data definitions and validation concerns.
"""

from recordmap.domain.models import ColumnDef, ColumnType, Mapping, Record

__all__ = [
    "ColumnDef",
    "ColumnType",
    "Mapping",
    "Record",
]
