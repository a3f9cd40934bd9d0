"""
Migration Exceptions

Error taxonomy for the catalog migration. Store and conversion faults are
fatal and unwind the run; consistency mismatches are collected and only
raised on request.
"""

from typing import List, Optional


class MigrationError(Exception):
    """Base class for all catalog migration errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class SourceValidationFailure(MigrationError):
    """Source store has orphaned references or no rows to migrate."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message, details={'errors': list(errors or [])})
        self.errors = list(errors or [])


class StoreFailure(MigrationError):
    """Read, write or connection fault against either store."""

    def __init__(self, message: str, store: str = "", entity: Optional[str] = None):
        super().__init__(message, details={'store': store, 'entity': entity})
        self.store = store
        self.entity = entity


class UnsupportedConversion(MigrationError):
    """A value has no defined target representation."""

    def __init__(self, category: str, value, column: Optional[str] = None):
        target = f" for column '{column}'" if column else ""
        message = (
            f"No conversion defined for category '{category}'{target} "
            f"(value type: {type(value).__name__})"
        )
        super().__init__(message, details={'category': category, 'column': column})
        self.category = category
        self.column = column


class CrossConsistencyMismatch(MigrationError):
    """Source and target disagree after migration."""

    def __init__(self, errors: List[str]):
        message = f"Cross-consistency check found {len(errors)} discrepancies"
        super().__init__(message, details={'errors': list(errors)})
        self.errors = list(errors)
