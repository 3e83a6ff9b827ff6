"""Domain models for the purchase order tracker."""

from .config_models import (
    CANONICAL_FIELDS,
    DEFAULT_COLUMN_SCHEMA,
    ColumnSchema,
    DatabaseConfig,
    ReportConfig,
    TrackerConfig,
)
from .order import CanonicalOrder, OrderStatus, PersistedOrder

__all__ = [
    # Configuration models
    "CANONICAL_FIELDS",
    "DEFAULT_COLUMN_SCHEMA",
    "ColumnSchema",
    "DatabaseConfig",
    "ReportConfig",
    "TrackerConfig",
    # Order models
    "CanonicalOrder",
    "OrderStatus",
    "PersistedOrder",
]
