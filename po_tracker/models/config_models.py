from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

"""Config dataclasses for the purchase order tracker.

The loader in po_tracker/config/loader.py builds these from YAML; everything
here is frozen so a loaded configuration can be handed around freely.

ColumnSchema is the immutable column configuration passed into the
normalizer (canonical field order, alias table, date fields, row filter).
"""

__all__ = [
    "CANONICAL_FIELDS",
    "DEFAULT_ALIASES",
    "ColumnSchema",
    "DEFAULT_COLUMN_SCHEMA",
    "DatabaseConfig",
    "ReportConfig",
    "TrackerConfig",
]


CANONICAL_FIELDS: tuple[str, ...] = (
    "SERIAL NO.",
    "ORDER NO.",
    "ORDER DATE",
    "ISSUED TO",
    "VENDOR LOCATION",
    "SUBJECT",
    "BASIC ORDER VALUE",
    "GST",
    "TOTAL ORDER VALUE",
    "DEALING OFFICER",
)

# canonical -> 宣言順の alias 一覧 (先勝ち)
DEFAULT_ALIASES: dict[str, tuple[str, ...]] = {
    "SERIAL NO.": ("SERIAL NO", "SL NO", "S.NO"),
    "ORDER NO.": ("ORDER NO", "PO NO", "PO NUMBER"),
    "ORDER DATE": ("PO DATE", "DATE"),
    "ISSUED TO": ("VENDOR NAME", "PARTY NAME", "NAME"),
    "BASIC ORDER VALUE": ("BASIC VALUE",),
    "TOTAL ORDER VALUE": ("TOTAL VALUE",),
}


def _freeze_aliases(aliases: Mapping[str, object]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in aliases.items()})  # type: ignore[arg-type]


@dataclass(frozen=True)
class ColumnSchema:
    """Canonical column layout used when normalizing uploaded rows.

    Fields without an alias entry only match their canonical header exactly.
    """
    canonical_fields: tuple[str, ...] = CANONICAL_FIELDS
    aliases: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: _freeze_aliases(DEFAULT_ALIASES)
    )
    date_fields: frozenset[str] = frozenset({"ORDER DATE"})
    required_any: tuple[str, ...] = ("ORDER NO.", "ORDER DATE")

    def __post_init__(self) -> None:
        # list / dict で渡されても不変型へ揃える
        object.__setattr__(self, "canonical_fields", tuple(self.canonical_fields))
        object.__setattr__(self, "aliases", _freeze_aliases(self.aliases))
        object.__setattr__(self, "date_fields", frozenset(self.date_fields))
        object.__setattr__(self, "required_any", tuple(self.required_any))

    def aliases_for(self, canonical: str) -> tuple[str, ...]:
        return self.aliases.get(canonical, ())


DEFAULT_COLUMN_SCHEMA = ColumnSchema()


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback configuration.

    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    table: str = "orders"


@dataclass(frozen=True)
class ReportConfig:
    company_name: str = "CRESCENT POWER LIMITED"
    title: str = "VENDOR FOLLOW-UP DETAILS"
    output_directory: str = "./reports"


@dataclass(frozen=True)
class TrackerConfig:
    """Root configuration object."""
    header_row_offset: int = 5  # 先頭5行は表紙/タイトル
    columns: ColumnSchema = field(default_factory=ColumnSchema)
    report: ReportConfig = field(default_factory=ReportConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    timezone: str = "UTC"
