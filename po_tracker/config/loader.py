from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from ..models.config_models import (
    CANONICAL_FIELDS,
    DEFAULT_ALIASES,
    ColumnSchema,
    DatabaseConfig,
    ReportConfig,
    TrackerConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/tracker.yml
- Validate against contracts/config_schema.json
- Apply defaults for every omitted section
- Cross-check the column section (aliases / date / filter fields must be canonical)
"""

if TYPE_CHECKING:
    import jsonschema
    from jsonschema.exceptions import ValidationError
else:
    try:
        import jsonschema
        from jsonschema.exceptions import ValidationError
    except ImportError:  # pragma: no cover
        jsonschema = None  # type: ignore[assignment]
        ValidationError = Exception  # type: ignore[misc,assignment]


# po_tracker/config/loader.py -> po_tracker/contracts
SCHEMA_PATH = Path(__file__).parent.parent / "contracts" / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/tracker.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: jsonschema missing, schema file missing/invalid, or the
            config data violates the schema.
    """
    if jsonschema is None:
        raise ConfigError("jsonschema library is required for config validation")

    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_column_schema(raw: dict[str, Any]) -> ColumnSchema:
    canonical = tuple(raw.get("canonical_fields", CANONICAL_FIELDS))
    aliases = raw.get("aliases", DEFAULT_ALIASES)
    date_fields = raw.get("date_fields", ["ORDER DATE"])
    required_any = raw.get("required_any", ["ORDER NO.", "ORDER DATE"])

    known = set(canonical)
    unknown_alias_keys = sorted(set(aliases) - known)
    if unknown_alias_keys:
        raise ConfigError(f"config invalid: aliases for unknown fields {unknown_alias_keys}")
    for label, names in (("date_fields", date_fields), ("required_any", required_any)):
        stray = sorted(set(names) - known)
        if stray:
            raise ConfigError(f"config invalid: {label} not in canonical_fields {stray}")

    return ColumnSchema(
        canonical_fields=canonical,
        aliases=aliases,
        date_fields=frozenset(date_fields),
        required_any=tuple(required_any),
    )


def load_config(path: Path) -> TrackerConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    report_raw = data.get("report") or {}
    report_defaults = ReportConfig()
    return TrackerConfig(
        header_row_offset=data.get("header_row_offset", 5),
        columns=_build_column_schema(data.get("columns") or {}),
        report=ReportConfig(
            company_name=report_raw.get("company_name", report_defaults.company_name),
            title=report_raw.get("title", report_defaults.title),
            output_directory=report_raw.get("output_directory", report_defaults.output_directory),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
            table=db_raw.get("table", "orders"),
        ),
        timezone=data.get("timezone", "UTC"),
    )
