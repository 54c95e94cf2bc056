from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..cache.store import MANIFEST_KEY
from ..models.config_models import (
    DEFAULT_TABLES,
    CacheConfig,
    DatabaseConfig,
    FieldRules,
    SyncConfig,
    TableConfig,
)

"""Config loader.

Responsibilities:
- Load YAML (config/sync.yml by default)
- Validate against config_schema.json (shipped next to this module)
- Apply defaults (four standard tables, built-in field rules, file cache)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/sync.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema missing/unreadable, or data fails validation
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_tables(raw: dict[str, Any]) -> tuple[TableConfig, ...]:
    tables = []
    for default in DEFAULT_TABLES:
        override = raw.get(default.role.value, {})
        tables.append(TableConfig(
            role=default.role,
            sheet_name=override.get("sheet_name", default.sheet_name),
            cache_key=override.get("cache_key", default.cache_key),
            key_field=override.get("key_field", default.key_field),
        ))
    keys = [t.cache_key for t in tables]
    if len(set(keys)) != len(keys):
        raise ConfigError(f"cache keys must be distinct: {keys}")
    if MANIFEST_KEY in keys:
        raise ConfigError(f"cache key '{MANIFEST_KEY}' is reserved")
    return tuple(tables)


def _build_field_rules(raw: dict[str, Any]) -> FieldRules:
    defaults = FieldRules()
    return FieldRules(
        numeric_fields=frozenset(raw.get("numeric_fields", defaults.numeric_fields)),
        part_fields=frozenset(raw.get("part_fields", defaults.part_fields)),
        status_fields=frozenset(raw.get("status_fields", defaults.status_fields)),
        status_default=raw.get("status_default", defaults.status_default),
        part_sentinel=raw.get("part_sentinel", defaults.part_sentinel),
    )


def parse_config(data: dict[str, Any]) -> SyncConfig:
    """Validate a raw mapping and build SyncConfig."""
    _validate_config_schema(data)

    cache_raw = data.get("cache", {})
    cache_defaults = CacheConfig()
    db_raw = data.get("database", {})
    return SyncConfig(
        base_url=data["base_url"],
        tables=_build_tables(data.get("tables", {})),
        header_mappings=dict(data.get("header_mappings", {})),
        field_rules=_build_field_rules(data.get("field_rules", {})),
        cache=CacheConfig(
            backend=cache_raw.get("backend", cache_defaults.backend),
            directory=cache_raw.get("directory", cache_defaults.directory),
            table=cache_raw.get("table", cache_defaults.table),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        timeout_seconds=float(data.get("timeout_seconds", 30.0)),
        error_log_directory=data.get("error_log_directory", "./logs"),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> SyncConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")
    return parse_config(data)

