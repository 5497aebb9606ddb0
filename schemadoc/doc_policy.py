# schemadoc/doc_policy.py
from __future__ import annotations

import json
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from schemadoc.errors import ConfigError
from schemadoc.schema_loader import DEFAULT_AUDIT_COLUMNS


@dataclass(frozen=True)
class DocPolicy:
    # Size contract
    target_min_chars: int = 10_000
    target_max_chars: int = 15_000
    hard_max_chars: int = 20_000

    # Header
    title: str = "SQL Schema Reference"
    intro: Optional[str] = None
    include_schema_version: bool = True

    output_path: str = "docs/SQL_SCHEMA.md"

    # Inclusion / exclusion
    exclude_tables: Tuple[str, ...] = ()
    exclude_table_prefixes: Tuple[str, ...] = ("sqlite_", "alembic_", "django_", "schema_migrations")
    audit_columns: Tuple[str, ...] = DEFAULT_AUDIT_COLUMNS

    # Ordered (group name, tables) pairs
    groups: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    # Tables wider than this get an "Other columns" line at the last level
    condensed_column_limit: int = 12

    def is_excluded(self, table_name: str) -> bool:
        if table_name in self.exclude_tables:
            return True
        return any(table_name.startswith(p) for p in self.exclude_table_prefixes)


DEFAULT_INTRO = (
    "Condensed reference of the database schema for SQL generation. "
    "Headings are exact table names and column names are exact identifiers."
)

CONSTRAINT_KEY = (
    "Constraints: PK primary key, FK foreign key, NOT NULL, UNIQUE, DEFAULT value. "
    "Ref: marks the table.column a foreign key points to."
)

# Content that must never reach the document.
CODE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"```"),
    re.compile(r"~~~"),
    re.compile(r"^\s*(?:SELECT|INSERT|UPDATE|DELETE|CREATE|ALTER)\s.+;\s*$", re.IGNORECASE | re.MULTILINE),
)

ORM_SETUP_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\bdeclarative_base\b"),
    re.compile(r"\bsessionmaker\b"),
    re.compile(r"\bcreate_engine\s*\("),
    re.compile(r"\bBase\.metadata\b"),
    re.compile(r"\bmodels\.Model\b"),
    re.compile(r"\bdb\.Column\s*\("),
    re.compile(r"\bpip install\b"),
    re.compile(r"\balembic (?:upgrade|revision)\b"),
)

ENV_VAR_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\$\{?[A-Z][A-Z0-9_]{2,}\}?"),
    re.compile(r"\bos\.(?:environ|getenv)\b"),
    re.compile(r"\bprocess\.env\b"),
    re.compile(r"\b[A-Z][A-Z0-9]*_(?:URL|URI|DSN|PASSWORD|SECRET|TOKEN|API_KEY)\b"),
    re.compile(r"(?:^|\s)\.env\b"),
)

DISALLOWED_CONTENT: Tuple[Tuple[str, Tuple[re.Pattern, ...]], ...] = (
    ("code", CODE_PATTERNS),
    ("orm_setup", ORM_SETUP_PATTERNS),
    ("env_var", ENV_VAR_PATTERNS),
)


_INT_KEYS = ("target_min_chars", "target_max_chars", "hard_max_chars", "condensed_column_limit")
_STR_KEYS = ("title", "output_path")
_NAME_LIST_KEYS = ("exclude_tables", "exclude_table_prefixes", "audit_columns")


def _names(key: str, value: Any) -> Tuple[str, ...]:
    # a bare string would silently become a tuple of characters
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings, got {value!r}")
    return tuple(value)


def _groups(value: Any) -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    """Accepts {name: [tables]}, [{"name": ..., "tables": [...]}] or [[name, [tables]]]."""
    if isinstance(value, dict):
        items = list(value.items())
    elif isinstance(value, (list, tuple)):
        items = []
        for g in value:
            if isinstance(g, dict) and "name" in g and "tables" in g:
                items.append((g["name"], g["tables"]))
            elif isinstance(g, (list, tuple)) and len(g) == 2:
                items.append((g[0], g[1]))
            else:
                raise ConfigError(f"groups entries must be {{name, tables}} objects or [name, tables] pairs, got {g!r}")
    else:
        raise ConfigError(f"groups must be a mapping or a list, got {value!r}")

    out = []
    for name, tables in items:
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"Group names must be non-empty strings, got {name!r}")
        out.append((name, _names(f"groups[{name}]", tables)))
    return tuple(out)


def policy_from_dict(obj: Dict[str, Any]) -> DocPolicy:
    known = {f.name for f in fields(DocPolicy)}
    unknown = sorted(set(obj) - known)
    if unknown:
        raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}")

    kwargs: Dict[str, Any] = {}
    for key, value in obj.items():
        if key == "groups":
            kwargs[key] = _groups(value)
        elif key in _NAME_LIST_KEYS:
            kwargs[key] = _names(key, value)
        elif key in _INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"{key} must be a non-negative integer, got {value!r}")
            kwargs[key] = value
        elif key in _STR_KEYS:
            if not isinstance(value, str):
                raise ConfigError(f"{key} must be a string, got {value!r}")
            kwargs[key] = value
        elif key == "intro":
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"intro must be a string or null, got {value!r}")
            kwargs[key] = value
        elif key == "include_schema_version":
            if not isinstance(value, bool):
                raise ConfigError(f"include_schema_version must be true or false, got {value!r}")
            kwargs[key] = value

    policy = DocPolicy(**kwargs)
    if not (0 <= policy.target_min_chars <= policy.target_max_chars <= policy.hard_max_chars):
        raise ConfigError(
            "Expected target_min_chars <= target_max_chars <= hard_max_chars, got "
            f"{policy.target_min_chars}/{policy.target_max_chars}/{policy.hard_max_chars}"
        )
    return policy


def load_doc_config(path: str) -> DocPolicy:
    try:
        obj = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")
    if not isinstance(obj, dict):
        raise ConfigError(f"Config {path} must be a JSON object")
    return policy_from_dict(obj)
