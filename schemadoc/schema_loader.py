# schemadoc/schema_loader.py
from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

from schemadoc.errors import SchemaLoadError
from schemadoc.markdown_parser import parse_markdown_schema

logger = logging.getLogger(__name__)


# ----------------------------
# Data model
# ----------------------------

@dataclass(frozen=True)
class ForeignKey:
    from_column: str
    ref_table: str
    ref_column: str

@dataclass(frozen=True)
class Column:
    name: str
    type: str
    not_null: bool = False
    default: Optional[str] = None
    is_primary_key: bool = False
    is_unique: bool = False
    note: str = ""

@dataclass(frozen=True)
class Table:
    name: str
    description: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...]
    foreign_keys: Tuple[ForeignKey, ...]
    group: Optional[str] = None
    model: Optional[str] = None
    junction: Optional[bool] = None  # None = auto-detect

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def column(self, name: str) -> Optional[Column]:
        for c in self.columns:
            if c.name == name:
                return c
        return None

    def fk_for(self, column_name: str) -> Optional[ForeignKey]:
        for fk in self.foreign_keys:
            if fk.from_column == column_name:
                return fk
        return None

@dataclass(frozen=True)
class Schema:
    tables: Tuple[Table, ...]
    schema_version: str  # stable hash of structure only, prose excluded

    @property
    def table_names(self) -> Tuple[str, ...]:
        return tuple(t.name for t in self.tables)

    def table(self, name: str) -> Optional[Table]:
        for t in self.tables:
            if t.name == name:
                return t
        return None


# ----------------------------
# Field parsing helpers
# ----------------------------

_TRUE_STRINGS = ("1", "true", "yes", "y", "x")

# customers.id | public.customers.id | customers(id) | `Order Details`.OrderID
_REF_RE = re.compile(
    r"^(?P<table>`[^`]+`|[A-Za-z_][\w$.]*?)\s*(?:\.|\(\s*)(?P<column>`[^`]+`|[A-Za-z_][\w$]*)\s*\)?$"
)
_FK_PREFIX_RE = re.compile(r"^(?:FK\b|REFERENCES\b|REF:)\s*(?:->|→|TO\b)?\s*", re.IGNORECASE)

# Split on , or ; outside quotes and parentheses: DEFAULT 'a, b' stays one token
_FLAG_SPLIT_RE = re.compile(r"""[,;](?![^()]*\))(?=(?:[^'"]*(?:'[^']*'|"[^"]*"))*[^'"]*$)""")


def _as_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in _TRUE_STRINGS


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def parse_ref(text: str) -> Optional[Tuple[str, str]]:
    """Parse a FK target like ``customers.id`` or ``customers(id)``."""
    s = _FK_PREFIX_RE.sub("", (text or "").strip()).strip()
    if not s:
        return None
    if s.startswith("`") and s.endswith("`") and s.count("`") == 2:
        s = s[1:-1]  # `customers.id`
    m = _REF_RE.match(s)
    if not m:
        return None
    return m.group("table").strip("`"), m.group("column").strip("`")


def parse_constraint_flags(text: str) -> Dict[str, Any]:
    """
    Reads a constraints cell such as ``PK, NOT NULL`` or
    ``FK -> customers.id, DEFAULT 'new'``.
    """
    flags: Dict[str, Any] = {
        "primary_key": False,
        "not_null": False,
        "unique": False,
        "default": None,
        "foreign_key": False,
        "ref": None,
    }
    for raw in _FLAG_SPLIT_RE.split(text or ""):
        token = raw.strip()
        upper = token.upper()
        if not token:
            continue
        if upper in ("PK", "PRIMARY KEY") or upper.startswith("PRIMARY KEY"):
            flags["primary_key"] = True
        elif upper in ("NOT NULL", "REQUIRED", "NN"):
            flags["not_null"] = True
        elif upper == "UNIQUE":
            flags["unique"] = True
        elif upper.startswith("DEFAULT"):
            flags["default"] = token[len("DEFAULT"):].strip() or None
        elif upper == "FK" or upper.startswith(("FK ", "FK-", "FK:", "REFERENCES")):
            flags["foreign_key"] = True
            ref = parse_ref(token)
            if ref is not None:
                flags["ref"] = ref
    return flags


# ----------------------------
# Builders
# ----------------------------

def _column_from_dict(obj: Dict[str, Any], table_name: str) -> Tuple[Column, Optional[ForeignKey]]:
    name = _clean(obj.get("name") or obj.get("column"))
    if not name:
        raise SchemaLoadError(f"Column without a name in table {table_name!r}")

    flags = parse_constraint_flags(_clean(obj.get("constraints")))

    is_pk = _as_bool(obj.get("primary_key", obj.get("pk"))) or flags["primary_key"]
    if "not_null" in obj:
        not_null = _as_bool(obj["not_null"])
    elif "nullable" in obj and _clean(obj["nullable"]):
        not_null = not _as_bool(obj["nullable"])
    else:
        not_null = flags["not_null"]

    default = obj.get("default")
    default = _clean(default) if default not in (None, "") else flags["default"]

    ref_text = obj.get("foreign_key") or obj.get("references") or obj.get("ref")
    fk: Optional[ForeignKey] = None
    if isinstance(ref_text, dict):
        fk = ForeignKey(name, _clean(ref_text.get("table")), _clean(ref_text.get("column")))
    elif ref_text:
        ref = parse_ref(str(ref_text))
        if ref is None:
            raise SchemaLoadError(f"Unreadable foreign key {ref_text!r} on {table_name}.{name}")
        fk = ForeignKey(name, ref[0], ref[1])
    elif flags["ref"] is not None:
        fk = ForeignKey(name, flags["ref"][0], flags["ref"][1])

    note = _clean(obj.get("note") or obj.get("notes") or obj.get("description"))

    col = Column(
        name=name,
        type=_clean(obj.get("type") or obj.get("data_type")).upper(),
        not_null=not_null or is_pk,  # PK implies NOT NULL
        default=default,
        is_primary_key=is_pk,
        is_unique=(_as_bool(obj.get("unique")) or flags["unique"]) and not is_pk,
        note=note,
    )
    return col, fk


def _table_from_dict(obj: Dict[str, Any]) -> Table:
    name = _clean(obj.get("name") or obj.get("table"))
    if not name:
        raise SchemaLoadError("Table without a name")

    cols: List[Column] = []
    fks: List[ForeignKey] = []
    for cobj in obj.get("columns") or []:
        if not isinstance(cobj, dict):
            raise SchemaLoadError(f"Column entries must be objects in table {name!r}")
        col, fk = _column_from_dict(cobj, name)
        if any(c.name == col.name for c in cols):
            raise SchemaLoadError(f"Duplicate column {name}.{col.name}")
        cols.append(col)
        if fk is not None:
            fks.append(fk)

    for fobj in obj.get("foreign_keys") or []:
        fks.append(
            ForeignKey(
                from_column=_clean(fobj.get("from_column") or fobj.get("column")),
                ref_table=_clean(fobj.get("ref_table") or fobj.get("table")),
                ref_column=_clean(fobj.get("ref_column") or fobj.get("to")),
            )
        )

    col_names = {c.name for c in cols}
    for fk in fks:
        if fk.from_column not in col_names:
            raise SchemaLoadError(f"Foreign key on missing column {name}.{fk.from_column}")

    declared_pk = [_clean(p) for p in obj.get("primary_key") or []] if isinstance(obj.get("primary_key"), list) else []
    if declared_pk:
        missing = [p for p in declared_pk if p not in col_names]
        if missing:
            raise SchemaLoadError(f"Primary key on missing column(s) {name}.{','.join(missing)}")
        cols = [
            replace(c, is_primary_key=True, not_null=True, is_unique=False) if c.name in declared_pk else c
            for c in cols
        ]
    pk = declared_pk or [c.name for c in cols if c.is_primary_key]

    junction = obj.get("junction")
    return Table(
        name=name,
        description=_clean(obj.get("description") or obj.get("note")),
        columns=tuple(cols),
        primary_key=tuple(pk),
        foreign_keys=tuple(sorted(set(fks), key=lambda fk: (fk.from_column, fk.ref_table, fk.ref_column))),
        group=_clean(obj.get("group")) or None,
        model=_clean(obj.get("model")) or None,
        junction=None if junction is None else _as_bool(junction),
    )


def _schema_structure_dict(tables: Iterable[Table]) -> Dict[str, Any]:
    # Only structural parts; prose edits must not change the version.
    return {
        "tables": [
            {
                "name": t.name,
                "columns": [
                    {
                        "name": c.name,
                        "type": c.type,
                        "not_null": c.not_null,
                        "default": c.default,
                        "is_primary_key": c.is_primary_key,
                        "is_unique": c.is_unique,
                    }
                    for c in t.columns
                ],
                "primary_key": list(t.primary_key),
                "foreign_keys": [
                    {
                        "from_column": fk.from_column,
                        "ref_table": fk.ref_table,
                        "ref_column": fk.ref_column,
                    }
                    for fk in t.foreign_keys
                ],
            }
            for t in tables
        ],
    }

def _stable_hash(obj: Any) -> str:
    payload = json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def build_schema(tables: Iterable[Table]) -> Schema:
    tables = sorted(tables, key=lambda t: t.name)
    seen = set()
    for t in tables:
        if t.name in seen:
            raise SchemaLoadError(f"Duplicate table {t.name!r}")
        seen.add(t.name)
    return Schema(tables=tuple(tables), schema_version=_stable_hash(_schema_structure_dict(tables)))


def schema_from_dict(obj: Any) -> Schema:
    """
    Accepts ``{"tables": [...]}``, ``{"tables": {name: {...}}}``, a bare list
    of table objects, or a bare mapping of table name to table object.
    """
    raw = obj.get("tables", obj) if isinstance(obj, dict) else obj
    if isinstance(raw, dict):
        raw = [dict(t, name=t.get("name") or name) for name, t in raw.items()]
    if not isinstance(raw, list):
        raise SchemaLoadError("Schema description must hold a list or mapping of tables")
    tables = []
    for tobj in raw:
        if not isinstance(tobj, dict):
            raise SchemaLoadError("Table entries must be objects")
        tables.append(_table_from_dict(tobj))
    return build_schema(tables)


# ----------------------------
# Junction detection
# ----------------------------

DEFAULT_AUDIT_COLUMNS = ("created_at", "updated_at", "deleted_at", "created_by", "updated_by")

def junction_targets(table: Table) -> Tuple[str, ...]:
    out: List[str] = []
    for fk in table.foreign_keys:
        if fk.ref_table not in out:
            out.append(fk.ref_table)
    return tuple(out)

def is_junction_table(table: Table, audit_columns: Iterable[str] = DEFAULT_AUDIT_COLUMNS) -> bool:
    if table.junction is not None:
        return table.junction
    if len(junction_targets(table)) < 2:
        return False
    fk_cols = {fk.from_column for fk in table.foreign_keys}
    audit = set(audit_columns)
    return all(
        c.name in fk_cols or c.is_primary_key or c.name in audit
        for c in table.columns
    )


# ----------------------------
# Loader
# ----------------------------

def _load_json(path: Path) -> Schema:
    try:
        obj = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SchemaLoadError(f"Invalid JSON in {path}: {e}")
    return schema_from_dict(obj)


def _load_csv(path: Path) -> Schema:
    # Data dictionary: one row per column, grouped by the "table" column.
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise SchemaLoadError(f"Unreadable data dictionary {path}: {e}")

    df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]
    for required in ("table", "column"):
        if required not in df.columns:
            raise SchemaLoadError(f"Data dictionary {path} lacks a {required!r} column")

    tables = []
    for tname, rows in df.groupby("table", sort=False):
        records = rows.to_dict(orient="records")
        first = records[0]
        tables.append(
            {
                "name": tname,
                "description": next((r.get("table_description") for r in records if r.get("table_description")), ""),
                "group": first.get("group") or None,
                "model": first.get("model") or None,
                "columns": [
                    {k: v for k, v in r.items() if k not in ("table", "table_description", "group", "model")}
                    for r in records
                ],
            }
        )
    return schema_from_dict({"tables": tables})


def _load_markdown(path: Path) -> Schema:
    parsed = parse_markdown_schema(path.read_text(encoding="utf-8"))
    if not parsed.sections:
        raise SchemaLoadError(f"No table sections found in {path}")
    return schema_from_dict(parsed.to_dict())


_LOADERS = {
    ".json": _load_json,
    ".csv": _load_csv,
    ".md": _load_markdown,
    ".markdown": _load_markdown,
}

def load_schema(source_path: str) -> Schema:
    path = Path(source_path)
    loader = _LOADERS.get(path.suffix.lower())
    if loader is None:
        raise SchemaLoadError(f"Unsupported schema description format: {path.suffix or source_path}")
    if not path.exists():
        raise SchemaLoadError(f"Schema description not found: {source_path}")

    schema = loader(path)
    logger.debug("Loaded %d tables from %s (version %s)", len(schema.tables), path, schema.schema_version[:12])
    return schema
