# schemadoc/doc_renderer.py
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from schemadoc.doc_policy import CONSTRAINT_KEY, DEFAULT_INTRO, DocPolicy
from schemadoc.schema_loader import Column, Schema, Table, is_junction_table, junction_targets


# Condensation levels, least to most condensed.
LEVEL_FULL = 0
LEVEL_TRIM_NOTES = 1
LEVEL_FOLD_AUDIT = 2
LEVEL_FOLD_WIDE = 3
LEVELS: Tuple[int, ...] = (LEVEL_FULL, LEVEL_TRIM_NOTES, LEVEL_FOLD_AUDIT, LEVEL_FOLD_WIDE)

LEVEL_NAMES: Dict[int, str] = {
    LEVEL_FULL: "full",
    LEVEL_TRIM_NOTES: "trim_notes",
    LEVEL_FOLD_AUDIT: "fold_audit",
    LEVEL_FOLD_WIDE: "fold_wide",
}

COLUMN_HEADER = ("Column", "Type", "Constraints", "Notes")
OTHER_GROUP = "Other tables"

CODE_FENCE_RE = re.compile(r"(```|~~~)[\s\S]*?(\1|$)")
SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9`\"'(])")
BARE_IDENT_RE = re.compile(r"^[A-Za-z_][\w$]*$")


# ----------------------------
# Text helpers
# ----------------------------

def quote_ident(name: str) -> str:
    """`Order Details` and `order-items` need backticks to read back as one name."""
    return name if BARE_IDENT_RE.match(name) else f"`{name}`"


def escape_cell(x: Any) -> str:
    s = "" if x is None else str(x)
    s = " ".join(s.split())
    return s.replace("|", "\\|")


def clean_note(text: str) -> str:
    # Code samples never belong in the document.
    return " ".join(CODE_FENCE_RE.sub(" ", text or "").split())


def first_sentence(text: str) -> str:
    s = clean_note(text)
    if not s:
        return ""
    s = SENTENCE_END_RE.split(s, maxsplit=1)[0].strip()
    if s[-1] not in ".!?":
        s += "."
    return s


def fallback_description(table: Table) -> str:
    words = table.name.replace("_", " ").strip()
    return f"Stores {words} records."


def _join_names(names: Sequence[str]) -> str:
    quoted = [f"`{n}`" for n in names]
    if len(quoted) <= 2:
        return " and ".join(quoted)
    return ", ".join(quoted[:-1]) + " and " + quoted[-1]


def junction_note(table: Table) -> str:
    return f"Junction table: many-to-many between {_join_names(junction_targets(table))}."


# ----------------------------
# Per-table rendering
# ----------------------------

def constraint_labels(col: Column, is_fk: bool) -> List[str]:
    labels: List[str] = []
    if col.is_primary_key:
        labels.append("PK")
    if is_fk:
        labels.append("FK")
    if col.not_null and not col.is_primary_key:
        labels.append("NOT NULL")
    if col.is_unique and not col.is_primary_key:
        labels.append("UNIQUE")
    if col.default is not None:
        labels.append(f"DEFAULT {col.default}")
    return labels


def render_markdown_table(columns: Sequence[str], rows: List[Tuple[Any, ...]]) -> str:
    header = "| " + " | ".join(columns) + " |"
    sep = "| " + " | ".join(["---"] * len(columns)) + " |"
    body = ["| " + " | ".join(escape_cell(v) for v in r) + " |" for r in rows]
    return "\n".join([header, sep] + body)


def _column_row(table: Table, col: Column, policy: DocPolicy, level: int) -> Tuple[str, str, str, str]:
    fk = table.fk_for(col.name)
    notes: List[str] = []
    if fk is not None and policy.is_excluded(fk.ref_table):
        # no Ref: here, the target has no section in this document
        notes.append(f"FK to excluded table {quote_ident(fk.ref_table)}")
    elif fk is not None:
        notes.append(f"Ref: {quote_ident(fk.ref_table)}.{quote_ident(fk.ref_column)}")
    if level < LEVEL_TRIM_NOTES and col.note:
        notes.append(clean_note(col.note))
    return (
        col.name,
        col.type or "UNKNOWN",
        ", ".join(constraint_labels(col, fk is not None)),
        "; ".join(n for n in notes if n),
    )


def _is_key(table: Table, col: Column) -> bool:
    return col.is_primary_key or col.is_unique or table.fk_for(col.name) is not None


def _inline_columns(label: str, cols: List[Column]) -> str:
    parts = [f"{quote_ident(c.name)} {c.type}" if c.type else quote_ident(c.name) for c in cols]
    return f"{label}: " + ", ".join(parts) + "."


def split_columns(table: Table, policy: DocPolicy, level: int) -> Tuple[List[Column], List[Column], List[Column]]:
    """Returns (table rows, folded audit columns, folded other columns)."""
    rows = list(table.columns)
    audit: List[Column] = []
    other: List[Column] = []

    if level >= LEVEL_FOLD_AUDIT:
        audit_names = set(policy.audit_columns)
        audit = [c for c in rows if c.name in audit_names and not _is_key(table, c)]
        rows = [c for c in rows if c not in audit]

    if level >= LEVEL_FOLD_WIDE and len(table.columns) > policy.condensed_column_limit:
        other = [c for c in rows if not (_is_key(table, c) or c.not_null)]
        rows = [c for c in rows if c not in other]
        # keep at least the first column visible as a table row
        if not rows and other:
            rows, other = other[:1], other[1:]

    return rows, audit, other


def render_table_section(table: Table, policy: DocPolicy, level: int = LEVEL_FULL) -> str:
    purpose = first_sentence(table.description) or fallback_description(table)
    desc = [purpose]
    if table.model and table.model != table.name:
        desc.append(f"Model: `{table.model}`.")
    if is_junction_table(table, policy.audit_columns):
        desc.append(junction_note(table))

    rows, audit, other = split_columns(table, policy, level)

    lines = [f"### {quote_ident(table.name)}", " ".join(desc), ""]
    lines.append(render_markdown_table(COLUMN_HEADER, [_column_row(table, c, policy, level) for c in rows]))
    if audit:
        lines.append("")
        lines.append(_inline_columns("Audit columns", audit))
    if other:
        lines.append("")
        lines.append(_inline_columns("Other columns", other))
    return "\n".join(lines)


# ----------------------------
# Document rendering
# ----------------------------

def included_tables(schema: Schema, policy: DocPolicy) -> List[Table]:
    return [t for t in schema.tables if not policy.is_excluded(t.name)]


def group_tables(tables: List[Table], policy: DocPolicy) -> List[Tuple[Optional[str], List[Table]]]:
    """
    Ordered (group, tables). Configured groups first, in configured order,
    then groups named by the tables themselves, then everything else.
    A single (None, tables) entry means no grouping is in use.
    """
    by_name = {t.name: t for t in tables}
    placed = set()
    out: List[Tuple[Optional[str], List[Table]]] = []

    for gname, tnames in policy.groups:
        members = [by_name[n] for n in tnames if n in by_name and n not in placed]
        placed.update(t.name for t in members)
        if members:
            out.append((gname, members))

    source_groups: Dict[str, List[Table]] = {}
    for t in tables:
        if t.name not in placed and t.group:
            source_groups.setdefault(t.group, []).append(t)
    for gname in sorted(source_groups):
        members = source_groups[gname]
        placed.update(t.name for t in members)
        existing = next((g for g in out if g[0] == gname), None)
        if existing is not None:
            existing[1].extend(members)
        else:
            out.append((gname, members))

    rest = [t for t in tables if t.name not in placed]
    if not out:
        return [(None, rest)]
    if rest:
        out.append((OTHER_GROUP, rest))
    return out


def render_header(schema: Schema, policy: DocPolicy) -> str:
    lines = [f"# {policy.title}", "", policy.intro or DEFAULT_INTRO, CONSTRAINT_KEY]
    if policy.include_schema_version:
        lines.append(f"Schema version: `{schema.schema_version[:12]}`.")
    return "\n".join(lines)


def render_document(schema: Schema, policy: DocPolicy, level: int = LEVEL_FULL) -> str:
    if level not in LEVELS:
        raise ValueError(f"Unknown condensation level: {level}")

    blocks = [render_header(schema, policy)]
    for gname, members in group_tables(included_tables(schema, policy), policy):
        if gname is not None:
            blocks.append(f"## {gname}")
        for t in members:
            blocks.append(render_table_section(t, policy, level))

    return "\n\n".join(blocks).rstrip() + "\n"
