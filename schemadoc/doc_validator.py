# schemadoc/doc_validator.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from schemadoc.doc_policy import DISALLOWED_CONTENT, DocPolicy
from schemadoc.errors import SchemaLoadError
from schemadoc.markdown_parser import ParsedDocument, heading_name, parse_markdown_schema
from schemadoc.schema_loader import Schema, Table, is_junction_table, schema_from_dict

# snake_case headings read as table names; "Overview" or "Getting started" do not
TABLE_HEADING_RE = re.compile(r"^[a-z_][a-z0-9_$.]*$")


@dataclass(frozen=True)
class LintDecision:
    ok: bool
    reasons: Tuple[str, ...]
    warnings: Tuple[str, ...]
    char_count: int


@dataclass(frozen=True)
class DocStats:
    char_count: int
    table_count: int
    column_count: int
    ref_count: int
    group_count: int


def _dedupe(items: List[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def _names_a_table(heading: str, schema: Optional[Schema]) -> bool:
    h = heading.strip()
    if h.startswith("`"):
        return True
    if schema is not None and schema.table(heading_name(h)) is not None:
        return True
    return bool(TABLE_HEADING_RE.match(h))


def _section_tables(parsed: ParsedDocument) -> Optional[Schema]:
    try:
        return schema_from_dict(parsed.to_dict())
    except SchemaLoadError:
        return None


def lint_document(
    text: str,
    policy: Optional[DocPolicy] = None,
    schema: Optional[Schema] = None,
) -> LintDecision:
    """
    Checks a rendered SQL_SCHEMA.md. When ``schema`` is given, table headings
    are also checked against the real table names.
    """
    policy = policy or DocPolicy()
    reasons: List[str] = []
    warnings: List[str] = []

    if text is None or not text.strip():
        return LintDecision(ok=False, reasons=("empty_document",), warnings=(), char_count=0)

    n = len(text)

    # 1) Size contract
    if n > policy.hard_max_chars:
        reasons.append(f"over_hard_limit:{n}")
    elif n > policy.target_max_chars:
        warnings.append(f"above_target:{n}")
    if n < policy.target_min_chars:
        warnings.append(f"below_target:{n}")

    # 2) Disallowed content
    for label, patterns in DISALLOWED_CONTENT:
        if any(p.search(text) for p in patterns):
            reasons.append(f"disallowed_content:{label}")

    parsed = parse_markdown_schema(text)
    if not parsed.sections:
        reasons.append("no_table_sections")

    # 3) Headings: every heading that names a table needs a column table
    section_names = {s.name for s in parsed.sections}
    group_names = {s.group for s in parsed.sections if s.group}
    deepest = max((s.level for s in parsed.sections), default=3)
    for level, heading in parsed.headings:
        if level >= deepest and heading not in group_names and _names_a_table(heading, schema):
            name = heading_name(heading)
            if name not in section_names:
                reasons.append(f"missing_column_table:{name}")

    # 4) Table names and descriptions
    actual: Optional[Set[str]] = set(schema.table_names) if schema is not None else None
    seen: Set[str] = set()
    for s in parsed.sections:
        if s.name in seen:
            warnings.append(f"duplicate_table:{s.name}")
        seen.add(s.name)
        if actual is not None and s.name not in actual:
            reasons.append(f"unknown_table:{s.name}")
        if not s.description:
            reasons.append(f"missing_description:{s.name}")

    # 5) Ref: targets must be documented in the same file
    columns_by_table: Dict[str, Set[str]] = {}
    for s in parsed.sections:
        columns_by_table.setdefault(s.name, set()).update(s.column_names)
    for s in parsed.sections:
        for _col, ref_table, ref_column in s.refs():
            if ref_column not in columns_by_table.get(ref_table, ()):
                reasons.append(f"dangling_ref:{ref_table}.{ref_column}")

    # 6) Junction tables carry a many-to-many note
    parsed_schema = _section_tables(parsed)
    for s in parsed.sections:
        table: Optional[Table] = schema.table(s.name) if schema is not None else None
        if table is None and parsed_schema is not None:
            table = parsed_schema.table(s.name)
        if table is None:
            continue
        if is_junction_table(table, policy.audit_columns) and "many-to-many" not in s.text.lower():
            reasons.append(f"junction_missing_m2m_note:{s.name}")

    reasons_t = _dedupe(reasons)
    return LintDecision(ok=not reasons_t, reasons=reasons_t, warnings=_dedupe(warnings), char_count=n)


def document_stats(text: str) -> DocStats:
    parsed = parse_markdown_schema(text or "")
    return DocStats(
        char_count=len(text or ""),
        table_count=len(parsed.sections),
        column_count=sum(len(s.columns) for s in parsed.sections),
        ref_count=sum(len(s.refs()) for s in parsed.sections),
        group_count=len({s.group for s in parsed.sections if s.group}),
    )
