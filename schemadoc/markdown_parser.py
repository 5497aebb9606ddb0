# schemadoc/markdown_parser.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")
TABLE_ROW_RE = re.compile(r"^\s*\|")
SEPARATOR_ROW_RE = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")
CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")
# A backticked name may hold spaces or hyphens: `Order Details`
NAME_PART = r"(?:`[^`]+`|[A-Za-z_][\w$]*)"
NAME_PART_RE = re.compile(NAME_PART)
IDENT_RE = re.compile(r"^(?:`(?P<quoted>[^`]+)`|(?P<bare>[A-Za-z_][\w$.]*))")

REF_IN_NOTE_RE = re.compile(
    r"(?:\bRef:|\bFK to\b|->|→)\s*"
    r"(?:`(?P<dotted>[A-Za-z_][\w$]*(?:\.[A-Za-z_][\w$]*)+)`"
    rf"|(?P<target>{NAME_PART}(?:\.{NAME_PART})+))\.?",
    re.IGNORECASE,
)
# Key markers accepted inside a notes column when the table has no constraints column
KEY_MARKERS = ("pk", "primary key", "unique", "not null")
MODEL_NOTE_RE = re.compile(r"\bModel:\s*`?(?P<model>[A-Za-z_][\w.]*)`?", re.IGNORECASE)
OTHER_COLUMNS_RE = re.compile(r"^\s*(?:Other|Audit) columns:\s*(?P<body>.*?)\.?\s*$", re.IGNORECASE)

# header cell (lowercased) -> canonical key
HEADER_ALIASES: Dict[str, str] = {
    "column": "name",
    "column name": "name",
    "name": "name",
    "field": "name",
    "type": "type",
    "data type": "type",
    "datatype": "type",
    "constraints": "constraints",
    "constraint": "constraints",
    "key": "constraints",
    "keys": "constraints",
    "notes": "note",
    "note": "note",
    "description": "note",
    "comment": "note",
    "nullable": "nullable",
    "null": "nullable",
    "default": "default",
}


@dataclass
class TableSection:
    name: str
    heading: str
    level: int
    line: int
    group: Optional[str] = None
    description: str = ""
    model: Optional[str] = None
    columns: List[Dict[str, Any]] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c["name"] for c in self.columns)

    def refs(self) -> List[Tuple[str, str, str]]:
        # (from_column, ref_table, ref_column)
        out = []
        for c in self.columns:
            target = c.get("foreign_key")
            if target:
                out.append((c["name"], target["table"], target["column"]))
        return out


@dataclass
class ParsedDocument:
    title: Optional[str]
    sections: List[TableSection]
    headings: List[Tuple[int, str]]

    def section(self, name: str) -> Optional[TableSection]:
        for s in self.sections:
            if s.name == name:
                return s
        return None

    def to_dict(self) -> Dict[str, Any]:
        tables = []
        seen = set()
        for s in self.sections:
            if s.name in seen:
                continue
            seen.add(s.name)
            tables.append(
                {
                    "name": s.name,
                    "description": s.description,
                    "group": s.group,
                    "model": s.model,
                    "columns": [dict(c) for c in s.columns],
                }
            )
        return {"tables": tables}


def split_cells(row: str) -> List[str]:
    s = row.strip()
    if s.startswith("|"):
        s = s[1:]
    if s.endswith("|") and not s.endswith("\\|"):
        s = s[:-1]
    return [c.strip().replace("\\|", "|") for c in CELL_SPLIT_RE.split(s)]


def _strip_ticks(s: str) -> str:
    return s.strip().strip("`").strip()


def heading_name(heading: str) -> str:
    m = IDENT_RE.match(heading.strip())
    if not m:
        return heading.strip()
    return m.group("quoted") or m.group("bare")


def _extract_ref(note: str) -> Tuple[Optional[Dict[str, str]], str]:
    m = REF_IN_NOTE_RE.search(note or "")
    if not m:
        return None, note
    rest = (note[: m.start()] + note[m.end():]).strip(" ;,.")
    if m.group("dotted"):
        parts = m.group("dotted").split(".")
    else:
        parts = [p.strip("`") for p in NAME_PART_RE.findall(m.group("target"))]
    return {"table": ".".join(parts[:-1]), "column": parts[-1]}, rest


def _split_key_markers(note: str) -> Tuple[str, str]:
    # "Primary key, PK" -> constraints "Primary key, PK", note ""
    markers, rest = [], []
    for token in re.split(r"[,;]", note or ""):
        token = token.strip()
        if not token:
            continue
        (markers if token.lower() in KEY_MARKERS else rest).append(token)
    return ", ".join(markers), ", ".join(rest)


def _row_to_column(keys: List[Optional[str]], cells: List[str]) -> Optional[Dict[str, Any]]:
    col: Dict[str, Any] = {}
    for key, cell in zip(keys, cells):
        if key is None or key in col:
            continue
        col[key] = cell
    name = _strip_ticks(col.get("name", ""))
    if not name:
        return None
    col["name"] = name
    col["type"] = _strip_ticks(col.get("type", ""))

    if "constraints" not in keys and col.get("note"):
        markers, rest = _split_key_markers(col["note"])
        if markers:
            col["constraints"], col["note"] = markers, rest

    target, note = _extract_ref(col.get("note", ""))
    if target is None:
        target, _ = _extract_ref(col.get("constraints", ""))
    col["note"] = note
    if target:
        col["foreign_key"] = target
    return {k: v for k, v in col.items() if v != ""}


def _parse_other_columns(body: str) -> List[Dict[str, Any]]:
    out = []
    # commas inside type arguments such as DECIMAL(10,2) do not split
    for part in re.split(r",(?![^()]*\))", body):
        m = re.match(r"\s*(`[^`]+`|\S+)\s*(.*)$", part)
        if not m:
            continue
        out.append({"name": _strip_ticks(m.group(1)), "type": _strip_ticks(m.group(2))})
    return out


def parse_markdown_schema(text: str) -> ParsedDocument:
    """
    Reads ``##``/``###`` headed sections that carry a pipe table of columns.
    Headings without a table act as group names for deeper headings below them.
    Fenced code blocks are skipped.
    """
    title: Optional[str] = None
    headings: List[Tuple[int, str]] = []
    candidates: List[TableSection] = []
    current: Optional[TableSection] = None
    header_keys: Optional[List[Optional[str]]] = None
    in_fence = False

    for lineno, line in enumerate(text.splitlines(), start=1):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue

        hm = HEADING_RE.match(line)
        if hm:
            level, heading = len(hm.group(1)), hm.group(2).strip()
            header_keys = None
            if level == 1:
                if title is None:
                    title = heading
                current = None
                continue
            headings.append((level, heading))
            current = TableSection(name=heading_name(heading), heading=heading, level=level, line=lineno)
            candidates.append(current)
            continue

        if current is None:
            continue
        current.lines.append(line)

        if TABLE_ROW_RE.match(line):
            if SEPARATOR_ROW_RE.match(line):
                continue
            cells = split_cells(line)
            if header_keys is None:
                header_keys = [HEADER_ALIASES.get(c.strip().lower()) for c in cells]
                if "name" not in header_keys:
                    # not a column table
                    header_keys = [None] * len(cells)
                continue
            col = _row_to_column(header_keys, cells)
            if col is not None:
                current.columns.append(col)
            continue

        header_keys = None
        stripped = line.strip()
        if not stripped:
            continue
        om = OTHER_COLUMNS_RE.match(stripped)
        if om:
            current.columns.extend(_parse_other_columns(om.group("body")))
            continue
        if not current.description and not current.columns:
            current.description = stripped
            mm = MODEL_NOTE_RE.search(stripped)
            if mm:
                current.model = mm.group("model")

    sections: List[TableSection] = []
    group_stack: List[Tuple[int, str]] = []
    for cand in candidates:
        while group_stack and group_stack[-1][0] >= cand.level:
            group_stack.pop()
        if cand.columns:
            cand.group = group_stack[-1][1] if group_stack else None
            sections.append(cand)
        else:
            group_stack.append((cand.level, cand.heading))

    return ParsedDocument(title=title, sections=sections, headings=headings)
