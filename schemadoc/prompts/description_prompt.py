# schemadoc/prompts/description_prompt.py
from __future__ import annotations

import re

from schemadoc.schema_loader import Table


DESCRIPTION_PROMPT_TEMPLATE = """You document database tables for a text-to-SQL assistant.

Write ONE plain English sentence (max 25 words) stating what a row of the table represents.
Do not list columns. No markdown, no code, no quotes.

Table: {table_name}
Columns:
{column_lines}

Sentence:"""

CODE_FENCE_RE = re.compile(r"```(?:\w+)?\s*([\s\S]*?)\s*```")
LABEL_RE = re.compile(r"^\s*(?:sentence|description|answer)\s*:\s*", re.IGNORECASE)


def build_description_prompt(table: Table, *, max_columns: int = 30) -> str:
    lines = []
    for c in table.columns[:max_columns]:
        fk = table.fk_for(c.name)
        ref = f" -> {fk.ref_table}.{fk.ref_column}" if fk else ""
        lines.append(f"- {c.name} {c.type or 'UNKNOWN'}{ref}")
    if len(table.columns) > max_columns:
        lines.append(f"- ... {len(table.columns) - max_columns} more")
    return DESCRIPTION_PROMPT_TEMPLATE.format(table_name=table.name, column_lines="\n".join(lines))


def postprocess_description(model_text: str) -> str:
    """
    Reduce raw model output to a single clean sentence:
    - strip code fences and answer labels
    - keep the first non-empty line and its first sentence
    - ensure a trailing period
    """
    s = model_text or ""
    m = CODE_FENCE_RE.search(s)
    if m:
        s = m.group(1)
    line = next((ln.strip() for ln in s.splitlines() if ln.strip()), "")
    line = LABEL_RE.sub("", line).strip().strip("\"'`").strip()
    if not line:
        return ""
    line = re.split(r"(?<=[.!?])\s+", line, maxsplit=1)[0]
    if line[-1] not in ".!?":
        line += "."
    return line[0].upper() + line[1:]
