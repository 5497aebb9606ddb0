# schemadoc/pipeline.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from schemadoc.doc_policy import DocPolicy
from schemadoc.doc_renderer import LEVEL_NAMES, LEVELS, included_tables, render_document
from schemadoc.doc_validator import LintDecision, lint_document
from schemadoc.errors import BudgetExceeded, LintFailed
from schemadoc.schema_loader import Schema, build_schema, load_schema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildResult:
    text: str
    level: int
    char_count: int
    lint: LintDecision
    meta: Dict[str, Any]


def build_document(
    schema: Schema,
    policy: Optional[DocPolicy] = None,
    *,
    strict: bool = False,
) -> BuildResult:
    """
    Renders at increasing condensation until the text fits target_max_chars.
    Falls back to the most condensed rendering if it still fits
    hard_max_chars, otherwise raises BudgetExceeded.
    """
    policy = policy or DocPolicy()

    attempts: List[Dict[str, Any]] = []
    level, text = LEVELS[0], ""
    for level in LEVELS:
        text = render_document(schema, policy, level)
        attempts.append({"level": level, "name": LEVEL_NAMES[level], "chars": len(text)})
        logger.debug("Rendered level %s (%s): %d chars", level, LEVEL_NAMES[level], len(text))
        if len(text) <= policy.target_max_chars:
            break

    if len(text) > policy.hard_max_chars:
        raise BudgetExceeded(len(text), policy.hard_max_chars)

    lint = lint_document(text, policy, schema)
    if strict and not lint.ok:
        raise LintFailed(lint.reasons)

    return BuildResult(
        text=text,
        level=level,
        char_count=len(text),
        lint=lint,
        meta={
            "schema_version": schema.schema_version,
            "level_name": LEVEL_NAMES[level],
            "tables": len(included_tables(schema, policy)),
            "excluded_tables": [t.name for t in schema.tables if policy.is_excluded(t.name)],
            "attempts": attempts,
        },
    )


def fill_missing_descriptions(schema: Schema, describer: Any) -> Schema:
    """
    Describe only the tables that have no purpose sentence yet.
    ``describer`` is anything with ``describe(table)`` returning an object
    with ``sentence`` and ``latency_ms`` (see schemadoc.describer).
    """
    tables = []
    for t in schema.tables:
        if t.description:
            tables.append(t)
            continue
        res = describer.describe(t)
        logger.info("Described %s in %dms: %s", t.name, res.latency_ms, res.sentence)
        tables.append(replace(t, description=res.sentence) if res.sentence else t)
    return build_schema(tables)


def _json_safe(obj):
    # Converts nested dataclasses / tuples into JSON-safe structures.
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (tuple, list)):
        return [_json_safe(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}
    if hasattr(obj, "__dict__"):
        return _json_safe(obj.__dict__.copy())
    return str(obj)


def write_document(
    source_path: str,
    policy: Optional[DocPolicy] = None,
    *,
    out_path: Optional[str] = None,
    log_path: Optional[str] = None,
    describer: Any = None,
    strict: bool = False,
) -> BuildResult:
    policy = policy or DocPolicy()

    schema = load_schema(source_path)
    if describer is not None:
        schema = fill_missing_descriptions(schema, describer)

    result = build_document(schema, policy, strict=strict)

    out = Path(out_path or policy.output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(result.text, encoding="utf-8")
    logger.info("Wrote %s (%d chars, level %s)", out, result.char_count, result.meta["level_name"])

    if log_path:
        log = Path(log_path)
        log.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "source": source_path,
            "output": str(out),
            "char_count": result.char_count,
            "level": result.level,
            "lint": result.lint,
            **result.meta,
        }
        log.write_text(json.dumps(_json_safe(payload), indent=2), encoding="utf-8")

    return result
