# schemadoc/cli.py
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from schemadoc.doc_policy import DocPolicy, load_doc_config
from schemadoc.doc_validator import document_stats, lint_document
from schemadoc.errors import SchemaDocError
from schemadoc.pipeline import write_document
from schemadoc.schema_loader import load_schema


def _policy(config_path: Optional[str]) -> DocPolicy:
    return load_doc_config(config_path) if config_path else DocPolicy()


def _missing(path: Optional[str], what: str) -> bool:
    if path and not Path(path).exists():
        print(f"ERROR: {what} not found: {path}", file=sys.stderr)
        return True
    return False


def cmd_build(args: argparse.Namespace) -> int:
    if not args.source:
        print("ERROR: Provide --source or set SCHEMA_SOURCE.", file=sys.stderr)
        return 2
    if _missing(args.source, "Schema description") or _missing(args.config, "Config file"):
        return 2

    policy = _policy(args.config)

    describer = None
    if args.describe:
        # torch/transformers are only needed on this path
        from schemadoc.describer import DescriptionConfig, TableDescriber

        describer = TableDescriber(DescriptionConfig(model_name=args.model) if args.model else None)

    result = write_document(
        args.source,
        policy,
        out_path=args.out,
        log_path=args.log,
        describer=describer,
        strict=args.strict,
    )

    print("=== BUILD ===")
    print(f"SOURCE: {args.source}")
    print(f"OUTPUT: {args.out or policy.output_path}")
    print(f"SCHEMA_VERSION: {result.meta['schema_version']}")
    print(f"LEVEL: {result.level} ({result.meta['level_name']})")
    print(f"CHARS: {result.char_count} (target {policy.target_min_chars}-{policy.target_max_chars}, max {policy.hard_max_chars})")
    for w in result.lint.warnings:
        print(f"WARNING: {w}")
    for r in result.lint.reasons:
        print(f"LINT: {r}", file=sys.stderr)

    if args.print:
        print("\n=== SQL_SCHEMA.md ===")
        print(result.text)

    return 0 if result.lint.ok else 1


def cmd_lint(args: argparse.Namespace) -> int:
    doc_path = args.doc
    if not Path(doc_path).exists():
        print(f"ERROR: Document not found: {doc_path}", file=sys.stderr)
        return 2
    if _missing(args.source, "Schema description") or _missing(args.config, "Config file"):
        return 2

    policy = _policy(args.config)
    schema = load_schema(args.source) if args.source else None
    decision = lint_document(Path(doc_path).read_text(encoding="utf-8"), policy, schema)

    print(f"DOC: {doc_path}")
    print(f"CHARS: {decision.char_count}")
    for w in decision.warnings:
        print(f"WARNING: {w}")
    for r in decision.reasons:
        print(f"ERROR: {r}")
    print("OK" if decision.ok else "FAILED")
    return 0 if decision.ok else 1


def cmd_stats(args: argparse.Namespace) -> int:
    if not Path(args.doc).exists():
        print(f"ERROR: Document not found: {args.doc}", file=sys.stderr)
        return 2
    st = document_stats(Path(args.doc).read_text(encoding="utf-8"))
    print(f"chars={st.char_count} tables={st.table_count} columns={st.column_count} refs={st.ref_count} groups={st.group_count}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build and lint a condensed SQL_SCHEMA.md for text-to-SQL prompts")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    b = sub.add_parser("build", help="Render the condensed schema document.")
    b.add_argument(
        "--source",
        default=os.environ.get("SCHEMA_SOURCE"),
        help="Verbose schema description (.json, .csv, .md). Defaults to env SCHEMA_SOURCE.",
    )
    b.add_argument("--config", default=os.environ.get("SCHEMA_DOC_CONFIG"), help="JSON config file.")
    b.add_argument("--out", default=os.environ.get("SCHEMA_DOC_PATH"), help="Output path (default docs/SQL_SCHEMA.md).")
    b.add_argument("--log", help="Write a JSON build log here.")
    b.add_argument("--describe", action="store_true", help="Draft missing table descriptions with a local LLM.")
    b.add_argument("--model", help="Model name for --describe.")
    b.add_argument("--strict", action="store_true", help="Fail before writing when lint finds errors.")
    b.add_argument("--print", action="store_true", help="Print the rendered document.")
    b.set_defaults(func=cmd_build)

    lint_p = sub.add_parser("lint", help="Check an existing document.")
    lint_p.add_argument("--doc", default=os.environ.get("SCHEMA_DOC_PATH") or "docs/SQL_SCHEMA.md")
    lint_p.add_argument("--source", default=os.environ.get("SCHEMA_SOURCE"), help="Schema description for table-name checks.")
    lint_p.add_argument("--config", default=os.environ.get("SCHEMA_DOC_CONFIG"))
    lint_p.set_defaults(func=cmd_lint)

    s = sub.add_parser("stats", help="Print document size and counts.")
    s.add_argument("--doc", default=os.environ.get("SCHEMA_DOC_PATH") or "docs/SQL_SCHEMA.md")
    s.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except SchemaDocError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
