import json
from dataclasses import dataclass

import pytest

from schemadoc.doc_policy import DocPolicy
from schemadoc.doc_renderer import LEVEL_FOLD_WIDE, LEVEL_FULL, LEVEL_TRIM_NOTES, included_tables, render_document
from schemadoc.errors import BudgetExceeded, LintFailed
from schemadoc.pipeline import build_document, fill_missing_descriptions, write_document
from schemadoc.schema_loader import build_schema, load_schema, schema_from_dict


def test_uses_full_level_when_it_fits(shop_schema, small_policy):
    res = build_document(shop_schema, small_policy)
    assert res.level == LEVEL_FULL
    assert res.text == render_document(shop_schema, small_policy)
    assert res.char_count == len(res.text)
    assert res.lint.ok
    assert res.meta["schema_version"] == shop_schema.schema_version
    assert res.meta["tables"] == 8
    assert res.meta["excluded_tables"] == ["alembic_version"]
    assert len(res.meta["attempts"]) == 1


def test_condenses_until_target_fits(shop_schema):
    full = len(render_document(shop_schema, DocPolicy(), LEVEL_FULL))
    policy = DocPolicy(target_min_chars=0, target_max_chars=full - 1, hard_max_chars=20_000)
    res = build_document(shop_schema, policy)
    assert res.level == LEVEL_TRIM_NOTES
    assert res.char_count <= policy.target_max_chars
    assert [a["level"] for a in res.meta["attempts"]] == [0, 1]


def test_falls_back_to_most_condensed_under_hard_limit(shop_schema):
    policy = DocPolicy(target_min_chars=0, target_max_chars=10, hard_max_chars=20_000)
    res = build_document(shop_schema, policy)
    assert res.level == LEVEL_FOLD_WIDE
    assert f"above_target:{res.char_count}" in res.lint.warnings


def test_budget_exceeded(shop_schema):
    policy = DocPolicy(target_min_chars=0, target_max_chars=100, hard_max_chars=200)
    with pytest.raises(BudgetExceeded) as exc:
        build_document(shop_schema, policy)
    assert exc.value.hard_max_chars == 200
    assert exc.value.code == "budget_exceeded"


def _schema_with_outside_ref():
    return schema_from_dict(
        {
            "tables": [
                {
                    "name": "stock",
                    "description": "Stock levels.",
                    "columns": [
                        {"name": "id", "type": "int", "primary_key": True},
                        {"name": "warehouse_id", "type": "int", "foreign_key": "warehouses.id"},
                    ],
                }
            ]
        }
    )


def test_lint_errors_reported_or_raised(small_policy):
    schema = _schema_with_outside_ref()
    res = build_document(schema, small_policy)
    assert not res.lint.ok
    assert "dangling_ref:warehouses.id" in res.lint.reasons

    with pytest.raises(LintFailed) as exc:
        build_document(schema, small_policy, strict=True)
    assert exc.value.reasons == res.lint.reasons


@dataclass(frozen=True)
class _FakeResult:
    sentence: str
    latency_ms: int = 0


class _FakeDescriber:
    def __init__(self):
        self.calls = []

    def describe(self, table):
        self.calls.append(table.name)
        return _FakeResult(sentence=f"Links {table.name}.")


def test_fill_missing_descriptions_only_touches_blank_tables(shop_schema):
    describer = _FakeDescriber()
    filled = fill_missing_descriptions(shop_schema, describer)
    assert describer.calls == ["product_tags"]
    assert filled.table("product_tags").description == "Links product_tags."
    assert filled.table("orders").description == shop_schema.table("orders").description
    assert filled.schema_version == shop_schema.schema_version


def test_write_document(tmp_path, shop_schema_path, small_policy):
    out = tmp_path / "docs" / "SQL_SCHEMA.md"
    log = tmp_path / "build.json"
    res = write_document(shop_schema_path, small_policy, out_path=str(out), log_path=str(log))

    assert out.read_text(encoding="utf-8") == res.text
    payload = json.loads(log.read_text(encoding="utf-8"))
    assert payload["char_count"] == res.char_count
    assert payload["lint"]["ok"] is True
    assert payload["level_name"] == "full"
    assert payload["source"] == shop_schema_path


def test_rendered_document_reloads_to_same_structure(tmp_path, shop_schema, small_policy):
    out = tmp_path / "SQL_SCHEMA.md"
    out.write_text(build_document(shop_schema, small_policy).text, encoding="utf-8")

    reloaded = load_schema(str(out))
    expected = build_schema(included_tables(shop_schema, small_policy))
    assert reloaded.table_names == expected.table_names
    assert reloaded.schema_version == expected.schema_version
    assert reloaded.table("orders").model == "Order"
    assert reloaded.table("orders").group == "Sales"


def _northwind_schema():
    return schema_from_dict(
        {
            "tables": [
                {
                    "name": "Orders",
                    "description": "Customer orders.",
                    "columns": [{"name": "OrderID", "type": "int", "primary_key": True}],
                },
                {
                    "name": "Order Details",
                    "description": "One row per product on an order.",
                    "columns": [
                        {"name": "OrderID", "type": "int", "primary_key": True, "foreign_key": "Orders.OrderID"},
                        {"name": "ProductID", "type": "int", "primary_key": True},
                        {"name": "Unit Price", "type": "money", "not_null": True},
                        {"name": "ShipVia", "type": "varchar(20)", "default": "'air, sea'"},
                    ],
                },
                {
                    "name": "order-notes",
                    "description": "Free text notes on order lines.",
                    "columns": [
                        {"name": "id", "type": "int", "primary_key": True},
                        {"name": "line_order_id", "type": "int", "foreign_key": "`Order Details`.OrderID"},
                    ],
                },
            ]
        }
    )


def test_names_with_spaces_and_hyphens_pass_own_lint(tmp_path, small_policy):
    schema = _northwind_schema()
    res = build_document(schema, small_policy, strict=True)
    assert res.lint.ok, res.lint.reasons
    assert "### `Order Details`\n" in res.text
    assert "### `order-notes`\n" in res.text
    assert "Ref: `Order Details`.OrderID" in res.text

    out = tmp_path / "SQL_SCHEMA.md"
    out.write_text(res.text, encoding="utf-8")
    reloaded = load_schema(str(out))
    assert reloaded.table_names == schema.table_names
    assert reloaded.table("Order Details").column("ShipVia").default == "'air, sea'"
    assert reloaded.schema_version == schema.schema_version


def test_refs_to_excluded_tables_are_not_dangling():
    schema = schema_from_dict(
        {
            "tables": [
                {
                    "name": "audit_log",
                    "description": "Change log.",
                    "columns": [{"name": "id", "type": "int", "primary_key": True}],
                },
                {
                    "name": "orders",
                    "description": "Customer orders.",
                    "columns": [
                        {"name": "id", "type": "int", "primary_key": True},
                        {"name": "log_id", "type": "int", "foreign_key": "audit_log.id"},
                    ],
                },
            ]
        }
    )
    policy = DocPolicy(target_min_chars=0, exclude_tables=("audit_log",))
    res = build_document(schema, policy, strict=True)
    assert res.lint.ok, res.lint.reasons
    assert "### audit_log" not in res.text
    assert "Ref: audit_log.id" not in res.text
    assert "| log_id | INT | FK | FK to excluded table audit_log |" in res.text
