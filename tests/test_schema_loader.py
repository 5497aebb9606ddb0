import pytest

from schemadoc.errors import SchemaLoadError
from schemadoc.schema_loader import (
    ForeignKey,
    is_junction_table,
    junction_targets,
    load_schema,
    parse_constraint_flags,
    parse_ref,
    schema_from_dict,
)


def test_tables_sorted_and_columns_keep_source_order(shop_schema):
    assert list(shop_schema.table_names) == sorted(shop_schema.table_names)
    orders = shop_schema.table("orders")
    assert orders.column_names == ("id", "customer_id", "status", "total_amount", "placed_at", "created_at")


def test_types_upper_cased_and_flags_read(shop_schema):
    customers = shop_schema.table("customers")
    email = customers.column("email")
    assert email.type == "VARCHAR(255)"
    assert email.not_null and email.is_unique
    assert customers.column("created_at").default == "CURRENT_TIMESTAMP"
    assert customers.primary_key == ("id",)


def test_foreign_key_shorthands(shop_schema):
    items = shop_schema.table("order_items")
    assert items.fk_for("order_id") == ForeignKey("order_id", "orders", "id")
    # products(id) form
    assert items.fk_for("product_id") == ForeignKey("product_id", "products", "id")


def test_table_level_primary_key_marks_columns(shop_schema):
    pt = shop_schema.table("product_tags")
    assert pt.primary_key == ("product_id", "tag_id")
    assert pt.column("tag_id").is_primary_key
    assert pt.column("tag_id").not_null


def test_junction_detection(shop_schema):
    assert is_junction_table(shop_schema.table("product_tags"))
    assert junction_targets(shop_schema.table("product_tags")) == ("products", "tags")
    # extra payload columns: not a junction unless flagged
    assert not is_junction_table(shop_schema.table("order_items"))
    assert is_junction_table(shop_schema.table("supplier_contracts"))
    assert not is_junction_table(shop_schema.table("orders"))


def test_version_ignores_prose():
    base = {"tables": [{"name": "t", "description": "One.", "columns": [{"name": "id", "type": "int", "primary_key": True}]}]}
    edited = {"tables": [{"name": "t", "description": "Two.", "columns": [{"name": "id", "type": "int", "primary_key": True, "note": "x"}]}]}
    changed = {"tables": [{"name": "t", "columns": [{"name": "id", "type": "bigint", "primary_key": True}]}]}

    assert schema_from_dict(base).schema_version == schema_from_dict(edited).schema_version
    assert schema_from_dict(base).schema_version != schema_from_dict(changed).schema_version


def test_mapping_form_accepted():
    s = schema_from_dict({"users": {"columns": [{"name": "id", "type": "int"}]}})
    assert s.table_names == ("users",)


def test_duplicate_table_rejected():
    t = {"name": "t", "columns": [{"name": "id", "type": "int"}]}
    with pytest.raises(SchemaLoadError):
        schema_from_dict({"tables": [t, t]})


def test_foreign_key_on_missing_column_rejected():
    obj = {
        "tables": [
            {
                "name": "t",
                "columns": [{"name": "id", "type": "int"}],
                "foreign_keys": [{"from_column": "other_id", "ref_table": "o", "ref_column": "id"}],
            }
        ]
    }
    with pytest.raises(SchemaLoadError):
        schema_from_dict(obj)


def test_unreadable_foreign_key_rejected():
    obj = {"tables": [{"name": "t", "columns": [{"name": "a", "type": "int", "foreign_key": "not a ref"}]}]}
    with pytest.raises(SchemaLoadError):
        schema_from_dict(obj)


def test_parse_ref_forms():
    assert parse_ref("customers.id") == ("customers", "id")
    assert parse_ref("public.customers.id") == ("public.customers", "id")
    assert parse_ref("`customers`(`id`)") == ("customers", "id")
    assert parse_ref("FK -> customers.id") == ("customers", "id")
    assert parse_ref("`customers.id`") == ("customers", "id")
    assert parse_ref("`Order Details`.OrderID") == ("Order Details", "OrderID")
    assert parse_ref("REFERENCES `order-items`(`id`)") == ("order-items", "id")
    assert parse_ref("customers") is None


def test_parse_constraint_flags():
    flags = parse_constraint_flags("PK, NOT NULL; UNIQUE, DEFAULT 'new', FK -> users.id")
    assert flags["primary_key"] and flags["not_null"] and flags["unique"]
    assert flags["default"] == "'new'"
    assert flags["ref"] == ("users", "id")


def test_quoted_default_keeps_its_commas():
    flags = parse_constraint_flags("NOT NULL, DEFAULT 'a, b'; UNIQUE")
    assert flags["default"] == "'a, b'"
    assert flags["not_null"] and flags["unique"]


def test_csv_data_dictionary(fixtures_dir):
    s = load_schema(str(fixtures_dir / "shop_dictionary.csv"))
    assert s.table_names == ("customers", "orders")
    orders = s.table("orders")
    assert orders.description == "Customer purchase orders."
    assert orders.group == "Sales"
    assert orders.fk_for("customer_id") == ForeignKey("customer_id", "customers", "id")
    status = orders.column("status")
    assert status.not_null
    assert status.default == "'pending'"
    assert s.table("customers").column("email").is_unique


def test_verbose_markdown(fixtures_dir):
    s = load_schema(str(fixtures_dir / "verbose_schema.md"))
    assert s.table_names == ("customers", "orders")
    customers = s.table("customers")
    assert customers.group == "Sales"
    assert customers.description == "Registered shoppers who can place orders."
    assert customers.column("id").is_primary_key
    assert customers.primary_key == ("id",)
    assert customers.column("id").note == ""
    assert customers.column("email").not_null
    orders = s.table("orders")
    assert orders.column("id").is_primary_key
    assert orders.fk_for("customer_id") == ForeignKey("customer_id", "customers", "id")
    assert orders.column("note").note == "Free text | may contain pipes"


def test_unsupported_format(tmp_path):
    p = tmp_path / "schema.sql"
    p.write_text("CREATE TABLE t (id int)", encoding="utf-8")
    with pytest.raises(SchemaLoadError):
        load_schema(str(p))


def test_missing_file():
    with pytest.raises(SchemaLoadError):
        load_schema("does/not/exist.json")


def test_invalid_json(tmp_path):
    p = tmp_path / "schema.json"
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(SchemaLoadError):
        load_schema(str(p))
