from schemadoc.prompts.description_prompt import build_description_prompt, postprocess_description


def test_prompt_lists_columns_and_refs(shop_schema):
    prompt = build_description_prompt(shop_schema.table("product_tags"))
    assert "Table: product_tags" in prompt
    assert "- product_id INTEGER -> products.id" in prompt
    assert "- created_at TIMESTAMP" in prompt
    assert prompt.endswith("Sentence:")


def test_prompt_truncates_wide_tables(shop_schema):
    prompt = build_description_prompt(shop_schema.table("products"), max_columns=3)
    assert "- ... 4 more" in prompt


def test_postprocess_description():
    assert postprocess_description("Sentence: stores tags of products. It is used by search.") == "Stores tags of products."
    assert postprocess_description('"Links products to tags"\nExplanation: ...') == "Links products to tags."
    assert postprocess_description("```text\nOne row per order line.\n```") == "One row per order line."
    assert postprocess_description("   ") == ""
