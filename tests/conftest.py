from pathlib import Path

import pytest

from schemadoc.doc_policy import DocPolicy
from schemadoc.schema_loader import load_schema

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture(scope="session")
def shop_schema_path() -> str:
    return str(FIXTURES / "shop_schema.json")


@pytest.fixture(scope="session")
def shop_schema(shop_schema_path):
    return load_schema(shop_schema_path)


@pytest.fixture
def small_policy() -> DocPolicy:
    # The fixture schema is far below the production target range.
    return DocPolicy(target_min_chars=0, target_max_chars=15_000, hard_max_chars=20_000)
