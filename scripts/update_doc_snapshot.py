# scripts/update_doc_snapshot.py
import os
from pathlib import Path

from schemadoc.schema_service import SchemaDocService

def main():
    source = os.environ.get("SCHEMA_SOURCE", "tests/fixtures/shop_schema.json")

    svc = SchemaDocService(source)

    out_dir = Path("tests/schema_snapshots")
    out_dir.mkdir(parents=True, exist_ok=True)

    (out_dir / "shop.md").write_text(svc.document(), encoding="utf-8")
    (out_dir / "shop.sha256").write_text(svc.schema_version(), encoding="utf-8")

    print("Updated doc snapshots.")

if __name__ == "__main__":
    main()
