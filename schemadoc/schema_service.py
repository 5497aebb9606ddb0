# schemadoc/schema_service.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from schemadoc.doc_policy import DocPolicy
from schemadoc.pipeline import BuildResult, build_document
from schemadoc.schema_loader import Schema, load_schema

@dataclass
class SchemaDocService:
    source_path: str
    policy: DocPolicy = field(default_factory=DocPolicy)
    _schema: Optional[Schema] = None
    _result: Optional[BuildResult] = None

    def refresh(self) -> None:
        self._schema = load_schema(self.source_path)
        self._result = build_document(self._schema, self.policy)

    def schema(self) -> Schema:
        if self._schema is None:
            self.refresh()
        return self._schema

    def build(self) -> BuildResult:
        if self._result is None:
            self.refresh()
        return self._result

    def document(self) -> str:
        return self.build().text

    def schema_version(self) -> str:
        return self.schema().schema_version
