# schemadoc/errors.py
from __future__ import annotations

from typing import Tuple


# ----------------------------
# Error taxonomy
# ----------------------------

class SchemaDocError(Exception):
    code: str = "schemadoc_error"

class SchemaLoadError(SchemaDocError):
    code = "schema_load_error"

class ConfigError(SchemaDocError):
    code = "config_error"

class BudgetExceeded(SchemaDocError):
    code = "budget_exceeded"

    def __init__(self, char_count: int, hard_max_chars: int):
        super().__init__(f"budget_exceeded: {char_count} > {hard_max_chars} chars")
        self.char_count = char_count
        self.hard_max_chars = hard_max_chars

class LintFailed(SchemaDocError):
    code = "lint_failed"

    def __init__(self, reasons: Tuple[str, ...]):
        super().__init__("lint_failed: " + ", ".join(reasons))
        self.reasons = reasons
