"""Schema registry backed by package data.

Schemas are read from the installed ``deployx.schemas`` package so that
loading never depends on the current working directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib.resources import files
from typing import Any

SCHEMA_PACKAGE = "deployx.schemas"
SCHEMA_SUFFIX = ".schema.json"


@dataclass(frozen=True)
class SchemaRegistry:
    """Registry of schemas available in package data.

    Attributes:
        available: Sorted canonical schema names (without the suffix)
    """

    available: tuple[str, ...] = ()

    def __init__(self) -> None:
        names = [
            item.name[: -len(SCHEMA_SUFFIX)]
            for item in files(SCHEMA_PACKAGE).iterdir()
            if item.name.endswith(SCHEMA_SUFFIX)
        ]
        object.__setattr__(self, "available", tuple(sorted(names)))

    def get_text(self, name: str) -> str:
        canonical = name[: -len(SCHEMA_SUFFIX)] if name.endswith(SCHEMA_SUFFIX) else name
        if canonical not in self.available:
            raise KeyError(
                f"Schema '{canonical}' not found in deployx package data. "
                f"Available schemas: {', '.join(self.available)}"
            )
        return (files(SCHEMA_PACKAGE) / f"{canonical}{SCHEMA_SUFFIX}").read_text(encoding="utf-8")

    def get_json(self, name: str) -> dict[str, Any]:
        text = self.get_text(name)
        try:
            res: dict[str, Any] = json.loads(text)
            return res
        except json.JSONDecodeError as e:
            raise ValueError(f"Schema '{name}' contains invalid JSON: {e}") from e


_registry: SchemaRegistry | None = None


def get_registry() -> SchemaRegistry:
    """Get the global schema registry instance."""
    global _registry
    if _registry is None:
        _registry = SchemaRegistry()
    return _registry
