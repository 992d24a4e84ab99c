"""Schema validation against the package-data registry."""

from __future__ import annotations

from typing import Any

from jsonschema.validators import Draft202012Validator

from deployx.utils.schema_registry import get_registry


def validate_data(data: dict[str, Any], schema_name: str, strict: bool = True) -> tuple[bool, list[str]]:
    """Validate data against a packaged schema.

    Args:
        data: Payload to validate
        schema_name: Schema name without the ``.schema.json`` suffix
        strict: Raise ValueError on errors instead of returning them

    Returns:
        Tuple of (is_valid, error_messages)
    """
    schema = get_registry().get_json(schema_name)
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])

    if not errors:
        return True, []

    messages = [
        f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
        for e in errors
    ]
    if strict:
        raise ValueError(
            f"Schema validation failed for '{schema_name}':\n" + "\n".join(f"  - {msg}" for msg in messages)
        )
    return False, messages
