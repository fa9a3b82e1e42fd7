"""Validation utilities for Axon configuration."""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError


def format_location(loc: tuple[int | str, ...], prefix: str = "") -> str:
    """Join a pydantic error location into a dotted config path.

    List indexes are rendered as ``[n]`` so that ``("extra_hosts", 0)``
    becomes ``extra_hosts[0]``.
    """
    path = prefix
    for item in loc:
        if isinstance(item, int):
            path += f"[{item}]"
        else:
            path = f"{path}.{item}" if path else str(item)
    return path or "unknown"


def flatten_pydantic_errors(
    exc: PydanticValidationError, prefix: str = ""
) -> list[str]:
    """Flatten a pydantic ValidationError into human-readable messages.

    Args:
        exc: Pydantic ValidationError exception
        prefix: Dotted path of the section that was validated, prepended to
            every field location

    Returns:
        List of messages, one per field error
    """
    errors: list[str] = []

    for error in exc.errors():
        field_path = format_location(tuple(error.get("loc", ())), prefix)
        msg = error.get("msg", "Unknown error")

        if error.get("type") == "missing":
            errors.append(f"Field '{field_path}': required field is missing")
        elif error.get("type") == "extra_forbidden":
            errors.append(f"Field '{field_path}': unknown field")
        elif error.get("type") == "value_error":
            input_val = error.get("input")
            errors.append(f"Field '{field_path}': {msg} (received: {input_val!r})")
        else:
            errors.append(f"Field '{field_path}': {msg}")

    return errors if errors else ["Validation failed with unknown error"]
