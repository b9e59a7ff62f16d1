from typing import Any


def text_field(value: Any, *, allow_number: bool = False) -> str | None:
    """Return ``value`` as a string, or None when it has the wrong type.

    Request bodies are parsed loosely so handlers can decide the response
    themselves instead of FastAPI answering 422.
    """
    if isinstance(value, str):
        return value
    if allow_number and isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return None
