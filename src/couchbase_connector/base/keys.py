# src/couchbase_connector/base/keys.py

"""
Document key derivation.

Every document is stored under ``<model>::<id>``. Model names may not contain
the separator, so two different (model, id) pairs never map to the same key.
"""

from dataclasses import is_dataclass, asdict
from typing import Any, Mapping, Optional

KEY_SEPARATOR = "::"
MAX_KEY_BYTES = 250


def validate_model_name(model: str) -> None:
    if not isinstance(model, str) or not model:
        raise ValueError("Model name must be a non-empty string.")
    if KEY_SEPARATOR in model:
        raise ValueError(
            f"Model name '{model}' must not contain the key separator '{KEY_SEPARATOR}'."
        )


def key_prefix(model: str) -> str:
    """Prefix shared by every key of the given model."""
    validate_model_name(model)
    return f"{model}{KEY_SEPARATOR}"


def make_key(model: str, id_value: Any) -> str:
    """
    Derive the document key for a model instance.

    Raises:
        ValueError: If the model name is invalid, the id is missing, or the
                    resulting key exceeds the store's key length limit.
    """
    if id_value is None:
        raise ValueError(f"Cannot derive a document key for {model}: id is missing.")
    key = f"{key_prefix(model)}{id_value}"
    if len(key.encode("utf-8")) > MAX_KEY_BYTES:
        raise ValueError(
            f"Document key for {model} exceeds {MAX_KEY_BYTES} bytes: '{key[:40]}...'"
        )
    return key


def get_id_value(data: Any, id_name: str = "id") -> Optional[Any]:
    """
    Extract the identifier from whatever the ORM passed in.

    Accepts a bare id, a mapping holding ``id_name``, a filter of the form
    ``{"where": {id_name: value}}`` or ``{"where": {id_name: {"eq": value}}}``,
    and pydantic models or dataclasses. Returns None when no id is present.
    """
    if data is None:
        return None
    if isinstance(data, (str, int)) and not isinstance(data, bool):
        return data
    if is_dataclass(data) and not isinstance(data, type):
        data = asdict(data)
    elif hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        data = data.model_dump()
    if not isinstance(data, Mapping):
        return None

    if data.get(id_name) is not None:
        return data[id_name]

    where = data.get("where")
    if isinstance(where, Mapping) and id_name in where:
        value = where[id_name]
        if isinstance(value, Mapping):
            return value.get("eq")
        return value
    return None
