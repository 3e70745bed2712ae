import inspect
import logging
from dataclasses import is_dataclass, asdict
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Signature of every completion callback: (error, result).
Callback = Callable[[Optional[BaseException], Any], Any]


def noop(err: Optional[BaseException], res: Any) -> None:
    """Completion callback used when the caller does not supply one."""


async def invoke_callback(
    callback: Optional[Callback], err: Optional[BaseException], res: Any
) -> None:
    """
    Deliver an (error, result) pair to a completion callback.

    Plain functions and coroutine functions are both accepted; if the callback
    returns an awaitable it is awaited before returning.
    """
    callback = callback or noop
    outcome = callback(err, res)
    if inspect.isawaitable(outcome):
        await outcome


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses, and special types to
    JSON-compatible values the store client can encode.

    It handles:
    - Pydantic BaseModel instances with field aliases
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (all become lists, since JSON has no tuples)
    - Pydantic URL types (converting to strings)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage
    """
    if data is None:
        return None

    # Handle dataclasses
    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    # Handle Pydantic models
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        try:
            # mode="json" turns datetimes, UUIDs and URLs into strings
            serialized = data.model_dump(mode="json", by_alias=True)
        except Exception as e:
            logger.debug(f"Error using model_dump(mode='json', by_alias=True): {e}")
            serialized = data.model_dump(by_alias=True)
        return prepare_for_storage(serialized)

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, (list, tuple, set)):
        return [prepare_for_storage(item) for item in data]

    if hasattr(data, "__class__") and data.__class__.__module__ == "pydantic.networks":
        return str(data)

    # Return primitives as-is
    return data
