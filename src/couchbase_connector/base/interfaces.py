# src/couchbase_connector/base/interfaces.py

import uuid
from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, Callable, Dict, Mapping, Optional

from couchbase_connector.base.keys import validate_model_name
from couchbase_connector.base.utils import Callback


def generate_id() -> str:
    """Generate a new unique ID for documents created without one."""
    return str(uuid.uuid4())


class Connector(ABC):
    """
    Base data source connector interface expected by the ORM.

    Every operation is a coroutine taking an optional completion callback with
    signature ``(error, result)``. The callback is always invoked exactly once;
    the awaited call returns the same result or raises the same error, so
    callers may use either style.
    """

    def __init__(self) -> None:
        self._id_names: Dict[str, str] = {}

    # --- Model Registry ---

    def define(self, model: str, id_name: str = "id") -> None:
        """
        Register a model and the name of its identifier property.

        Args:
            model: The model name; becomes the namespace of its document keys.
            id_name: The property holding the model's identifier.
        """
        validate_model_name(model)
        self._id_names[model] = id_name

    def id_name(self, model: str) -> str:
        """The identifier property of a model ('id' unless defined otherwise)."""
        return self._id_names.get(model, "id")

    @property
    def id_generator(self) -> Callable[[], str]:
        """Function to generate new identifiers. Can be overridden."""
        return generate_id

    # --- Connection Lifecycle ---

    @abstractmethod
    async def connect(self, callback: Optional[Callback] = None) -> Any:
        """
        Establish (or reuse) the shared connection.

        Returns:
            The connection handle.

        Raises:
            ConnectionFailureException: If the cluster or bucket cannot be opened.
        """
        pass

    @abstractmethod
    async def disconnect(self, callback: Optional[Callback] = None) -> bool:
        """Close the shared connection, if any. Returns True."""
        pass

    # --- Setup ---

    @abstractmethod
    async def check_indexes(self, logger: LoggerAdapter) -> bool:
        """
        Check whether the indexes needed by query-backed operations exist.
        Non-destructive.
        """
        pass

    @abstractmethod
    async def create_indexes(self, logger: LoggerAdapter) -> None:
        """Create the indexes needed by query-backed operations. Idempotent."""
        pass

    # --- Core CRUD Methods ---

    @abstractmethod
    async def create(
        self, model: str, data: Any, callback: Optional[Callback] = None
    ) -> bool:
        """
        Insert a new document. Generates an id when the data carries none.

        Raises:
            KeyAlreadyExistsException: If a document with the same key exists.
        """
        pass

    @abstractmethod
    async def all(
        self, model: str, filter: Any, callback: Optional[Callback] = None
    ) -> Any:
        """
        Read the document identified by the filter.

        Raises:
            ObjectNotFoundException: If no document has the derived key.
        """
        pass

    @abstractmethod
    async def update(
        self, model: str, where: Any, data: Any, callback: Optional[Callback] = None
    ) -> bool:
        """Create or replace the document identified by ``where``."""
        pass

    @abstractmethod
    async def destroy_all(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> bool:
        """
        Remove the document identified by ``id``.

        Raises:
            ObjectNotFoundException: If no document has the derived key.
        """
        pass

    @abstractmethod
    async def destroy(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> Dict[str, int]:
        """Remove a document by id. Returns ``{"count": n}`` with n in (0, 1)."""
        pass

    @abstractmethod
    async def find(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> Optional[Any]:
        """Read a document by id. Returns None when it does not exist."""
        pass

    @abstractmethod
    async def exists(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> bool:
        """Check whether a document exists."""
        pass

    @abstractmethod
    async def save(
        self, model: str, data: Any, callback: Optional[Callback] = None
    ) -> Any:
        """Replace (or create) the document for ``data``, which must carry an id."""
        pass

    @abstractmethod
    async def update_or_create(
        self, model: str, data: Any, callback: Optional[Callback] = None
    ) -> Any:
        """Create or replace the document for ``data``, generating an id if needed."""
        pass

    @abstractmethod
    async def update_attributes(
        self,
        model: str,
        id: Any,
        data: Mapping[str, Any],
        callback: Optional[Callback] = None,
    ) -> Any:
        """
        Merge ``data`` into an existing document.

        Raises:
            ObjectNotFoundException: If the document does not exist.
        """
        pass

    @abstractmethod
    async def count(
        self,
        model: str,
        where: Optional[Mapping[str, Any]] = None,
        callback: Optional[Callback] = None,
    ) -> int:
        """Count the documents of a model matching ``where``."""
        pass
