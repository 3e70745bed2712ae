# src/couchbase_connector/db_implementations/couchbase_connector.py

import logging
from logging import LoggerAdapter
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar, Union

from couchbase.exceptions import (CouchbaseException, DocumentExistsException,
                                  DocumentNotFoundException)
from couchbase.options import QueryOptions, ReplaceOptions

from couchbase_connector.base.exceptions import (ConnectionFailureException,
                                                 KeyAlreadyExistsException,
                                                 ObjectNotFoundException,
                                                 UpstreamFailureException)
from couchbase_connector.base.interfaces import Connector
from couchbase_connector.base.keys import get_id_value, make_key
from couchbase_connector.base.query import quote_bucket, translate_where
from couchbase_connector.base.settings import ConnectorSettings
from couchbase_connector.base.utils import (Callback, invoke_callback,
                                            prepare_for_storage)
from couchbase_connector.connection.manager import (ClusterFactory, Connection,
                                                    ConnectionManager)

R = TypeVar("R")

base_logger = logging.getLogger(
    "couchbase_connector.db_implementations.couchbase_connector"
)


class CouchbaseConnector(Connector):
    """
    Couchbase connector implementation using the asyncio SDK (acouchbase).

    Each operation maps onto exactly one key of the bucket's default
    collection. The key is derived from the model name and the model's id
    (see ``couchbase_connector.base.keys``). ``count`` is the only operation
    that goes through the query service and needs a primary index.
    """

    def __init__(
        self,
        settings: Union[ConnectorSettings, Mapping[str, Any], None] = None,
        data_source: Any = None,
        cluster_factory: Optional[ClusterFactory] = None,
    ):
        """
        Initialize the connector. Does NOT connect; the first operation (or
        an explicit ``connect``) opens the connection.

        Args:
            settings: Connector settings or the raw data source settings mapping.
            data_source: The ORM data source owning this connector, if any.
            cluster_factory: Callable building a cluster from (url, options).
                             Defaults to ``acouchbase.cluster.Cluster``.
        """
        super().__init__()
        self.name = "couchbase"
        self.settings = ConnectorSettings.from_dict(settings)
        self.data_source = data_source
        self._connection_manager = ConnectionManager(self.settings, cluster_factory)

        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{self.settings.bucket.name}]"
        )
        self._logger.debug(f"Settings: {self.settings.model_dump()!r}")

    @property
    def connection_manager(self) -> ConnectionManager:
        return self._connection_manager

    # --- Connection Lifecycle ---

    async def connect(self, callback: Optional[Callback] = None) -> Connection:
        return await self._connection_manager.connect(callback)

    async def disconnect(self, callback: Optional[Callback] = None) -> bool:
        return await self._connection_manager.disconnect(callback)

    # --- Setup ---

    async def check_indexes(self, logger: LoggerAdapter) -> bool:
        """Check whether the bucket has a primary index."""
        bucket = self.settings.bucket.name
        logger.info(f"Checking primary index for bucket '{bucket}'...")
        statement = (
            "SELECT RAW COUNT(*) FROM system:indexes "
            "WHERE keyspace_id = $bucket AND is_primary = true"
        )
        try:
            connection = await self.connect()
            rows = await self._query_rows(
                connection, statement, {"bucket": bucket}
            )
        except Exception as e:
            error = self._handle_store_error(e, f"checking indexes for {bucket}")
            if error is e:
                raise
            raise error from e

        found = bool(rows) and int(rows[0]) > 0
        if found:
            logger.info(f"Index check PASSED for bucket '{bucket}'.")
        else:
            logger.warning(
                f"Index check FAILED: no primary index on bucket '{bucket}'."
            )
        return found

    async def create_indexes(self, logger: LoggerAdapter) -> None:
        """Create the bucket's primary index if it does not exist."""
        bucket = self.settings.bucket.name
        logger.info(f"Attempting to create primary index for bucket '{bucket}'...")
        statement = f"CREATE PRIMARY INDEX IF NOT EXISTS ON {quote_bucket(bucket)}"
        try:
            connection = await self.connect()
            await self._query_rows(connection, statement, {})
        except Exception as e:
            error = self._handle_store_error(e, f"creating indexes for {bucket}")
            if error is e:
                raise
            raise error from e
        logger.info(f"Primary index ensured on bucket '{bucket}'.")

    # --- Core CRUD Methods ---

    async def create(
        self, model: str, data: Any, callback: Optional[Callback] = None
    ) -> bool:
        self._logger.debug(f"CREATE {model}: {data!r}")

        async def _create(connection: Connection) -> bool:
            document = self._document_with_id(model, data)
            key = make_key(model, document[self.id_name(model)])
            await connection.collection.insert(key, document)
            self._logger.info(f"Created {model} document '{key}'.")
            return True

        return await self._execute(f"creating {model}", callback, _create)

    async def all(
        self, model: str, filter: Any, callback: Optional[Callback] = None
    ) -> Any:
        self._logger.debug(f"FIND {model}: {filter!r}")

        async def _get(connection: Connection) -> Any:
            key = self._key_for(model, filter)
            result = await connection.collection.get(key)
            self._logger.info(f"Found {model} document '{key}'.")
            return result.value

        return await self._execute(f"finding {model}", callback, _get)

    async def update(
        self, model: str, where: Any, data: Any, callback: Optional[Callback] = None
    ) -> bool:
        self._logger.debug(f"UPDATE {model} where {where!r}: {data!r}")

        async def _upsert(connection: Connection) -> bool:
            key = self._key_for(model, where)
            await connection.collection.upsert(key, prepare_for_storage(data))
            self._logger.info(f"Upserted {model} document '{key}'.")
            return True

        return await self._execute(f"updating {model}", callback, _upsert)

    async def destroy_all(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> bool:
        self._logger.debug(f"DESTROY {model}: {id!r}")

        async def _remove(connection: Connection) -> bool:
            key = self._key_for(model, id)
            await connection.collection.remove(key)
            self._logger.info(f"Removed {model} document '{key}'.")
            return True

        return await self._execute(f"destroying {model}", callback, _remove)

    async def destroy(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> Dict[str, int]:
        self._logger.debug(f"DESTROY BY ID {model}: {id!r}")

        async def _remove(connection: Connection) -> Dict[str, int]:
            key = self._key_for(model, id)
            try:
                await connection.collection.remove(key)
            except DocumentNotFoundException:
                self._logger.info(f"No {model} document '{key}' to remove.")
                return {"count": 0}
            self._logger.info(f"Removed {model} document '{key}'.")
            return {"count": 1}

        return await self._execute(f"destroying {model} by id", callback, _remove)

    async def find(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> Optional[Any]:
        self._logger.debug(f"FIND BY ID {model}: {id!r}")

        async def _get(connection: Connection) -> Optional[Any]:
            key = self._key_for(model, id)
            try:
                result = await connection.collection.get(key)
            except DocumentNotFoundException:
                self._logger.info(f"{model} document '{key}' not found.")
                return None
            return result.value

        return await self._execute(f"finding {model} by id", callback, _get)

    async def exists(
        self, model: str, id: Any, callback: Optional[Callback] = None
    ) -> bool:
        self._logger.debug(f"EXISTS {model}: {id!r}")

        async def _exists(connection: Connection) -> bool:
            key = self._key_for(model, id)
            result = await connection.collection.exists(key)
            return bool(result.exists)

        return await self._execute(f"checking {model} exists", callback, _exists)

    async def save(
        self, model: str, data: Any, callback: Optional[Callback] = None
    ) -> Any:
        self._logger.debug(f"SAVE {model}: {data!r}")

        async def _save(connection: Connection) -> Any:
            document = prepare_for_storage(data)
            key = self._key_for(model, document)
            await connection.collection.upsert(key, document)
            self._logger.info(f"Saved {model} document '{key}'.")
            return document

        return await self._execute(f"saving {model}", callback, _save)

    async def update_or_create(
        self, model: str, data: Any, callback: Optional[Callback] = None
    ) -> Any:
        self._logger.debug(f"UPDATE OR CREATE {model}: {data!r}")

        async def _upsert(connection: Connection) -> Any:
            document = self._document_with_id(model, data)
            key = make_key(model, document[self.id_name(model)])
            await connection.collection.upsert(key, document)
            self._logger.info(f"Upserted {model} document '{key}'.")
            return document

        return await self._execute(f"upserting {model}", callback, _upsert)

    async def update_attributes(
        self,
        model: str,
        id: Any,
        data: Mapping[str, Any],
        callback: Optional[Callback] = None,
    ) -> Any:
        self._logger.debug(f"UPDATE ATTRIBUTES {model} {id!r}: {data!r}")

        async def _merge(connection: Connection) -> Any:
            key = self._key_for(model, id)
            current = await connection.collection.get(key)
            existing = current.value
            if not isinstance(existing, dict):
                raise ValueError(
                    f"{model} document '{key}' is not an object; cannot update attributes."
                )
            merged = {**existing, **prepare_for_storage(dict(data))}
            # Replace only if nobody wrote the document since we read it.
            await connection.collection.replace(
                key, merged, ReplaceOptions(cas=current.cas)
            )
            self._logger.info(f"Updated attributes of {model} document '{key}'.")
            return merged

        return await self._execute(f"updating attributes of {model}", callback, _merge)

    async def count(
        self,
        model: str,
        where: Optional[Mapping[str, Any]] = None,
        callback: Optional[Callback] = None,
    ) -> int:
        self._logger.debug(f"COUNT {model} where {where!r}")

        async def _count(connection: Connection) -> int:
            fragment, params = translate_where(
                self.settings.bucket.name, model, where
            )
            rows = await self._query_rows(
                connection, f"SELECT RAW COUNT(*) {fragment}", params
            )
            total = int(rows[0]) if rows else 0
            self._logger.info(f"Counted {total} {model} document(s).")
            return total

        return await self._execute(f"counting {model}", callback, _count)

    # --- Helper Methods ---

    async def _execute(
        self,
        context: str,
        callback: Optional[Callback],
        operation: Callable[[Connection], Awaitable[R]],
    ) -> R:
        """
        Run one operation against the shared connection and deliver the
        outcome to the callback. Errors go to the callback as (error, None)
        and are then raised to the awaiting caller.
        """
        try:
            connection = await self.connect()
            result = await operation(connection)
        except Exception as e:
            error = self._handle_store_error(e, context)
            try:
                await invoke_callback(callback, error, None)
            except Exception as callback_error:
                # The store error is what the caller must see.
                self._logger.error(
                    f"Callback failed while reporting error during {context}: "
                    f"{callback_error}",
                    exc_info=True,
                )
            if error is e:
                raise
            raise error from e
        await invoke_callback(callback, None, result)
        return result

    async def _query_rows(
        self, connection: Connection, statement: str, params: Dict[str, Any]
    ) -> list:
        self._logger.debug(f"N1QL: {statement} {params}")
        result = connection.cluster.query(
            statement, QueryOptions(named_parameters=params)
        )
        return [row async for row in result.rows()]

    def _key_for(self, model: str, data: Any) -> str:
        return make_key(model, get_id_value(data, self.id_name(model)))

    def _document_with_id(self, model: str, data: Any) -> Dict[str, Any]:
        """Prepare ``data`` for storage, generating an id when it has none."""
        document = prepare_for_storage(data)
        if not isinstance(document, dict):
            raise ValueError(
                f"{model} data must be an object, got {type(data).__name__}."
            )
        id_name = self.id_name(model)
        if document.get(id_name) is None:
            document = {**document, id_name: self.id_generator()}
            self._logger.debug(
                f"Generated {id_name} '{document[id_name]}' for new {model}"
            )
        return document

    def _handle_store_error(self, error: Exception, context: str) -> Exception:
        """Map a store or SDK error onto the connector's exception types."""
        if isinstance(
            error,
            (
                ObjectNotFoundException,
                KeyAlreadyExistsException,
                ConnectionFailureException,
                UpstreamFailureException,
                ValueError,
                TypeError,
            ),
        ):
            self._logger.debug(f"{type(error).__name__} during {context}: {error}")
            return error
        if isinstance(error, DocumentNotFoundException):
            self._logger.warning(f"Document not found during {context}")
            return ObjectNotFoundException(
                f"Document not found during {context}.", cause=error
            )
        if isinstance(error, DocumentExistsException):
            self._logger.warning(f"Document already exists during {context}")
            return KeyAlreadyExistsException(
                f"Document already exists during {context}.", cause=error
            )
        self._logger.error(f"Couchbase error during {context}: {error}", exc_info=True)
        if isinstance(error, CouchbaseException):
            return UpstreamFailureException(
                f"Couchbase error during {context}: {error}", cause=error
            )
        return UpstreamFailureException(
            f"An unexpected error occurred during {context}: {error}", cause=error
        )


async def initialize_data_source(
    data_source: Any,
    callback: Optional[Callback] = None,
    cluster_factory: Optional[ClusterFactory] = None,
) -> CouchbaseConnector:
    """
    Attach a CouchbaseConnector to an ORM data source.

    The data source's settings are normalised (defaults filled in) and written
    back. When a callback is given the connector also connects, reporting the
    outcome through the callback, as the ORM expects from ``initialize``.
    """
    settings = ConnectorSettings.from_dict(getattr(data_source, "settings", None))
    data_source.settings = settings.model_dump()
    connector = CouchbaseConnector(settings, data_source, cluster_factory)
    data_source.connector = connector
    if callback is not None:
        base_logger.debug("Initialize and connect")
        await connector.connect(callback)
    return connector
