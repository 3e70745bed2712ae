# src/couchbase_connector/connection/manager.py

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from acouchbase.cluster import Cluster
from couchbase.options import ClusterOptions

from couchbase_connector.base.exceptions import (ConnectionFailureException,
                                                 UpstreamFailureException)
from couchbase_connector.base.settings import ConnectorSettings
from couchbase_connector.base.utils import Callback, invoke_callback

base_logger = logging.getLogger(__name__)

ClusterFactory = Callable[[str, ClusterOptions], Any]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Connection:
    """An open cluster together with the bucket and collection used for KV access."""

    cluster: Any
    bucket: Any
    collection: Any


class ConnectionManager:
    """
    Owns the single shared connection of a connector.

    The handshake runs as one asyncio task. Every caller that arrives while it
    is pending, or after it succeeded, awaits that same task, so concurrent
    callers share one handshake. A failed handshake is not cached: the next
    call to ``connect`` starts a fresh attempt.
    """

    def __init__(
        self,
        settings: ConnectorSettings,
        cluster_factory: Optional[ClusterFactory] = None,
    ):
        self._settings = settings
        self._cluster_factory: ClusterFactory = cluster_factory or Cluster
        self._connection: Optional["asyncio.Future[Connection]"] = None
        self._state = ConnectionState.DISCONNECTED
        self.cluster: Any = None
        self.bucket: Any = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def settings(self) -> ConnectorSettings:
        return self._settings

    async def connect(self, callback: Optional[Callback] = None) -> Connection:
        """
        Return the shared connection, opening it first if needed.

        Raises:
            ConnectionFailureException: If the cluster or bucket could not be opened.
        """
        base_logger.debug("Ready to connect")
        pending = self._connection
        if pending is not None and self._handshake_failed(pending):
            # Failed before its done-callback cleared it; start over.
            self._forget(pending)
            pending = None
        if pending is not None:
            base_logger.debug("Connection already established or in progress")
        else:
            self._state = ConnectionState.CONNECTING
            pending = asyncio.ensure_future(self._open())
            pending.add_done_callback(self._on_handshake_done)
            self._connection = pending

        try:
            # Shielded so a cancelled waiter does not abort the shared handshake.
            connection = await asyncio.shield(pending)
        except ConnectionFailureException as e:
            self._forget(pending)
            try:
                await invoke_callback(callback, e, None)
            except Exception as callback_error:
                base_logger.error(
                    f"Callback failed while reporting connection error: {callback_error}",
                    exc_info=True,
                )
            raise
        await invoke_callback(callback, None, connection)
        return connection

    async def disconnect(self, callback: Optional[Callback] = None) -> bool:
        """
        Close the shared connection and clear all cached state.

        Resolves True immediately when there is nothing to close.

        Raises:
            UpstreamFailureException: If closing the cluster failed. The cached
                                      state is cleared regardless.
        """
        base_logger.debug("Ready to disconnect")
        pending = self._connection
        if pending is None:
            base_logger.debug("No connections.")
            await invoke_callback(callback, None, True)
            return True

        self._connection = None
        self._state = ConnectionState.DISCONNECTED
        self.cluster = None
        self.bucket = None

        try:
            connection = await pending
        except ConnectionFailureException:
            base_logger.debug("Pending connection attempt failed; nothing to close")
            await invoke_callback(callback, None, True)
            return True

        try:
            await connection.cluster.close()
        except Exception as e:
            base_logger.error(f"Error while closing cluster: {e}", exc_info=True)
            error = UpstreamFailureException(
                f"Failed to close the Couchbase cluster: {e}", cause=e
            )
            await invoke_callback(callback, error, None)
            raise error from e
        base_logger.debug("disconnected")
        await invoke_callback(callback, None, True)
        return True

    async def _open(self) -> Connection:
        settings = self._settings
        cluster = None
        try:
            cluster = self._cluster_factory(
                settings.cluster.url, settings.cluster_options()
            )
            await cluster.on_connect()
            bucket = cluster.bucket(settings.bucket.name)
            await bucket.on_connect()
            collection = bucket.default_collection()
        except Exception as e:
            base_logger.error(
                f"Connection to {settings.cluster.url} "
                f"(bucket '{settings.bucket.name}') failed: {e}",
                exc_info=True,
            )
            if cluster is not None:
                await self._close_quietly(cluster)
            raise ConnectionFailureException(
                f"Could not open bucket '{settings.bucket.name}' "
                f"on {settings.cluster.url}: {e}",
                cause=e,
            ) from e

        base_logger.info(
            f"Connection is established to {settings.cluster.url} "
            f"(bucket '{settings.bucket.name}')"
        )
        return Connection(cluster=cluster, bucket=bucket, collection=collection)

    @staticmethod
    def _handshake_failed(task: "asyncio.Future[Connection]") -> bool:
        return task.done() and (task.cancelled() or task.exception() is not None)

    def _forget(self, task: "asyncio.Future[Connection]") -> None:
        """Drop a failed handshake, unless a newer one has replaced it."""
        if task is self._connection:
            self._connection = None
            self._state = ConnectionState.DISCONNECTED

    def _on_handshake_done(self, task: "asyncio.Future[Connection]") -> None:
        # A disconnect may already have replaced the cached task.
        if task is not self._connection:
            return
        if self._handshake_failed(task):
            self._forget(task)
            return
        connection = task.result()
        self.cluster = connection.cluster
        self.bucket = connection.bucket
        self._state = ConnectionState.CONNECTED

    @staticmethod
    async def _close_quietly(cluster: Any) -> None:
        try:
            await cluster.close()
        except Exception as e:
            base_logger.warning(f"Could not close partially opened cluster: {e}")
