# tests/conftest.py
import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from couchbase.exceptions import (DocumentExistsException,
                                  DocumentNotFoundException)

from couchbase_connector.db_implementations.couchbase_connector import \
    CouchbaseConnector

# Silence verbose loggers
logging.getLogger("couchbase").setLevel(logging.ERROR)
logging.getLogger("acouchbase").setLevel(logging.ERROR)

TEST_BUCKET_NAME = "pytest-bucket"


# --- In-memory stand-in for the acouchbase cluster ---


class FakeGetResult:
    def __init__(self, value: Any, cas: int):
        self.value = value
        self.cas = cas


class FakeExistsResult:
    def __init__(self, exists: bool):
        self.exists = exists


class FakeMutationResult:
    def __init__(self, cas: int):
        self.cas = cas


class FakeQueryResult:
    def __init__(self, rows: List[Any]):
        self._rows = rows

    async def rows(self):
        for row in self._rows:
            yield row


class FakeCollection:
    """Key/value collection with the same failure modes as the real one."""

    def __init__(self):
        self.documents: Dict[str, Tuple[Any, int]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.replace_options: List[Any] = []
        self.fail_next: Optional[Exception] = None
        self._cas = itertools.count(1)

    def _record(self, op: str, key: str) -> None:
        self.calls.append((op, key))
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    async def insert(self, key, value, *options):
        self._record("insert", key)
        if key in self.documents:
            raise DocumentExistsException()
        self.documents[key] = (value, next(self._cas))
        return FakeMutationResult(self.documents[key][1])

    async def upsert(self, key, value, *options):
        self._record("upsert", key)
        self.documents[key] = (value, next(self._cas))
        return FakeMutationResult(self.documents[key][1])

    async def replace(self, key, value, *options):
        self._record("replace", key)
        self.replace_options.extend(options)
        if key not in self.documents:
            raise DocumentNotFoundException()
        self.documents[key] = (value, next(self._cas))
        return FakeMutationResult(self.documents[key][1])

    async def get(self, key, *options):
        self._record("get", key)
        if key not in self.documents:
            raise DocumentNotFoundException()
        value, cas = self.documents[key]
        return FakeGetResult(value, cas)

    async def exists(self, key, *options):
        self._record("exists", key)
        return FakeExistsResult(key in self.documents)

    async def remove(self, key, *options):
        self._record("remove", key)
        if key not in self.documents:
            raise DocumentNotFoundException()
        del self.documents[key]
        return FakeMutationResult(next(self._cas))


class FakeBucket:
    def __init__(self, name: str, collection: FakeCollection, fail: Optional[Exception]):
        self.name = name
        self._collection = collection
        self._fail = fail

    async def on_connect(self):
        await asyncio.sleep(0)
        if self._fail is not None:
            raise self._fail

    def default_collection(self) -> FakeCollection:
        return self._collection


class FakeCluster:
    def __init__(self, factory: "FakeClusterFactory", url: str, options: Any):
        self.factory = factory
        self.url = url
        self.options = options
        self.closed = False
        self.opened_buckets: List[str] = []
        self.queries: List[Tuple[str, Any]] = []

    async def on_connect(self):
        await self.factory.gate.wait()
        if self.factory.fail_cluster is not None:
            raise self.factory.fail_cluster

    def bucket(self, name: str) -> FakeBucket:
        self.opened_buckets.append(name)
        self.factory.bucket_opens += 1
        return FakeBucket(name, self.factory.collection, self.factory.fail_bucket)

    def query(self, statement: str, options: Any = None) -> FakeQueryResult:
        self.queries.append((statement, options))
        if self.factory.fail_query is not None:
            raise self.factory.fail_query
        return FakeQueryResult(list(self.factory.query_rows))

    async def close(self):
        self.closed = True


class FakeClusterFactory:
    """
    Callable standing in for ``acouchbase.cluster.Cluster``. All clusters it
    builds share one collection, so data survives a reconnect.
    """

    def __init__(self):
        self.collection = FakeCollection()
        self.clusters: List[FakeCluster] = []
        self.bucket_opens = 0
        self.fail_cluster: Optional[Exception] = None
        self.fail_bucket: Optional[Exception] = None
        self.fail_query: Optional[Exception] = None
        self.query_rows: List[Any] = []
        self.gate = asyncio.Event()
        self.gate.set()

    def __call__(self, url: str, options: Any) -> FakeCluster:
        cluster = FakeCluster(self, url, options)
        self.clusters.append(cluster)
        return cluster


# --- Fixtures ---


@pytest.fixture
def cluster_factory() -> FakeClusterFactory:
    return FakeClusterFactory()


@pytest.fixture
def store(cluster_factory) -> FakeCollection:
    """The documents behind every cluster the factory builds."""
    return cluster_factory.collection


@pytest_asyncio.fixture
async def connector(cluster_factory):
    """A connector wired to the fake cluster; disconnected after the test."""
    conn = CouchbaseConnector(
        {"bucket": {"name": TEST_BUCKET_NAME}}, cluster_factory=cluster_factory
    )
    yield conn
    await conn.disconnect()


@pytest.fixture
def callback_log():
    """A completion callback that records every (error, result) it receives."""

    class _Recorder:
        def __init__(self):
            self.calls: List[Tuple[Optional[BaseException], Any]] = []

        def __call__(self, err, res):
            self.calls.append((err, res))

    return _Recorder()


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_connector_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})
