# src/couchbase_connector/__init__.py

"""
Couchbase Connector Initialization.

This package exposes a Couchbase bucket to an object-data-mapping framework
through its fixed CRUD connector interface, using the asyncio Couchbase SDK.

It initializes a logger with a NullHandler and makes the connector, its
settings and its exceptions available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "couchbase_connector".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import Connector
from .base.exceptions import (
    ObjectNotFoundException,
    KeyAlreadyExistsException,
    ConnectionFailureException,
    UpstreamFailureException,
)

# --------------------------------------------------------------------------
# Settings and Key Derivation Exports
# --------------------------------------------------------------------------
from .base.settings import ConnectorSettings, ClusterSettings, BucketSettings
from .base.keys import make_key, get_id_value

# --------------------------------------------------------------------------
# Connection and Connector Exports
# --------------------------------------------------------------------------
from .connection.manager import Connection, ConnectionManager, ConnectionState
from .db_implementations.couchbase_connector import (
    CouchbaseConnector,
    initialize_data_source,
)

__all__ = [
    # Core
    "Connector",
    # Exceptions
    "ObjectNotFoundException",
    "KeyAlreadyExistsException",
    "ConnectionFailureException",
    "UpstreamFailureException",
    # Settings / keys
    "ConnectorSettings",
    "ClusterSettings",
    "BucketSettings",
    "make_key",
    "get_id_value",
    # Connection
    "Connection",
    "ConnectionManager",
    "ConnectionState",
    # Implementation
    "CouchbaseConnector",
    "initialize_data_source",
    # Logging
    "logger",
]

__version__ = "0.1.0"
