from typing import Optional


class ObjectNotFoundException(Exception):
    """Exception raised when a document with the specified key does not exist."""

    def __init__(
        self,
        message: str = "The requested object was not found.",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.cause = cause


class KeyAlreadyExistsException(Exception):
    """Exception raised when trying to insert a document whose key is already taken."""

    def __init__(
        self,
        message: str = "An object with the same key already exists.",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.cause = cause


class ConnectionFailureException(Exception):
    """Exception raised when the cluster or bucket could not be opened."""

    def __init__(
        self,
        message: str = "Could not connect to the Couchbase cluster.",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.cause = cause


class UpstreamFailureException(Exception):
    """Exception raised for any other error reported by the store client."""

    def __init__(
        self,
        message: str = "The store reported an unexpected error.",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.cause = cause
