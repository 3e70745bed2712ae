# src/couchbase_connector/base/settings.py

import logging
from typing import Any, Dict, Mapping, Optional, Union

from couchbase.auth import PasswordAuthenticator
from couchbase.options import ClusterOptions
from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)

DEFAULT_CLUSTER_URL = "couchbase://127.0.0.1"
DEFAULT_BUCKET_NAME = "default"


class ClusterSettings(BaseModel):
    """Where the cluster lives and how to open it."""

    model_config = ConfigDict(frozen=True)

    url: str = DEFAULT_CLUSTER_URL
    options: Dict[str, Any] = Field(default_factory=dict)


class BucketSettings(BaseModel):
    """The bucket to open and its credential."""

    model_config = ConfigDict(frozen=True)

    name: str = DEFAULT_BUCKET_NAME
    password: str = ""


class ConnectorSettings(BaseModel):
    """
    Immutable connector settings, shaped like the data source settings the
    ORM hands over: ``{"cluster": {"url", "options"}, "bucket": {"name", "password"}}``.
    """

    model_config = ConfigDict(frozen=True)

    cluster: ClusterSettings = Field(default_factory=ClusterSettings)
    bucket: BucketSettings = Field(default_factory=BucketSettings)

    @classmethod
    def from_dict(
        cls, raw: Union["ConnectorSettings", Mapping[str, Any], None] = None
    ) -> "ConnectorSettings":
        """
        Build settings from a raw data source mapping, filling defaults for
        every section or value that is absent or None.
        """
        if isinstance(raw, ConnectorSettings):
            return raw
        raw = raw or {}

        cluster_raw = _drop_none(raw.get("cluster"))
        if "url" not in cluster_raw:
            log.debug("Cluster URL settings missing; trying default")
        bucket_raw = _drop_none(raw.get("bucket"))
        if "name" not in bucket_raw:
            log.debug("Bucket name settings missing; trying default")

        return cls(
            cluster=ClusterSettings(**cluster_raw),
            bucket=BucketSettings(**bucket_raw),
        )

    def cluster_options(self) -> ClusterOptions:
        """
        Build the SDK ClusterOptions. Credentials default to the bucket name
        and bucket password unless the cluster options carry their own
        ``username``/``password``.
        """
        extra = dict(self.cluster.options)
        username = extra.pop("username", None) or self.bucket.name
        password = extra.pop("password", None)
        if password is None:
            password = self.bucket.password
        return ClusterOptions(PasswordAuthenticator(username, password), **extra)


def _drop_none(section: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not section:
        return {}
    return {k: v for k, v in section.items() if v is not None}
