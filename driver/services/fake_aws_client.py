from __future__ import annotations

from typing import Any, Optional

from driver.services.aws_client import AWSClient
from driver.services.secrets import AWSCredentials


class FakeAWSClient(AWSClient):
    """Deterministic stand-in for AWS. Makes no network calls.

    Bucket creation echoes the region, cache creation echoes
    "<cluster_id>.<region>". Every call is appended to `calls` as
    ``(method_name, args)`` so callers can inspect what was requested.
    """

    def __init__(
        self,
        *,
        credentials: AWSCredentials,
        region_name: str,
        timeout_limit: int,
        calls: Optional[list[tuple[str, tuple[Any, ...]]]] = None,
    ) -> None:
        super().__init__(credentials=credentials, region_name=region_name, timeout_limit=timeout_limit)
        self.calls = calls if calls is not None else []

    @classmethod
    def create(cls, credentials: AWSCredentials, region_name: str, timeout_limit: int) -> "FakeAWSClient":
        return cls(credentials=credentials, region_name=region_name, timeout_limit=timeout_limit)

    async def create_bucket(self, bucket_name: str) -> str:
        self.calls.append(("create_bucket", (bucket_name,)))
        return self._region_name

    async def delete_bucket(self, bucket_name: str) -> None:
        self.calls.append(("delete_bucket", (bucket_name,)))

    async def create_cache_cluster(self, cluster_id: str, cache_node_type: str, cache_az: str) -> str:
        self.calls.append(("create_cache_cluster", (cluster_id, cache_node_type, cache_az)))
        return f"{cluster_id}.{self._region_name}"

    async def delete_cache_cluster(self, cluster_id: str) -> None:
        self.calls.append(("delete_cache_cluster", (cluster_id,)))
