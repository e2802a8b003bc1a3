from __future__ import annotations

import abc
import logging
from collections.abc import Callable
from typing import Any, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from driver.services.errors import AWSClientError, BucketAlreadyExistsError
from driver.services.secrets import AWSCredentials
from driver.services.setup.cache_cluster_waiter import CacheClusterWaiter, Sleep


logger = logging.getLogger(__name__)

# Fixed topology for every cluster this driver creates.
REDIS_ENGINE = "redis"
REDIS_ENGINE_VERSION = "5.0.6"
REDIS_PORT = 6379
REDIS_NUM_CACHE_NODES = 1
REDIS_SUBNET_GROUP = "default"
REDIS_SNAPSHOT_RETENTION_DAYS = 7

_BUCKET_EXISTS_CODES = {"BucketAlreadyExists", "BucketAlreadyOwnedByYou"}

_ELASTICACHE_FAULTS = {
    "ReplicationGroupNotFoundFault": "Replication group not found",
    "InvalidReplicationGroupState": "Invalid replication group state",
    "CacheClusterAlreadyExists": "Cache cluster already exists",
    "InsufficientCacheClusterCapacity": "Insufficient cache cluster capacity",
    "CacheSecurityGroupNotFound": "Cache security group not found",
    "CacheSubnetGroupNotFoundFault": "Subnet group not found",
    "ClusterQuotaForCustomerExceeded": "Cluster quota for customer exceeded",
    "NodeQuotaForClusterExceeded": "Quota for cluster exceeded",
    "NodeQuotaForCustomerExceeded": "Node quota for customer exceeded",
    "CacheParameterGroupNotFound": "Cache parameter group not found",
    "InvalidVPCNetworkStateFault": "Invalid VPC network state",
    "TagQuotaPerResourceExceeded": "Tag quota per resource exceeded",
    "InvalidParameterValue": "Invalid parameter value exception",
    "InvalidParameterCombination": "Invalid parameter combination",
}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class AWSClient(abc.ABC):
    """Provisioning capability over one AWS account and region."""

    def __init__(self, *, credentials: AWSCredentials, region_name: str, timeout_limit: int) -> None:
        self._credentials = credentials
        self._region_name = region_name
        self._timeout_limit = timeout_limit

    @property
    def region_name(self) -> str:
        return self._region_name

    @abc.abstractmethod
    async def create_bucket(self, bucket_name: str) -> str:
        """Create a bucket and return the region it is located in.

        Raises:
            BucketAlreadyExistsError: the name is taken, including by this account.
            AWSClientError: for any other AWS failure.
        """

    @abc.abstractmethod
    async def delete_bucket(self, bucket_name: str) -> None:
        """Delete a bucket. The bucket is not emptied first."""

    @abc.abstractmethod
    async def create_cache_cluster(self, cluster_id: str, cache_node_type: str, cache_az: str) -> str:
        """Create a single node Redis cluster and return its endpoint address once available."""

    @abc.abstractmethod
    async def delete_cache_cluster(self, cluster_id: str) -> None:
        ...


AWSClientFactory = Callable[[AWSCredentials, str, int], AWSClient]


class AioBotoAWSClient(AWSClient):
    def __init__(
        self,
        *,
        credentials: AWSCredentials,
        region_name: str,
        timeout_limit: int,
        session: Any = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        super().__init__(credentials=credentials, region_name=region_name, timeout_limit=timeout_limit)
        self._session = session or aioboto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            region_name=region_name,
        )
        self._sleep = sleep

    @classmethod
    def create(cls, credentials: AWSCredentials, region_name: str, timeout_limit: int) -> "AioBotoAWSClient":
        return cls(credentials=credentials, region_name=region_name, timeout_limit=timeout_limit)

    def _client(self, service_name: str) -> Any:
        return self._session.client(service_name, region_name=self._region_name)

    async def create_bucket(self, bucket_name: str) -> str:
        kwargs: dict[str, Any] = {"Bucket": bucket_name}
        # us-east-1 is the default location and rejects an explicit constraint.
        if self._region_name != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._region_name}

        try:
            s3_client: Any = self._client("s3")
            async with s3_client as s3:
                await s3.create_bucket(**kwargs)
        except ClientError as exc:
            if _error_code(exc) in _BUCKET_EXISTS_CODES:
                logger.warning('Attempted to create s3 bucket that already exists: "%s"', bucket_name)
                raise BucketAlreadyExistsError(f's3 bucket name already exists "{bucket_name}"') from exc
            logger.exception('Error creating s3 bucket "%s"', bucket_name)
            raise AWSClientError(f'creating s3 bucket "{bucket_name}": {exc}') from exc
        except BotoCoreError as exc:
            logger.exception('Error creating s3 bucket "%s"', bucket_name)
            raise AWSClientError(f'creating s3 bucket "{bucket_name}": {exc}') from exc

        return self._region_name

    async def delete_bucket(self, bucket_name: str) -> None:
        try:
            s3_client: Any = self._client("s3")
            async with s3_client as s3:
                await s3.delete_bucket(Bucket=bucket_name)
        except (ClientError, BotoCoreError) as exc:
            logger.exception('Error deleting s3 bucket "%s"', bucket_name)
            raise AWSClientError(f'deleting s3 bucket "{bucket_name}": {exc}') from exc

    async def create_cache_cluster(self, cluster_id: str, cache_node_type: str, cache_az: str) -> str:
        try:
            elasticache_client: Any = self._client("elasticache")
            async with elasticache_client as elasticache:
                await elasticache.create_cache_cluster(
                    AutoMinorVersionUpgrade=True,
                    CacheClusterId=cluster_id,
                    CacheNodeType=cache_node_type,
                    CacheSubnetGroupName=REDIS_SUBNET_GROUP,
                    Engine=REDIS_ENGINE,
                    EngineVersion=REDIS_ENGINE_VERSION,
                    NumCacheNodes=REDIS_NUM_CACHE_NODES,
                    Port=REDIS_PORT,
                    PreferredAvailabilityZone=cache_az,
                    SnapshotRetentionLimit=REDIS_SNAPSHOT_RETENTION_DAYS,
                )
                logger.info("Cluster %s created. Retrieving hostname.", cluster_id)

                async def describe(cid: str) -> dict[str, Any]:
                    return await elasticache.describe_cache_clusters(CacheClusterId=cid, ShowCacheNodeInfo=True)

                waiter_kwargs: dict[str, Any] = {"describe": describe, "timeout_limit": self._timeout_limit}
                if self._sleep is not None:
                    waiter_kwargs["sleep"] = self._sleep
                return await CacheClusterWaiter(**waiter_kwargs).wait_for_endpoint(cluster_id)
        except ClientError as exc:
            reason = _ELASTICACHE_FAULTS.get(_error_code(exc))
            logger.exception('Error creating Elasticache cluster "%s"', cluster_id)
            if reason:
                raise AWSClientError(f'creating Elasticache cluster "{cluster_id}": {reason}') from exc
            raise AWSClientError(f'creating Elasticache cluster "{cluster_id}": {exc}') from exc
        except BotoCoreError as exc:
            logger.exception('Error creating Elasticache cluster "%s"', cluster_id)
            raise AWSClientError(f'creating Elasticache cluster "{cluster_id}": {exc}') from exc

    async def delete_cache_cluster(self, cluster_id: str) -> None:
        try:
            elasticache_client: Any = self._client("elasticache")
            async with elasticache_client as elasticache:
                await elasticache.delete_cache_cluster(CacheClusterId=cluster_id)
        except (ClientError, BotoCoreError) as exc:
            logger.exception('Error deleting Elasticache redis cluster "%s"', cluster_id)
            raise AWSClientError(f'deleting Elasticache redis cluster "{cluster_id}": {exc}') from exc
