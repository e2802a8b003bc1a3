from __future__ import annotations

import abc
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, Optional

from driver.services.aws_client import REDIS_PORT, AWSClient
from driver.services.errors import InvalidRequestError, ResourceDeleteError
from driver.services.metadata_store import ResourceMetadata


logger = logging.getLogger(__name__)

ClientForRegion = Callable[[str], AWSClient]


def require_string_param(params: Mapping[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRequestError(
            f'"{key}" property in driver_params: expected string, got {type(value).__name__}'
        )
    return value


class ResourceType(abc.ABC):
    """How one kind of AWS resource is created and torn down."""

    name: ClassVar[str]
    # Delete needs the caller's driver params (Humanitec-Driver-Params header).
    requires_driver_params_on_delete: ClassVar[bool] = False

    @abc.abstractmethod
    async def create(self, client_for: ClientForRegion, driver_params: Mapping[str, Any]) -> dict[str, Any]:
        """Provision the resource and return the values to persist and hand back."""

    @abc.abstractmethod
    async def delete(
        self,
        client_for: ClientForRegion,
        record: ResourceMetadata,
        driver_params: Optional[Mapping[str, Any]],
    ) -> None:
        ...


class S3BucketType(ResourceType):
    name = "s3"

    async def create(self, client_for: ClientForRegion, driver_params: Mapping[str, Any]) -> dict[str, Any]:
        region = require_string_param(driver_params, "region")
        bucket_name = str(uuid.uuid4())

        location = await client_for(region).create_bucket(bucket_name)
        logger.info('Created s3 bucket "%s" in %s', bucket_name, location)
        return {"region": location, "bucket": bucket_name}

    async def delete(
        self,
        client_for: ClientForRegion,
        record: ResourceMetadata,
        driver_params: Optional[Mapping[str, Any]],
    ) -> None:
        bucket_name = record.data.get("bucket")
        region = record.params.get("region")
        if not isinstance(bucket_name, str) or not isinstance(region, str):
            raise ResourceDeleteError(f'Stored metadata for "{record.id}" has no bucket name or region')

        await client_for(region).delete_bucket(bucket_name)


class RedisClusterType(ResourceType):
    name = "redis"
    requires_driver_params_on_delete = True

    @staticmethod
    def new_cluster_id() -> str:
        # ElastiCache cluster ids are at most 40 characters.
        return f"redis-{uuid.uuid4().hex[:16]}"

    async def create(self, client_for: ClientForRegion, driver_params: Mapping[str, Any]) -> dict[str, Any]:
        region = require_string_param(driver_params, "region")
        cache_node_type = require_string_param(driver_params, "cache_node_type")
        cache_az = require_string_param(driver_params, "cache_az")
        cluster_id = self.new_cluster_id()

        logger.info('Creating ElastiCache cluster "%s" (%s in %s)', cluster_id, cache_node_type, cache_az)
        host = await client_for(region).create_cache_cluster(cluster_id, cache_node_type, cache_az)
        return {"host": host, "port": REDIS_PORT, "cluster_id": cluster_id}

    async def delete(
        self,
        client_for: ClientForRegion,
        record: ResourceMetadata,
        driver_params: Optional[Mapping[str, Any]],
    ) -> None:
        region = require_string_param(driver_params or {}, "region")
        cluster_id = record.data.get("cluster_id")
        if not isinstance(cluster_id, str):
            raise ResourceDeleteError(f'Stored metadata for "{record.id}" has no cluster id')

        await client_for(region).delete_cache_cluster(cluster_id)


RESOURCE_TYPES: dict[str, ResourceType] = {t.name: t for t in (S3BucketType(), RedisClusterType())}
