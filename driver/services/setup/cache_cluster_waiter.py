from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from driver.services.errors import AWSClientError, CacheClusterTimeoutError


logger = logging.getLogger(__name__)

DescribeCacheCluster = Callable[[str], Awaitable[dict[str, Any]]]
Sleep = Callable[[float], Awaitable[Any]]


def ready_endpoint_address(description: dict[str, Any]) -> Optional[str]:
    """Return the endpoint address once the cluster can be handed out, else None.

    `description` is a DescribeCacheClusters response (with ShowCacheNodeInfo).
    Ready means: cluster "available", at least one node, first node "available",
    and that node publishes an endpoint address.
    """

    clusters = description.get("CacheClusters") or []
    if not clusters:
        return None
    cluster = clusters[0]
    if cluster.get("CacheClusterStatus") != "available":
        return None

    nodes = cluster.get("CacheNodes") or []
    if not nodes:
        logger.debug("Cluster %s is available but has no nodes yet", cluster.get("CacheClusterId"))
        return None
    node = nodes[0]
    if node.get("CacheNodeStatus") != "available":
        return None

    endpoint = node.get("Endpoint") or {}
    return endpoint.get("Address") or None


class CacheClusterWaiter:
    """Bounded polling for an ElastiCache cluster to become available.

    The budget is `timeout_limit // POLL_INTERVAL_SECONDS` describe calls, each
    preceded by a sleep of one interval. At least one call is always made.
    """

    POLL_INTERVAL_SECONDS: int = 10

    def __init__(self, *, describe: DescribeCacheCluster, timeout_limit: int, sleep: Sleep = asyncio.sleep) -> None:
        self._describe = describe
        self._timeout_limit = timeout_limit
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return max(self._timeout_limit // self.POLL_INTERVAL_SECONDS, 1)

    async def wait_for_endpoint(self, cluster_id: str) -> str:
        remaining = self.max_attempts
        while True:
            await self._sleep(self.POLL_INTERVAL_SECONDS)
            remaining -= 1

            logger.info("Describing ElastiCache cluster %s (%d attempts left)", cluster_id, remaining)
            try:
                description = await self._describe(cluster_id)
            except AWSClientError:
                raise
            except Exception as exc:
                logger.exception("Describing ElastiCache cluster %s failed", cluster_id)
                raise AWSClientError(f'describing Elasticache cluster "{cluster_id}": {exc}') from exc

            address = ready_endpoint_address(description)
            if address:
                logger.info("Endpoint retrieved for %s: %s", cluster_id, address)
                return address

            if remaining <= 0:
                raise CacheClusterTimeoutError(cluster_id, self._timeout_limit)
