from __future__ import annotations


class DriverError(RuntimeError):
    pass


class InvalidRequestError(DriverError):
    """The caller sent something we cannot act on. Mapped to 400."""


class MalformedHeaderError(InvalidRequestError):
    pass


class UnsupportedResourceTypeError(InvalidRequestError):
    def __init__(self, resource_type: str) -> None:
        super().__init__(f'Type "{resource_type}" not supported by this driver.')
        self.resource_type = resource_type


class ResourceDeleteError(InvalidRequestError):
    pass


class ResourceNotFoundError(DriverError):
    def __init__(self, resource_id: str) -> None:
        super().__init__(f"Resource not found: {resource_id}")
        self.resource_id = resource_id


class AWSClientError(DriverError):
    pass


class BucketAlreadyExistsError(AWSClientError):
    pass


class CacheClusterTimeoutError(AWSClientError):
    def __init__(self, cluster_id: str, timeout_limit: int) -> None:
        super().__init__(
            f'Fetching endpoint failed. Cluster "{cluster_id}" not available after {timeout_limit} seconds'
        )
        self.cluster_id = cluster_id
        self.timeout_limit = timeout_limit


class MetadataStoreError(DriverError):
    pass
