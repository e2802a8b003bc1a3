from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Optional

from starlette.concurrency import run_in_threadpool

from driver.models.resources import ResourceData, ValuesSecrets
from driver.services.aws_client import AWSClient, AWSClientFactory
from driver.services.errors import (
    AWSClientError,
    InvalidRequestError,
    MalformedHeaderError,
    ResourceDeleteError,
    ResourceNotFoundError,
    UnsupportedResourceTypeError,
)
from driver.services.metadata_store import MetadataStore, ResourceMetadata
from driver.services.resource_types import RESOURCE_TYPES, ResourceType
from driver.services.secrets import AWSCredentials, credentials_from_secrets, decode_header


logger = logging.getLogger(__name__)

DRIVER_TYPE = "aws"
SECRETS_HEADER = "Humanitec-Driver-Secrets"
PARAMS_HEADER = "Humanitec-Driver-Params"

_VALID_ID = re.compile(r"^[a-z0-9][a-z0-9-]+[a-z0-9]$")


def is_valid_resource_id(resource_id: str) -> bool:
    return _VALID_ID.fullmatch(resource_id) is not None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceProvisioner:
    """Coordinates create-or-update and delete requests for driver resources.

    Responsibilities:
    - Answer repeat creates for a known ID from the metadata store, with no AWS call.
    - Provision unknown IDs through the AWS client, then record the result.
    - Derive response secrets from the current request's credentials only.
    - Tear resources down by their stored type and soft-delete the record.
    """

    def __init__(
        self,
        *,
        store: MetadataStore,
        aws_client_factory: AWSClientFactory,
        timeout_limit: int,
        resource_types: Optional[Mapping[str, ResourceType]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._aws_client_factory = aws_client_factory
        self._timeout_limit = timeout_limit
        self._resource_types = dict(resource_types or RESOURCE_TYPES)
        self._clock = clock

    def _client_for(self, credentials: AWSCredentials) -> Callable[[str], AWSClient]:
        def build(region_name: str) -> AWSClient:
            return self._aws_client_factory(credentials, region_name, self._timeout_limit)

        return build

    def _resource_type(self, name: str) -> ResourceType:
        resource_type = self._resource_types.get(name)
        if resource_type is None:
            logger.warning('Type "%s" not supported by this driver.', name)
            raise UnsupportedResourceTypeError(name)
        return resource_type

    async def create_or_update(
        self,
        *,
        resource_id: str,
        resource_type: str,
        driver_params: Mapping[str, Any],
        driver_secrets: Mapping[str, Any],
    ) -> ResourceData:
        if not is_valid_resource_id(resource_id):
            raise InvalidRequestError(f"Invalid resource id: {resource_id!r}")

        credentials = credentials_from_secrets(driver_secrets)

        metadata = await run_in_threadpool(self._store.select, resource_id)
        if metadata is not None:
            logger.info('Resource "%s" already provisioned as %s', resource_id, metadata.type)
            values = metadata.data
        else:
            handler = self._resource_type(resource_type)
            try:
                values = await handler.create(self._client_for(credentials), driver_params)
            except AWSClientError:
                logger.exception('Provisioning %s resource "%s" failed', resource_type, resource_id)
                raise

            now = self._clock()
            metadata = ResourceMetadata(
                id=resource_id,
                type=handler.name,
                created_at=now,
                updated_at=now,
                params=dict(driver_params),
                data=values,
            )
            await run_in_threadpool(self._store.insert_or_update, metadata)

        return ResourceData(
            type=metadata.type,
            data=ValuesSecrets(values=values, secrets=credentials.as_secrets()),
            driver_type=DRIVER_TYPE,
        )

    async def delete(
        self,
        *,
        resource_id: str,
        driver_params_header: Optional[str],
        driver_secrets_header: Optional[str],
    ) -> None:
        # Malformed ids are reported exactly like unknown ones.
        if not is_valid_resource_id(resource_id):
            raise ResourceNotFoundError(resource_id)

        if not driver_secrets_header:
            raise InvalidRequestError(f'Missing HTTP header "{SECRETS_HEADER}"')
        try:
            secrets = decode_header(driver_secrets_header)
        except MalformedHeaderError as exc:
            logger.warning('Unable to decode "%s" header: %s', SECRETS_HEADER, exc)
            raise MalformedHeaderError(f'Malformed HTTP header "{SECRETS_HEADER}"') from exc
        credentials = credentials_from_secrets(secrets)

        driver_params: Optional[dict[str, Any]] = None
        if driver_params_header:
            try:
                driver_params = decode_header(driver_params_header)
            except MalformedHeaderError as exc:
                logger.warning('Unable to decode "%s" header: %s', PARAMS_HEADER, exc)
                raise MalformedHeaderError(f'Malformed HTTP header "{PARAMS_HEADER}"') from exc

        metadata = await run_in_threadpool(self._store.select, resource_id)
        if metadata is None:
            raise ResourceNotFoundError(resource_id)

        handler = self._resource_type(metadata.type)
        if handler.requires_driver_params_on_delete and driver_params is None:
            raise InvalidRequestError(f'Missing HTTP header "{PARAMS_HEADER}"')

        try:
            await handler.delete(self._client_for(credentials), metadata, driver_params)
        except AWSClientError as exc:
            logger.warning('Error deleting %s resource "%s": %s', metadata.type, resource_id, exc)
            raise ResourceDeleteError(f'Error deleting {metadata.type} resource "{resource_id}": {exc}') from exc

        await run_in_threadpool(self._store.soft_delete, resource_id, self._clock())
        logger.info('Resource "%s" deleted', resource_id)
