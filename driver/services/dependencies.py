from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI, Request

from driver.services.aws_client import AioBotoAWSClient, AWSClientFactory
from driver.services.config import DriverConfig
from driver.services.fake_aws_client import FakeAWSClient
from driver.services.metadata_store import MetadataStore
from driver.services.provisioner import ResourceProvisioner


@lru_cache(maxsize=1)
def get_driver_config() -> DriverConfig:
    """Dependency provider for the process configuration (read once)."""

    return DriverConfig.from_env()


def get_aws_client_factory(config: DriverConfig = Depends(get_driver_config)) -> AWSClientFactory:
    """Select the real or the fake AWS client for this process."""

    if config.use_fake_aws_client:
        return FakeAWSClient.create
    return AioBotoAWSClient.create


def get_metadata_store_from_app(app: FastAPI) -> MetadataStore:
    store = getattr(app.state, "metadata_store", None)
    if store is None:
        raise RuntimeError("Metadata store not initialized (app.state.metadata_store)")
    return store


def get_metadata_store(request: Request) -> MetadataStore:
    return get_metadata_store_from_app(request.app)


def get_resource_provisioner(
    store: MetadataStore = Depends(get_metadata_store),
    aws_client_factory: AWSClientFactory = Depends(get_aws_client_factory),
    config: DriverConfig = Depends(get_driver_config),
) -> ResourceProvisioner:
    return ResourceProvisioner(
        store=store,
        aws_client_factory=aws_client_factory,
        timeout_limit=config.timeout_limit,
    )
