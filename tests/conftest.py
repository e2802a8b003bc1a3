"""
Shared fixtures for the driver test suite.

Provides an in-memory metadata store, a recording fake AWS client factory,
and an async HTTP client wrapping the FastAPI app via ASGITransport.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from driver.main import app
from driver.services.config import DriverConfig
from driver.services.dependencies import get_aws_client_factory, get_driver_config, get_metadata_store
from driver.services.errors import ResourceNotFoundError
from driver.services.fake_aws_client import FakeAWSClient
from driver.services.metadata_store import ResourceMetadata
from driver.services.provisioner import ResourceProvisioner


class InMemoryMetadataStore:
    """Dict-backed store with the same soft-delete semantics as the PostgreSQL one."""

    def __init__(self) -> None:
        self.rows: dict[str, ResourceMetadata] = {}
        self.writes: list[ResourceMetadata] = []

    def select(self, resource_id: str) -> Optional[ResourceMetadata]:
        row = self.rows.get(resource_id)
        if row is None or row.deleted_at is not None:
            return None
        return replace(row)

    def insert_or_update(self, metadata: ResourceMetadata) -> None:
        self.writes.append(metadata)
        self.rows[metadata.id] = replace(metadata, deleted_at=None)

    def soft_delete(self, resource_id: str, deleted_at: datetime) -> None:
        row = self.rows.get(resource_id)
        if row is None or row.deleted_at is not None:
            raise ResourceNotFoundError(resource_id)
        self.rows[resource_id] = replace(row, deleted_at=deleted_at, updated_at=deleted_at)


@pytest.fixture
def store():
    return InMemoryMetadataStore()


@pytest.fixture
def aws_calls():
    """Every call made on any FakeAWSClient built by `aws_client_factory`."""
    return []


@pytest.fixture
def aws_clients():
    """(credentials, region_name, timeout_limit) for every client built."""
    return []


@pytest.fixture
def aws_client_factory(aws_calls, aws_clients):
    def factory(credentials, region_name, timeout_limit):
        aws_clients.append((credentials, region_name, timeout_limit))
        return FakeAWSClient(
            credentials=credentials,
            region_name=region_name,
            timeout_limit=timeout_limit,
            calls=aws_calls,
        )

    return factory


@pytest.fixture
def provisioner(store, aws_client_factory):
    return ResourceProvisioner(store=store, aws_client_factory=aws_client_factory, timeout_limit=300)


@pytest_asyncio.fixture
async def test_client(store, aws_client_factory):
    """Async HTTP client wrapping the driver app, with store and AWS swapped for fakes."""
    app.dependency_overrides[get_metadata_store] = lambda: store
    app.dependency_overrides[get_aws_client_factory] = lambda: aws_client_factory
    app.dependency_overrides[get_driver_config] = lambda: DriverConfig(timeout_limit=300)

    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
