"""Tests for ResourceProvisioner: idempotency, secrets handling, type dispatch."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from driver.services.errors import (
    AWSClientError,
    InvalidRequestError,
    MalformedHeaderError,
    ResourceDeleteError,
    ResourceNotFoundError,
    UnsupportedResourceTypeError,
)
from driver.services.metadata_store import ResourceMetadata
from driver.services.provisioner import ResourceProvisioner, is_valid_resource_id
from driver.services.resource_types import S3BucketType

from helpers import REGION, account, encode_header

S3_PARAMS = {"region": REGION}
REDIS_PARAMS = {"region": REGION, "cache_node_type": "cache.t3.micro", "cache_az": "eu-west-1a"}


def _secrets(**kwargs):
    return {"account": account(**kwargs)}


async def _create(provisioner, resource_id="test-db-id", resource_type="s3", params=None, secrets=None):
    return await provisioner.create_or_update(
        resource_id=resource_id,
        resource_type=resource_type,
        driver_params=S3_PARAMS if params is None else params,
        driver_secrets=secrets or _secrets(),
    )


# ─── Resource IDs ────────────────────────────────────────────────────


@pytest.mark.parametrize("resource_id", ["valid-id", "01-valid-id-2", "jahgsdo87iq28ui3hdgkuyqxl3", "abc"])
def test_valid_ids(resource_id):
    assert is_valid_resource_id(resource_id)


@pytest.mark.parametrize(
    "resource_id",
    ["-invalid-id", "invalid-id-", "Invalid ID", "", "a", "ab", "UPPER-case", "valid-id\n", "\nvalid-id"],
)
def test_invalid_ids(resource_id):
    assert not is_valid_resource_id(resource_id)


# ─── Create ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_s3_bucket(provisioner, store, aws_calls, aws_clients):
    data = await _create(provisioner)

    assert data.type == "s3"
    assert data.driver_type == "aws"
    assert data.data.values["region"] == REGION
    bucket = data.data.values["bucket"]
    assert aws_calls == [("create_bucket", (bucket,))]
    assert data.data.secrets == account()

    creds, region, timeout = aws_clients[0]
    assert creds.access_key_id == account()["aws_access_key_id"]
    assert region == REGION
    assert timeout == 300

    record = store.rows["test-db-id"]
    assert record.type == "s3"
    assert record.params == S3_PARAMS
    assert record.data == {"region": REGION, "bucket": bucket}
    assert record.deleted_at is None


@pytest.mark.asyncio
async def test_create_redis_cluster(provisioner, store, aws_calls):
    data = await _create(provisioner, resource_type="redis", params=REDIS_PARAMS)

    values = data.data.values
    cluster_id = values["cluster_id"]
    assert cluster_id.startswith("redis-")
    assert len(cluster_id) <= 40
    assert values["host"] == f"{cluster_id}.{REGION}"
    assert values["port"] == 6379
    assert aws_calls == [("create_cache_cluster", (cluster_id, "cache.t3.micro", "eu-west-1a"))]
    assert store.rows["test-db-id"].data == values


@pytest.mark.asyncio
async def test_create_twice_provisions_once(provisioner, store, aws_calls):
    first = await _create(provisioner)
    second = await _create(provisioner)

    assert first.data.values == second.data.values
    assert len(aws_calls) == 1
    assert len(store.writes) == 1


@pytest.mark.asyncio
async def test_repeat_create_derives_secrets_from_current_request(provisioner, aws_calls):
    first = await _create(provisioner, secrets=_secrets(access_key_id="key-1", secret_access_key="secret-1"))
    second = await _create(provisioner, secrets=_secrets(access_key_id="key-2", secret_access_key="secret-2"))

    assert first.data.values == second.data.values
    assert first.data.secrets == account("key-1", "secret-1")
    assert second.data.secrets == account("key-2", "secret-2")
    assert len(aws_calls) == 1


@pytest.mark.asyncio
async def test_secrets_are_not_persisted(provisioner, store):
    await _create(provisioner, secrets=_secrets(access_key_id="AKIA-persist-check", secret_access_key="s3cr3t"))

    record = store.rows["test-db-id"]
    stored = repr(record.params) + repr(record.data)
    assert "AKIA-persist-check" not in stored
    assert "s3cr3t" not in stored


@pytest.mark.asyncio
async def test_existing_record_returns_stored_type_and_values(provisioner, store, aws_calls):
    now = datetime(2020, 7, 16, 18, 12, 20)
    store.insert_or_update(
        ResourceMetadata(
            id="test-db-id",
            type="s3",
            created_at=now,
            updated_at=now,
            params=S3_PARAMS,
            data={"region": REGION, "bucket": "my-s3-bucket"},
        )
    )

    data = await _create(provisioner, resource_type="redis", params=REDIS_PARAMS)

    assert data.type == "s3"
    assert data.data.values == {"region": REGION, "bucket": "my-s3-bucket"}
    assert aws_calls == []


@pytest.mark.asyncio
async def test_unsupported_type_has_no_side_effects(provisioner, store, aws_calls):
    with pytest.raises(UnsupportedResourceTypeError, match='Type "unknown" not supported'):
        await _create(provisioner, resource_type="unknown")

    assert store.writes == []
    assert aws_calls == []


@pytest.mark.asyncio
async def test_missing_account_is_rejected_before_any_call(provisioner, store, aws_calls):
    with pytest.raises(InvalidRequestError, match='"account"'):
        await _create(provisioner, secrets={"not-account": {}})
    assert store.writes == []
    assert aws_calls == []


@pytest.mark.asyncio
async def test_malformed_account_is_rejected(provisioner):
    with pytest.raises(InvalidRequestError, match="aws_secret_access_key"):
        await _create(provisioner, secrets={"account": {"aws_access_key_id": "k"}})


@pytest.mark.asyncio
@pytest.mark.parametrize("resource_id", ["Invalid ID", "test-db-id\n"])
async def test_invalid_resource_id_is_rejected(provisioner, store, aws_calls, resource_id):
    with pytest.raises(InvalidRequestError):
        await _create(provisioner, resource_id=resource_id)
    assert aws_calls == []
    assert store.writes == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "resource_type, params, missing",
    [
        ("s3", {}, "region"),
        ("redis", {"region": REGION, "cache_az": "eu-west-1a"}, "cache_node_type"),
        ("redis", {"region": REGION, "cache_node_type": "cache.t3.micro"}, "cache_az"),
        ("redis", {"cache_node_type": "cache.t3.micro", "cache_az": "eu-west-1a"}, "region"),
    ],
)
async def test_missing_driver_params_are_client_errors(provisioner, store, resource_type, params, missing):
    with pytest.raises(InvalidRequestError, match=missing):
        await _create(provisioner, resource_type=resource_type, params=params)
    assert store.writes == []


@pytest.mark.asyncio
async def test_provider_failure_persists_nothing(store):
    failing = AsyncMock()
    failing.create_bucket.side_effect = AWSClientError("quota exceeded")
    provisioner = ResourceProvisioner(
        store=store,
        aws_client_factory=lambda creds, region, timeout: failing,
        timeout_limit=300,
    )

    with pytest.raises(AWSClientError, match="quota exceeded"):
        await _create(provisioner)
    assert store.rows == {}


# ─── Delete ──────────────────────────────────────────────────────────


async def _delete(provisioner, resource_id="test-db-id", params=None, secrets=None):
    return await provisioner.delete(
        resource_id=resource_id,
        driver_params_header=params,
        driver_secrets_header=secrets if secrets is not None else encode_header(_secrets()),
    )


@pytest.mark.asyncio
async def test_delete_s3_bucket_uses_stored_identifiers(provisioner, store, aws_calls, aws_clients):
    created = await _create(provisioner)
    bucket = created.data.values["bucket"]

    await _delete(provisioner)

    assert aws_calls[-1] == ("delete_bucket", (bucket,))
    assert aws_clients[-1][1] == REGION
    assert store.rows["test-db-id"].deleted_at is not None


@pytest.mark.asyncio
async def test_delete_dispatches_by_stored_type(provisioner, store, aws_calls):
    created = await _create(provisioner, resource_type="redis", params=REDIS_PARAMS)
    cluster_id = created.data.values["cluster_id"]

    await _delete(provisioner, params=encode_header({"region": REGION}))

    assert aws_calls[-1] == ("delete_cache_cluster", (cluster_id,))
    assert not any(name == "delete_bucket" for name, _ in aws_calls)
    assert store.select("test-db-id") is None


@pytest.mark.asyncio
async def test_delete_redis_requires_params_header(provisioner, store, aws_calls):
    await _create(provisioner, resource_type="redis", params=REDIS_PARAMS)

    with pytest.raises(InvalidRequestError, match="Humanitec-Driver-Params"):
        await _delete(provisioner)
    assert store.select("test-db-id") is not None
    assert len(aws_calls) == 1


@pytest.mark.asyncio
async def test_second_delete_is_not_found(provisioner):
    await _create(provisioner)
    await _delete(provisioner)

    with pytest.raises(ResourceNotFoundError):
        await _delete(provisioner)


@pytest.mark.asyncio
async def test_create_after_delete_is_a_fresh_creation(store, aws_client_factory, aws_calls):
    times = iter(
        [
            datetime(2024, 1, 1, tzinfo=timezone.utc),
            datetime(2024, 1, 2, tzinfo=timezone.utc),
            datetime(2024, 1, 3, tzinfo=timezone.utc),
        ]
    )
    provisioner = ResourceProvisioner(
        store=store,
        aws_client_factory=aws_client_factory,
        timeout_limit=300,
        clock=lambda: next(times),
    )

    first = await _create(provisioner)
    await _delete(provisioner)
    second = await _create(provisioner)

    assert first.data.values["bucket"] != second.data.values["bucket"]
    assert [name for name, _ in aws_calls] == ["create_bucket", "delete_bucket", "create_bucket"]
    record = store.rows["test-db-id"]
    assert record.deleted_at is None
    assert record.created_at == datetime(2024, 1, 3, tzinfo=timezone.utc)


@pytest.mark.asyncio
@pytest.mark.parametrize("resource_id", ["-invalid-id", "Invalid ID", "a", "test-db-id\n"])
async def test_delete_malformed_id_is_not_found(provisioner, resource_id):
    with pytest.raises(ResourceNotFoundError):
        await _delete(provisioner, resource_id=resource_id)


@pytest.mark.asyncio
async def test_delete_unknown_id_is_not_found(provisioner, aws_calls):
    with pytest.raises(ResourceNotFoundError, match="unknown-id"):
        await _delete(provisioner, resource_id="unknown-id")
    assert aws_calls == []


@pytest.mark.asyncio
async def test_delete_requires_secrets_header(provisioner):
    with pytest.raises(InvalidRequestError, match="Missing HTTP header"):
        await _delete(provisioner, secrets="")


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["not base64!", encode_header(["list"])])
async def test_delete_rejects_malformed_secrets_header(provisioner, header):
    with pytest.raises(MalformedHeaderError, match="Humanitec-Driver-Secrets"):
        await _delete(provisioner, secrets=header)


@pytest.mark.asyncio
async def test_delete_rejects_malformed_params_header(provisioner):
    await _create(provisioner)
    with pytest.raises(MalformedHeaderError, match="Humanitec-Driver-Params"):
        await _delete(provisioner, params="%%%")


@pytest.mark.asyncio
async def test_delete_requires_account_in_secrets(provisioner):
    with pytest.raises(InvalidRequestError, match='"account"'):
        await _delete(provisioner, secrets=encode_header({"foo": "bar"}))


@pytest.mark.asyncio
async def test_provider_failure_on_delete_keeps_record(store, aws_client_factory):
    provisioner = ResourceProvisioner(store=store, aws_client_factory=aws_client_factory, timeout_limit=300)
    await _create(provisioner)

    failing = AsyncMock()
    failing.delete_bucket.side_effect = AWSClientError("BucketNotEmpty")
    failing_provisioner = ResourceProvisioner(
        store=store,
        aws_client_factory=lambda creds, region, timeout: failing,
        timeout_limit=300,
    )

    with pytest.raises(ResourceDeleteError, match="BucketNotEmpty"):
        await _delete(failing_provisioner)
    assert store.select("test-db-id") is not None

    # A retry through a working client succeeds.
    await _delete(provisioner)
    assert store.select("test-db-id") is None


@pytest.mark.asyncio
async def test_delete_of_unsupported_stored_type(store, aws_client_factory):
    now = datetime(2020, 7, 16, 18, 12, 20)
    store.insert_or_update(ResourceMetadata(id="legacy-id", type="postgres", created_at=now, updated_at=now))
    provisioner = ResourceProvisioner(store=store, aws_client_factory=aws_client_factory, timeout_limit=300)

    with pytest.raises(UnsupportedResourceTypeError):
        await _delete(provisioner, resource_id="legacy-id")
    assert store.select("legacy-id") is not None


def test_only_s3_and_redis_are_registered(provisioner):
    assert sorted(provisioner._resource_types) == ["redis", "s3"]
    assert isinstance(provisioner._resource_types["s3"], S3BucketType)
