from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from driver.services.errors import InvalidRequestError, MalformedHeaderError


ACCOUNT_KEY = "account"


class InvalidHeaderEncodingError(MalformedHeaderError):
    pass


class InvalidHeaderPayloadError(MalformedHeaderError):
    pass


@dataclass(frozen=True)
class AWSCredentials:
    """Static AWS credentials taken from a single request. Never persisted."""

    access_key_id: str
    secret_access_key: str

    def as_secrets(self) -> dict[str, Any]:
        return {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
        }

    def __repr__(self) -> str:
        return f"AWSCredentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"


def decode_header(value: str) -> dict[str, Any]:
    """Decode a base64 encoded JSON object, as sent in the Humanitec-Driver-* headers."""

    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidHeaderEncodingError(f"header does not seem to be encoded in base64: {exc}") from exc

    try:
        decoded = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidHeaderPayloadError(f"cannot parse decoded header: {exc}") from exc

    if not isinstance(decoded, dict):
        raise InvalidHeaderPayloadError(
            f"cannot parse decoded header: expected a JSON object, got {type(decoded).__name__}"
        )
    return decoded


def account_to_aws_credentials(account: Any) -> AWSCredentials:
    if not isinstance(account, Mapping):
        raise InvalidRequestError(f'expected "{ACCOUNT_KEY}" to be an object, got {type(account).__name__}')

    access_key_id = account.get("aws_access_key_id")
    if not isinstance(access_key_id, str):
        raise InvalidRequestError(
            f'expected "aws_access_key_id" to be string, got {type(access_key_id).__name__}'
        )

    secret_access_key = account.get("aws_secret_access_key")
    if not isinstance(secret_access_key, str):
        raise InvalidRequestError(
            f'expected "aws_secret_access_key" to be string, got {type(secret_access_key).__name__}'
        )

    return AWSCredentials(access_key_id=access_key_id, secret_access_key=secret_access_key)


def credentials_from_secrets(secrets: Mapping[str, Any]) -> AWSCredentials:
    if ACCOUNT_KEY not in secrets:
        raise InvalidRequestError(f'"{ACCOUNT_KEY}" property in driver_secrets is missing')
    return account_to_aws_credentials(secrets[ACCOUNT_KEY])
