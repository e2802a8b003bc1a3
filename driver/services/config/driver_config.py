from __future__ import annotations

import os
from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class DriverConfig:
    """Process-wide runtime configuration for the driver.

    `timeout_limit` is the budget (in seconds) a single request may spend waiting
    for an asynchronously created AWS resource to become available.
    """

    _DEFAULT_PORT: ClassVar[int] = 8080
    _DEFAULT_TIMEOUT_LIMIT: ClassVar[int] = 300

    port: int = _DEFAULT_PORT
    timeout_limit: int = _DEFAULT_TIMEOUT_LIMIT
    use_fake_aws_client: bool = False
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "DriverConfig":
        port_raw = os.getenv("PORT")
        port = DriverConfig._DEFAULT_PORT
        if port_raw:
            try:
                port = int(port_raw)
            except ValueError:
                raise ValueError("Invalid PORT; must be an integer")

        timeout_raw = os.getenv("TIMEOUT_LIMIT")
        timeout_limit = DriverConfig._DEFAULT_TIMEOUT_LIMIT
        if timeout_raw:
            try:
                timeout_limit = int(timeout_raw)
            except ValueError:
                raise ValueError(f'Unable to set timeout limit to "{timeout_raw}"')
            if timeout_limit <= 0:
                raise ValueError(f'Unable to set timeout limit to "{timeout_raw}"')

        return DriverConfig(
            port=port,
            timeout_limit=timeout_limit,
            use_fake_aws_client=bool(os.getenv("USE_FAKE_AWS_CLIENT")),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )
