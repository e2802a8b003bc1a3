from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class DriverResourceDefinition(BaseModel):
    id: str = Field(..., description="Resource ID, e.g. 'my-bucket-01'")
    type: str = Field(..., description="Resource type to provision ('s3' or 'redis')")
    resource_params: dict[str, Any] = Field(default_factory=dict)
    driver_params: dict[str, Any] = Field(default_factory=dict)
    driver_secrets: dict[str, Any] = Field(default_factory=dict)

    @field_validator("resource_params", "driver_params", "driver_secrets", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class ValuesSecrets(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)
    secrets: dict[str, Any] = Field(default_factory=dict)


class ResourceData(BaseModel):
    type: str
    data: ValuesSecrets
    driver_type: str
    driver_data: ValuesSecrets = Field(default_factory=ValuesSecrets)
