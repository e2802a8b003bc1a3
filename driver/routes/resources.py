from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Path, Response
from starlette import status

from driver.models.resources import DriverResourceDefinition, ResourceData
from driver.services.dependencies import get_resource_provisioner
from driver.services.provisioner import PARAMS_HEADER, SECRETS_HEADER, ResourceProvisioner

router = APIRouter(tags=["resources"])


@router.post("/", response_model=ResourceData)
async def create_or_update_resource(
    payload: DriverResourceDefinition,
    provisioner: ResourceProvisioner = Depends(get_resource_provisioner),
) -> ResourceData:
    return await provisioner.create_or_update(
        resource_id=payload.id,
        resource_type=payload.type,
        driver_params=payload.driver_params,
        driver_secrets=payload.driver_secrets,
    )


@router.delete("/{resource_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
async def delete_resource(
    resource_id: str = Path(..., description="ID the resource was created with"),
    driver_secrets: Optional[str] = Header(default=None, alias=SECRETS_HEADER),
    driver_params: Optional[str] = Header(default=None, alias=PARAMS_HEADER),
    provisioner: ResourceProvisioner = Depends(get_resource_provisioner),
) -> Response:
    await provisioner.delete(
        resource_id=resource_id,
        driver_params_header=driver_params,
        driver_secrets_header=driver_secrets,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
