from __future__ import annotations

from fastapi import APIRouter, Response

router = APIRouter(tags=["health"])


@router.get("/alive")
async def is_alive() -> Response:
    return Response(status_code=200)


@router.get("/health")
async def is_ready() -> Response:
    return Response(status_code=200)
