from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.concurrency import run_in_threadpool

from driver.routes.health import router as health_router
from driver.routes.resources import router as resources_router
from driver.services.config import DatabaseConfig
from driver.services.dependencies import get_driver_config
from driver.services.errors import (
    AWSClientError,
    InvalidRequestError,
    MetadataStoreError,
    ResourceNotFoundError,
)
from driver.services.metadata_store import connect_with_backoff


logger = logging.getLogger(__name__)


def _ensure_logging(level: str) -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(level)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_driver_config()
    _ensure_logging(config.log_level)
    logger.info("Timeout set to %d", config.timeout_limit)
    if config.use_fake_aws_client:
        logger.warning("USE_FAKE_AWS_CLIENT is set; no AWS resources will be provisioned.")

    store = await run_in_threadpool(connect_with_backoff, DatabaseConfig.from_env())
    app.state.metadata_store = store
    try:
        yield
    finally:
        store.close()


app = FastAPI(lifespan=lifespan)

app.include_router(resources_router)
app.include_router(health_router)


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(ResourceNotFoundError)
async def not_found_handler(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(AWSClientError)
async def aws_client_error_handler(request: Request, exc: AWSClientError) -> JSONResponse:
    """Map AWS provisioning failures to a 500 with the failure reason.

    Nothing was persisted for the request, so the caller may simply retry.
    """
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


@app.exception_handler(MetadataStoreError)
async def metadata_store_error_handler(request: Request, exc: MetadataStoreError) -> JSONResponse:
    """Storage failures keep their database details out of the response."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal error accessing resource metadata"},
    )
