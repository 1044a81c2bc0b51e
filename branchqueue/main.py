import time
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from branchqueue.core.config import settings
from branchqueue.core.logging import setup_logging, request_id_ctx
from branchqueue.core.errors import EngineError
from branchqueue.core.db import SessionLocal, init_models
from branchqueue.api.router import api_router
from branchqueue.modules.events.outbox import run_outbox_relay
from branchqueue.platform.provider_registry import registry

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    task = None
    if settings.OUTBOX_RELAY_ENABLED:
        task = asyncio.create_task(run_outbox_relay(SessionLocal))
    yield
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await registry.shutdown()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    formatted_process_time = f"{process_time:.2f}ms"

    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {formatted_process_time}"
    )

    return response


# registered last so it runs first and the request log line carries the id
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    token = request_id_ctx.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["x-request-id"] = rid
    return response


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


app.include_router(api_router, prefix=settings.API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "branchqueue.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENV == "local",
        log_level="debug" if settings.ENV == "local" else "info",
    )
