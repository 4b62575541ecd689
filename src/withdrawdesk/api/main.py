import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from withdrawdesk.api.executions import router as executions_router
from withdrawdesk.container import Container
from withdrawdesk.db.session import create_schema

logger = logging.getLogger("withdrawdesk.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    container = Container()
    app.state.container = container
    settings = container.settings()
    if settings.db_create_schema:
        await create_schema(container.engine())
        logger.info("Database schema ensured on %s", settings.db_host)
    yield
    await container.rpc_http_client().close()
    await container.engine().dispose()


app = FastAPI(title="WithdrawDesk", version="0.1.0", lifespan=lifespan)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
    logger.error("Unhandled error on %s %s:\n%s", request.method, request.url.path, "".join(tb))
    return JSONResponse(status_code=500, content={"detail": str(exc)})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(executions_router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "withdrawdesk", "version": "0.1.0"}
