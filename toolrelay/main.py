from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .channel import EventStreamResponse
from .config import reload_settings, settings
from .dispatcher import BroadcastDispatcher
from .events import isoformat, tool_result_event, utcnow
from .logging_setup import AccessLogMiddleware, init_logging
from .metrics import router as metrics_router
from .registry import SubscriberRegistry
from .tools import ToolError, ToolExecutionError, catalogue

logger = logging.getLogger(__name__)

registry: SubscriberRegistry = SubscriberRegistry()
dispatcher = BroadcastDispatcher(registry)

TOOL_PATHS = ("/tool/", "/invoke")


class Health(BaseModel):
    status: str
    clients: int
    timestamp: str


class InvocationRequest(BaseModel):
    name: str
    arguments: Optional[Any] = None


def report() -> Health:
    return Health(status="healthy", clients=registry.size(), timestamp=isoformat(utcnow()))


@asynccontextmanager
async def lifespan(app: FastAPI):
    reload_settings()
    logger.info(
        "relay ready: send timeout %.1fs, keepalive %.1fs",
        settings.SEND_TIMEOUT_SECONDS,
        settings.KEEPALIVE_SECONDS,
    )
    try:
        yield
    finally:
        registry.close_all("server shutdown")


init_logging(settings.LOG_LEVEL)

app = FastAPI(title="ToolRelay", version=__version__, lifespan=lifespan)
app.add_middleware(AccessLogMiddleware)
app.include_router(metrics_router())

origins = [o.strip() for o in settings.CORS_ALLOW_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ToolError)
async def _tool_error(request: Request, exc: ToolError):
    if exc.status_code >= 500:
        logger.error("tool call %s failed: %s", request.url.path, exc.message)
    return JSONResponse(
        {"success": False, "error": exc.message}, status_code=exc.status_code
    )


@app.exception_handler(RequestValidationError)
async def _bad_request(request: Request, exc: RequestValidationError):
    if not request.url.path.startswith(TOOL_PATHS):
        return await request_validation_exception_handler(request, exc)
    messages = [str(error.get("msg", "invalid")) for error in exc.errors()]
    return JSONResponse(
        {"success": False, "error": "; ".join(messages) or "invalid request"},
        status_code=400,
    )


async def _run_tool(name: str, arguments: Any) -> dict[str, Any]:
    outcome = await catalogue.invoke(name, arguments)
    try:
        event = tool_result_event(outcome.tool, outcome.input, outcome.result)
    except ValueError as exc:
        raise ToolExecutionError(f"{name} produced a result that is not valid JSON") from exc
    logger.info("tool %s succeeded: %s", outcome.tool, outcome.result)
    await dispatcher.publish(event)
    return {"success": True, "tool": outcome.tool, "result": outcome.result}


@app.get("/health", response_model=Health)
def health():
    return report()


@app.get("/sse")
async def sse():
    return EventStreamResponse(
        registry,
        send_timeout=settings.SEND_TIMEOUT_SECONDS,
        keepalive=settings.KEEPALIVE_SECONDS,
    )


@app.get("/tools")
def list_tools():
    return {"tools": catalogue.declarations()}


@app.post("/tool/{name}")
async def invoke_tool(name: str, arguments: Any = Body(default=None)):
    return await _run_tool(name, arguments)


@app.post("/invoke")
async def invoke(body: InvocationRequest):
    return await _run_tool(body.name, body.arguments)
