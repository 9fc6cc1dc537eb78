"""Logging setup and the access-log middleware emitting JSON records with request IDs."""

from __future__ import annotations

import json
import logging
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .metrics import LAT, REQS

access_logger = logging.getLogger("toolrelay.access")

SENSITIVE_HEADERS = {"authorization"}


def init_logging(level: str = "INFO"):
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


UNMATCHED = "<unmatched>"


def _route_template(scope: Scope) -> str:
    """Metric label for the request: the route pattern, never the raw path."""

    route = scope.get("route")
    return getattr(route, "path", None) or UNMATCHED


def _redact_headers(headers: dict[str, str]) -> dict[str, str]:
    return {
        key: ("<redacted>" if key.lower() in SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }


class AccessLogMiddleware:
    """Log one JSON record per request and ensure `X-Request-ID` headers.

    Written as plain ASGI so streaming responses pass through untouched; the
    record for a push channel is emitted when the stream ends.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get("x-request-id") or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id
        method = scope["method"]
        path = scope["path"]
        start = time.time()
        status = 500
        error: str | None = None

        async def _send(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                response_headers = MutableHeaders(raw=list(message.get("headers", [])))
                if "x-request-id" not in response_headers:
                    response_headers["X-Request-ID"] = request_id
                message = dict(message)
                message["headers"] = response_headers.raw
            await send(message)

        try:
            await self.app(scope, receive, _send)
        except Exception as exc:  # pragma: no cover - re-raised after logging
            error = repr(exc)
            raise
        finally:
            duration = time.time() - start
            template = _route_template(scope)
            REQS.labels(method, template, str(status)).inc()
            LAT.labels(method, template).observe(duration)
            client = scope.get("client")
            record = {
                "ts": int(time.time()),
                "level": "ERROR" if error else "INFO",
                "msg": "access",
                "request_id": request_id,
                "method": method,
                "path": path,
                "query": scope.get("query_string", b"").decode("latin-1"),
                "status": status,
                "duration_ms": int(duration * 1000),
                "client_ip": client[0] if client else None,
                "headers": _redact_headers(
                    {
                        key: value
                        for key, value in headers.items()
                        if key.lower() in {"authorization", "user-agent"}
                    }
                ),
            }
            if error:
                record["error"] = error
                access_logger.error(json.dumps(record))
            else:
                access_logger.info(json.dumps(record))
