from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REQS = Counter(
    "toolrelay_requests_total",
    "Requests",
    ["method", "path", "status"],
)
LAT = Histogram(
    "toolrelay_latency_seconds",
    "Latency",
    ["method", "path"],
)
SUBSCRIBERS = Gauge(
    "toolrelay_subscribers",
    "Open push channels",
)
EVENTS = Counter(
    "toolrelay_events_published_total",
    "Events handed to the dispatcher",
    ["type"],
)
DELIVERIES = Counter(
    "toolrelay_deliveries_total",
    "Per-subscriber delivery attempts",
    ["outcome"],
)


def router() -> APIRouter:
    r = APIRouter()

    @r.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return r
