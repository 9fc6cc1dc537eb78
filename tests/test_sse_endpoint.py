import asyncio

from toolrelay import main as M
from toolrelay.channel import EventStreamResponse
from toolrelay.config import settings
from toolrelay.events import decode_frame, tool_result_event


def _scope(path: str = "/sse") -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver"), (b"accept", b"text/event-stream")],
        "client": ("127.0.0.1", 51000),
        "server": ("testserver", 80),
    }


def test_sse_route_builds_a_configured_stream():
    response = asyncio.run(M.sse())

    assert isinstance(response, EventStreamResponse)
    assert response.registry is M.registry
    assert response.send_timeout == settings.SEND_TIMEOUT_SECONDS
    assert response.keepalive == settings.KEEPALIVE_SECONDS


def test_subscriber_receives_tool_results_through_the_app(app_registry, until, monkeypatch):
    monkeypatch.setattr(settings, "KEEPALIVE_SECONDS", 0.0)
    sent = []

    async def scenario():
        gone = asyncio.Event()
        requested = False

        async def receive():
            nonlocal requested
            if not requested:
                requested = True
                return {"type": "http.request", "body": b"", "more_body": False}
            await gone.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        task = asyncio.create_task(M.app(_scope(), receive, send))
        await until(lambda: app_registry.size() == 1)
        report = await M.dispatcher.publish(
            tool_result_event("add", {"a": 2.5, "b": 3.5}, "2.5 + 3.5 = 6")
        )
        gone.set()
        await asyncio.wait_for(task, 2)
        return report

    report = asyncio.run(scenario())

    assert report.succeeded == 1
    assert app_registry.size() == 0
    start = sent[0]
    assert start["status"] == 200
    header_names = {name.lower() for name, _ in start["headers"]}
    assert b"x-request-id" in header_names
    frames = [
        decode_frame(m["body"])
        for m in sent
        if m["type"] == "http.response.body" and m["body"]
    ]
    assert [f["type"] for f in frames] == ["connected", "tool_result"]
    assert frames[1]["input"] == {"a": 2.5, "b": 3.5}
    assert frames[1]["result"] == "2.5 + 3.5 = 6"
