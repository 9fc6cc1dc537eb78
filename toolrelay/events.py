"""Relay events and their text/event-stream framing."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

CONNECTED = "connected"
TOOL_RESULT = "tool_result"

KEEPALIVE_FRAME = b": keepalive\n\n"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """Render an aware datetime as ``2025-01-01T00:00:00.000Z``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Event(BaseModel):
    """One relay event, shared read-only by every delivery."""

    model_config = ConfigDict(frozen=True)

    type: str
    payload: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    timestamp: datetime = Field(default_factory=utcnow)

    _frame: bytes = PrivateAttr(default=b"")

    @field_validator("payload")
    @classmethod
    def freeze_payload(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(value)

    def model_post_init(self, __context: Any) -> None:
        # raises ValueError for anything that is not strict JSON
        self._frame = encode_frame(self.to_wire())

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"type": self.type}
        body.update(_thaw(self.payload))
        body["timestamp"] = isoformat(self.timestamp)
        return body

    def encode(self) -> bytes:
        return self._frame


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


def encode_frame(data: Mapping[str, Any]) -> bytes:
    text = json.dumps(data, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    return f"data: {text}\n\n".encode("utf-8")


def decode_frame(frame: bytes | str) -> dict[str, Any]:
    """Parse a single ``data:`` frame back into its JSON object."""

    text = frame.decode("utf-8") if isinstance(frame, bytes) else frame
    lines = [line for line in text.split("\n") if line.startswith("data:")]
    if not lines:
        raise ValueError("frame carries no data field")
    return json.loads("\n".join(line[5:].lstrip(" ") for line in lines))


def connected_event() -> Event:
    return Event(type=CONNECTED, payload={"message": "SSE Server Connected"})


def tool_result_event(tool: str, arguments: Mapping[str, Any], result: str) -> Event:
    return Event(
        type=TOOL_RESULT,
        payload={"tool": tool, "input": dict(arguments), "result": result},
    )
