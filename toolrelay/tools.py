"""Tool catalogue: declared input schemas, validation, and execution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError

from .blocking import call_handler

Number = Union[StrictInt, StrictFloat]


class ToolError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ToolValidationError(ToolError):
    status_code = 400


class UnknownToolError(ToolError):
    status_code = 404


class ToolExecutionError(ToolError):
    status_code = 500


Handler = Callable[[Any], Union[str, Awaitable[str]]]


@dataclass(frozen=True)
class Tool:
    name: str
    title: str
    description: str
    input_model: type[BaseModel]
    handler: Handler

    def declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.input_model.model_json_schema(),
        }


@dataclass(frozen=True)
class ToolOutcome:
    tool: str
    input: Dict[str, Any]
    result: str


def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


class ToolCatalogue:
    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> Tool:
        if tool.name in self._tools:
            raise ValueError(f"tool {tool.name!r} already registered")
        self._tools[tool.name] = tool
        return tool

    def tool(self, name: str, *, title: str, description: str, input_model: type[BaseModel]):
        def decorator(fn: Handler) -> Handler:
            self.register(Tool(name, title, description, input_model, fn))
            return fn

        return decorator

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(f"unknown tool: {name}") from None

    def declarations(self) -> List[Dict[str, Any]]:
        return [t.declaration() for t in self._tools.values()]

    async def invoke(self, name: str, arguments: Any) -> ToolOutcome:
        tool = self.get(name)
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolValidationError("arguments must be a JSON object")
        try:
            params = tool.input_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolValidationError(_describe(exc)) from exc

        try:
            result = await call_handler(tool.handler, params)
        except ToolError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ToolExecutionError(f"{name} failed: {exc}") from exc
        return ToolOutcome(tool=name, input=params.model_dump(), result=str(result))


def format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class AddInput(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    a: Number = Field(description="First addend")
    b: Number = Field(description="Second addend")


catalogue = ToolCatalogue()


@catalogue.tool(
    "add",
    title="Addition Tool",
    description="Add two numbers, integers or decimals, of any magnitude.",
    input_model=AddInput,
)
def add(params: AddInput) -> str:
    total = params.a + params.b
    return f"{format_number(params.a)} + {format_number(params.b)} = {format_number(total)}"
