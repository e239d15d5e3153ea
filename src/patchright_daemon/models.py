from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, PositiveInt, ValidationError, field_validator


class Action(str, Enum):
    NAVIGATE = "navigate"
    EXEC = "exec"
    CONSOLE = "console"
    CONSOLE_CLEAR = "console-clear"
    STATUS = "status"
    RESIZE = "resize"


class Request(BaseModel):
    action: str
    data: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None

    @field_validator("data", mode="before")
    @classmethod
    def default_data(cls, v: Any) -> Any:
        return {} if v is None else v


class NavigatePayload(BaseModel):
    url: str = Field(min_length=1)


class ExecPayload(BaseModel):
    code: str


class ResizePayload(BaseModel):
    width: PositiveInt
    height: PositiveInt


class ConsoleLocation(BaseModel):
    url: str = ""
    lineNumber: int | None = None
    columnNumber: int | None = None


class ConsoleLogEntry(BaseModel):
    type: str
    text: str
    location: ConsoleLocation | None = None
    stack: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def describe_validation_error(exc: ValidationError) -> str:
    """Return a one-line summary of the first error in *exc*."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    msg = first.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg
