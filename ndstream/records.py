from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

LINE_PREVIEW_CHARS = 100


@dataclass(frozen=True)
class Record:
    line: str
    value: Any

    ok = True


@dataclass(frozen=True)
class RecordError:
    line: str
    message: str

    ok = False

    def describe(self) -> str:
        return f"Invalid JSON from stream ({self.message}): {self.line}"


ParseResult = Union[Record, RecordError]


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse_line(line: str) -> ParseResult:
    try:
        value = json.loads(line, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        return RecordError(line=preview(line), message=exc.msg)
    except ValueError as exc:
        return RecordError(line=preview(line), message=str(exc))
    return Record(line=line, value=value)


def preview(line: str, limit: int = LINE_PREVIEW_CHARS) -> str:
    return line[:limit]
