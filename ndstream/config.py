from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_RECONNECT_DELAY_MS = 5000
LEADING_INT = re.compile(r"\s*[+-]?\d+")


class StreamConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = ""
    token: str | None = None
    headers: str | dict[str, Any] | None = None
    query: str | dict[str, Any] | None = None
    verify_tls: bool = True
    connect_timeout: float = 10.0
    read_timeout: float | None = None


class ReconnectConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    delay_ms: int = DEFAULT_RECONNECT_DELAY_MS
    min_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=60000, gt=0)

    @field_validator("delay_ms", mode="before")
    @classmethod
    def _coerce_delay(cls, value: Any) -> int:
        if value is None or isinstance(value, bool):
            return DEFAULT_RECONNECT_DELAY_MS
        match = LEADING_INT.match(str(value))
        if not match:
            return DEFAULT_RECONNECT_DELAY_MS
        delay = int(match.group(0))
        if delay <= 0:
            return DEFAULT_RECONNECT_DELAY_MS
        return delay

    @property
    def base_delay(self) -> float:
        return max(self.delay_ms, self.min_delay_ms) / 1000.0

    @property
    def max_delay(self) -> float:
        return max(self.max_delay_ms / 1000.0, self.base_delay)


class OutputConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path | None = None
    include_line: bool = False


class NdStreamConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    stream: StreamConfig = Field(default_factory=StreamConfig)
    reconnect: ReconnectConfig = Field(default_factory=ReconnectConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    debug: bool = False


def load_config(path: Path | None) -> NdStreamConfig:
    if path is None:
        return NdStreamConfig()
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)
    try:
        return NdStreamConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid config: {exc}") from exc


def merge_config(base: NdStreamConfig, overrides: dict[str, Any]) -> NdStreamConfig:
    payload = base.model_dump(mode="python")
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(payload.get(key), dict):
            section = payload[key]
            for name, item in value.items():
                if item is not None:
                    section[name] = item
            continue
        payload[key] = value
    try:
        return NdStreamConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid config: {exc}") from exc
