"""Turns a :class:`StreamConfig` into the URL and headers of one streaming GET.

Everything here is pure. Extra headers that should not stop the stream are
returned as warnings on the result; only an unusable URL raises :class:`ConfigError`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ndstream.config import StreamConfig


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class BuiltRequest:
    url: str
    headers: dict[str, str]
    warnings: list[str] = field(default_factory=list)

    @property
    def header_names(self) -> list[str]:
        return sorted(self.headers)


def build_request(config: StreamConfig) -> BuiltRequest:
    warnings: list[str] = []
    url = build_url(config)
    headers = build_headers(config, warnings)
    return BuiltRequest(url=url, headers=headers, warnings=warnings)


def build_url(config: StreamConfig) -> str:
    url = (config.url or "").strip()
    if not url:
        raise ConfigError("No URL provided")
    parts = urlsplit(url)
    if parts.scheme.lower() not in {"http", "https"}:
        raise ConfigError(f"URL must use http or https: {url}")
    if not parts.netloc:
        raise ConfigError(f"URL has no host: {url}")

    params = _query_params(config.query)
    if not params:
        return url
    extra = urlencode(params)
    query = f"{parts.query}&{extra}" if parts.query else extra
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def build_headers(config: StreamConfig, warnings: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    if config.token:
        headers["Authorization"] = f"Bearer {config.token}"
    for name, value in _extra_headers(config.headers, warnings).items():
        for existing in [key for key in headers if key.lower() == name.lower()]:
            del headers[existing]
        headers[name] = value
    return headers


def _extra_headers(raw: str | dict[str, Any] | None, warnings: list[str]) -> dict[str, str]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            warnings.append("Invalid headers JSON - skipping custom headers")
            return {}
    else:
        parsed = raw
    if not isinstance(parsed, dict):
        warnings.append("Headers JSON is not an object - skipping custom headers")
        return {}

    headers: dict[str, str] = {}
    for name, value in parsed.items():
        if isinstance(value, (dict, list)) or value is None:
            warnings.append(f"Header {name!r} is not a scalar value - skipped")
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        name, value = str(name), str(value)
        if not (name.isascii() and value.isascii()):
            warnings.append(f"Header {name!r} is not ASCII - skipped")
            continue
        headers[name] = value
    return headers


def _query_params(raw: str | dict[str, Any] | None) -> list[tuple[str, str]]:
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip().lstrip("?")
        if not text:
            return []
        return parse_qsl(text, keep_blank_values=True)

    params: list[tuple[str, str]] = []
    for key, value in raw.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            params.append((str(key), "" if item is None else str(item)))
    return params
