from __future__ import annotations

import logging


class ContextFilter(logging.Filter):
    def __init__(self, stream_label: str | None) -> None:
        super().__init__()
        self.stream_label = stream_label

    def filter(self, record: logging.LogRecord) -> bool:
        record.stream = self.stream_label or "-"
        return True


def setup_logging(debug: bool, stream_label: str | None) -> None:
    level = logging.DEBUG if debug else logging.INFO
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(stream)s] %(message)s",
        "%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter(stream_label))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.INFO if debug else logging.WARNING)
