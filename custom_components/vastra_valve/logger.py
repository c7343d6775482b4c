from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any


class PrefixLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with the valve address: ``[AA:BB:CC] ...``."""

    def __init__(self, logger: logging.Logger, prefix: str) -> None:
        super().__init__(logger, {"prefix": prefix})
        self.prefix = prefix

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.prefix}] {msg}", kwargs
