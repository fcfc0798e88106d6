"""StdioTransport — newline-delimited JSON records on a text stream."""

from __future__ import annotations

import json
import logging
import sys
from typing import List, Optional, TextIO

from prefactor_sdk.queue.actions import QueueAction
from prefactor_sdk.utils.serialization import serialize_value

logger = logging.getLogger("prefactor_sdk.transport.stdio")

LINE_PREFIX = "::PREFACTOR::"


class StdioTransport:
    """Write each action as ``::PREFACTOR::{"type": ..., "data": ...}``.

    Useful for local development, or when a host process reads the SDK's
    stdout and forwards records itself.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self._closed = False

    async def process_batch(self, batch: List[QueueAction]) -> None:
        if self._closed:
            return
        for action in batch:
            try:
                record = serialize_value({"type": action.type, "data": action.to_dict()}, None)
                line = LINE_PREFIX + json.dumps(record, ensure_ascii=False)
            except (TypeError, ValueError) as e:
                logger.error("Failed to serialize %s action: %s", action.type, e)
                continue
            self.stream.write(line + "\n")
        self.stream.flush()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.stream.flush()
        except (OSError, ValueError) as e:
            logger.debug("Stream flush on close failed: %s", e)
