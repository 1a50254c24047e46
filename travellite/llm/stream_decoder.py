# llm/stream_decoder.py
"""
Stream Decoders
Turn provider framing into plain-text deltas.

Each decoder takes the text received so far and returns the deltas
found in complete framing units plus the unconsumed remainder:

    deltas, remainder = decoder.decode(buffer)
    ...
    deltas = decoder.flush(remainder)   # at end of stream

Unparseable units are skipped and counted. A stream where every
content-bearing unit was skipped is reported by ``all_skipped``.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple

from loguru import logger


class StreamDecoder(ABC):
    """Base class for pluggable provider decoders"""

    name = "base"

    def __init__(self):
        self.delta_count = 0
        self.skipped_count = 0

    @abstractmethod
    def decode(self, buffer: str) -> Tuple[List[str], str]:
        """Extract deltas from complete units; return (deltas, remainder)"""

    @abstractmethod
    def flush(self, buffer: str) -> List[str]:
        """Extract deltas from a trailing partial unit at end of stream"""

    @property
    def all_skipped(self) -> bool:
        return self.skipped_count > 0 and self.delta_count == 0

    def _skip(self, unit: str, reason: str):
        self.skipped_count += 1
        logger.warning(f"[{self.name}] Skipping unparseable unit ({reason}): {unit[:80]!r}")

    def _emit(self, deltas: List[str], text: Optional[str]):
        if text:
            deltas.append(text)
            self.delta_count += 1


def _nested_delta(payload: dict) -> Optional[str]:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            delta = first.get("delta")
            if isinstance(delta, dict) and isinstance(delta.get("content"), str):
                return delta["content"]
    return None


class SSEStreamDecoder(StreamDecoder):
    """
    Server-Sent Events: ``data: {...}\\n\\n``

    Delta shapes, first match wins:
    - {"response": "..."}                          direct text
    - {"choices": [{"delta": {"content": "..."}}]}  nested delta
    - {"content": "..."}
    ``[DONE]`` is ignored; non-JSON data is forwarded as plain text.
    """

    name = "SSE"

    def decode(self, buffer: str) -> Tuple[List[str], str]:
        deltas: List[str] = []
        remaining = buffer.replace("\r", "")

        while True:
            end = remaining.find("\n\n")
            if end == -1:
                break
            raw_event = remaining[:end]
            remaining = remaining[end + 2:]
            self._decode_event(raw_event, deltas)

        return deltas, remaining

    def flush(self, buffer: str) -> List[str]:
        deltas: List[str] = []
        remaining = buffer.replace("\r", "")
        if remaining.strip():
            self._decode_event(remaining, deltas)
        return deltas

    def _decode_event(self, raw_event: str, deltas: List[str]):
        for line in raw_event.split("\n"):
            if not line.startswith("data:"):
                continue
            data = line[len("data:"):].lstrip()
            if not data or data == "[DONE]":
                continue

            try:
                payload = json.loads(data)
            except ValueError:
                if data.startswith("{") or data.startswith("["):
                    self._skip(data, "malformed JSON")
                else:
                    self._emit(deltas, data)
                continue

            self._emit(deltas, self._extract(payload))

    @staticmethod
    def _extract(payload: Any) -> Optional[str]:
        if not isinstance(payload, dict):
            return None
        response = payload.get("response")
        if isinstance(response, str) and response:
            return response
        nested = _nested_delta(payload)
        if nested:
            return nested
        content = payload.get("content")
        if isinstance(content, str) and content:
            return content
        return None


class NDJSONStreamDecoder(StreamDecoder):
    """
    Newline-delimited JSON, one object per line (Ollama /api/chat and
    /api/generate). Delta from ``message.content`` or ``response``.
    """

    name = "NDJSON"

    def decode(self, buffer: str) -> Tuple[List[str], str]:
        deltas: List[str] = []
        *lines, remaining = buffer.split("\n")
        for line in lines:
            self._decode_line(line, deltas)
        return deltas, remaining

    def flush(self, buffer: str) -> List[str]:
        deltas: List[str] = []
        self._decode_line(buffer, deltas)
        return deltas

    def _decode_line(self, line: str, deltas: List[str]):
        line = line.strip()
        if not line:
            return
        try:
            payload = json.loads(line)
        except ValueError:
            self._skip(line, "malformed JSON")
            return
        if not isinstance(payload, dict):
            self._skip(line, "not an object")
            return

        if payload.get("error"):
            logger.error(f"[NDJSON] Provider reported error: {payload['error']}")
            return

        message = payload.get("message")
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            self._emit(deltas, message["content"])
            return
        response = payload.get("response")
        if isinstance(response, str):
            self._emit(deltas, response)
