# llm/streaming.py
"""
Stream Fan-Out / State-Sync Transform

Serves two readers of one model stream:
- the live transport, which gets every delta as soon as it is decoded
- the state store, which gets the full text once, after the last delta

Usage:
    transform = StreamTransform(source, SSEStreamDecoder(), on_complete=commit)
    async for delta in transform.deltas():            # direct-delta mode
        await websocket.send_text(delta)

    async for envelope in transform.envelopes(user_id):  # marker-wrapped mode
        publisher.publish(room, envelope.to_wire())
"""

import codecs
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from loguru import logger

from ..schemas import RelayMessage
from .stream_decoder import StreamDecoder


CommitCallback = Callable[[str], Awaitable[None]]

UNDECODABLE_REPLY = "The model response could not be decoded"


class StreamTransform:
    """
    Single-use transform over one generation call.

    The accumulator is owned here and handed to ``on_complete`` exactly
    once, when the source ends cleanly and produced any text. A source
    error mid-read stops forwarding without committing; text already
    forwarded is not retracted.
    """

    def __init__(
        self,
        source: AsyncIterator[Union[bytes, str]],
        decoder: StreamDecoder,
        on_complete: Optional[CommitCallback] = None,
        label: str = "TravelAgent"
    ):
        self.source = source
        self.decoder = decoder
        self.on_complete = on_complete
        self.label = label

        self.accumulated = ""
        self.chunk_count = 0
        self.completed = False
        self.failed = False
        self.committed = False
        self._started = False

    async def deltas(self) -> AsyncIterator[str]:
        """Direct-delta mode: yield plain-text chunks as they are decoded"""
        if self._started:
            raise RuntimeError("StreamTransform can only be consumed once")
        self._started = True

        utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""

        try:
            async for fragment in self.source:
                if isinstance(fragment, bytes):
                    buffer += utf8.decode(fragment)
                else:
                    buffer += fragment

                decoded, buffer = self.decoder.decode(buffer)
                for delta in decoded:
                    self._accumulate(delta)
                    yield delta

            buffer += utf8.decode(b"", final=True)
            for delta in self.decoder.flush(buffer):
                self._accumulate(delta)
                yield delta

        except Exception as e:
            self.failed = True
            logger.error(
                f"[{self.label}] Stream transform error after {self.chunk_count} chunks: {e}"
            )
            return
        finally:
            await self._close_source()

        if self.decoder.all_skipped:
            logger.error(
                f"[{self.label}] All {self.decoder.skipped_count} stream units were "
                f"unparseable; response content was dropped"
            )

        await self._commit()
        self.completed = True
        logger.debug(
            f"[{self.label}] Stream complete: {self.chunk_count} chunks, "
            f"{len(self.accumulated)} chars"
        )

    async def envelopes(self, user_id: Optional[str] = None) -> AsyncIterator[RelayMessage]:
        """
        Marker-wrapped mode:
            {streaming: true, text: ""}
            {chunk: true, text: <delta>} per delta
            {complete: true, text: <full text>}
            {isError: true, text: <reason>}    only when nothing could be decoded
        """
        yield RelayMessage(text="", userId=user_id, streaming=True)

        async for delta in self.deltas():
            yield RelayMessage(text=delta, userId=user_id, chunk=True)

        # A failed source still closes with what was forwarded
        yield RelayMessage(text=self.accumulated, userId=user_id, complete=True)
        if self.undecodable:
            yield RelayMessage(text=UNDECODABLE_REPLY, userId=user_id, isError=True)

    @property
    def undecodable(self) -> bool:
        """The stream ended cleanly but every unit was skipped"""
        return self.completed and self.decoder.all_skipped

    def _accumulate(self, delta: str):
        self.accumulated += delta
        self.chunk_count += 1

    async def _commit(self):
        if not self.accumulated or self.on_complete is None:
            return
        try:
            await self.on_complete(self.accumulated)
            self.committed = True
        except Exception as e:
            logger.error(f"[{self.label}] Error updating state: {e}")

    async def _close_source(self):
        aclose = getattr(self.source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.error(f"[{self.label}] Error closing source stream: {e}")


async def accumulate(deltas: AsyncIterator[str]) -> str:
    """Drain a delta stream into one string (request/response bindings)"""
    parts = []
    async for delta in deltas:
        parts.append(delta)
    return "".join(parts)
