"""Split a streamed chat response into display text and trigger events.

Each line of the response is one of:

* SSE framing (``event: ...``) -- dropped, it carries no payload here
* a heartbeat (blank, or a lone ``:``) -- dropped
* text, optionally behind a ``data: `` prefix, that may open with an
  embedded JSON trigger object

Mid-stream lines and the trailing partial line left over at end of stream
go through the same ``segment_line`` path.
"""

from __future__ import annotations

import json
from typing import Annotated, AsyncIterable, AsyncIterator, Callable, Iterable, Literal, Union

import structlog
from pydantic import BaseModel, Field

from aaa_client.chat.lines import ChunkLineAssembler
from aaa_client.chat.scanner import scan_json_prefix
from aaa_client.chat.triggers import (
    DEFAULT_APPROVAL_TYPES,
    ApprovalTrigger,
    LeaveTrigger,
    TriggerRouter,
)

logger = structlog.get_logger()

EVENT_PREFIX = "event:"
DATA_PREFIX = "data: "
HEARTBEAT = ":"


class TextSegment(BaseModel):
    kind: Literal["text"] = "text"
    value: str


class TriggerSegment(BaseModel):
    kind: Literal["trigger"] = "trigger"
    payload: LeaveTrigger | ApprovalTrigger


ParsedSegment = Annotated[Union[TextSegment, TriggerSegment], Field(discriminator="kind")]


def unescape_newlines(text: str) -> str:
    """Turn the backend's escaped ``\\n\\n`` / ``\\n`` sequences into real breaks."""
    return text.replace("\\n\\n", "\n\n").replace("\\n", "\n")


class StreamSegmenter:
    """Drive line assembly and trigger extraction over a chat response stream."""

    def __init__(self, allowed_approval_types: Iterable[str] = DEFAULT_APPROVAL_TYPES):
        self.allowed_approval_types = frozenset(allowed_approval_types)

    def router(
        self,
        on_leave: Callable[[LeaveTrigger], None] | None = None,
        on_approval: Callable[[ApprovalTrigger], None] | None = None,
    ) -> TriggerRouter:
        return TriggerRouter(on_leave, on_approval, self.allowed_approval_types)

    def segment_line(self, line: str, router: TriggerRouter | None = None) -> list[ParsedSegment]:
        """Classify one complete line. Never raises on malformed content."""
        if line.startswith(EVENT_PREFIX):
            return []

        content = line[len(DATA_PREFIX):] if line.startswith(DATA_PREFIX) else line
        if not content.strip() or content == HEARTBEAT:
            return []

        router = router or self.router()
        trimmed = content.strip()
        found = scan_json_prefix(trimmed)
        if found is not None:
            trigger = self._parse_trigger(found.json, router)
            if trigger is not None:
                segments: list[ParsedSegment] = []
                if found.prefix:
                    segments.append(TextSegment(value=unescape_newlines(found.prefix)))
                segments.append(TriggerSegment(payload=trigger))
                if found.rest.strip():
                    segments.append(TextSegment(value=unescape_newlines(found.rest)))
                return segments

        return [TextSegment(value=unescape_newlines(content))]

    @staticmethod
    def _parse_trigger(raw: str, router: TriggerRouter) -> LeaveTrigger | ApprovalTrigger | None:
        try:
            obj = json.loads(raw)
        except ValueError:
            logger.debug("embedded_json_unparseable", length=len(raw))
            return None
        return router.classify(obj)

    async def iter_segments(
        self,
        stream: AsyncIterable[bytes | str],
        router: TriggerRouter | None = None,
    ) -> AsyncIterator[ParsedSegment]:
        """Yield segments in stream order as chunks arrive."""
        router = router or self.router()
        assembler = ChunkLineAssembler()

        async for chunk in stream:
            for line in assembler.feed(chunk):
                for segment in self.segment_line(line, router):
                    yield segment

        for line in assembler.finish():
            for segment in self.segment_line(line, router):
                yield segment

    async def process(
        self,
        stream: AsyncIterable[bytes | str],
        on_chunk: Callable[[str], None] | None = None,
        on_leave_trigger: Callable[[LeaveTrigger], None] | None = None,
        on_approval_trigger: Callable[[ApprovalTrigger], None] | None = None,
    ) -> str:
        """Consume ``stream`` and return the concatenated display text.

        Text is also pushed to ``on_chunk`` as it is produced. Trigger
        callbacks fire in stream order relative to the text around them.
        Errors raised by ``stream`` propagate; text already delivered to
        ``on_chunk`` stays delivered.
        """
        router = self.router(on_leave_trigger, on_approval_trigger)
        parts: list[str] = []
        triggers = 0

        async for segment in self.iter_segments(stream, router):
            if isinstance(segment, TriggerSegment):
                router.dispatch(segment.payload)
                triggers += 1
                continue
            parts.append(segment.value)
            if on_chunk is not None and segment.value:
                on_chunk(segment.value)

        final_text = "".join(parts)
        logger.debug("chat_stream_processed", length=len(final_text), triggers=triggers)
        return final_text
