"""
Stream Normalizer

Turns a provider's event stream into the gateway's framed wire protocol:
newline-delimited lines of ``<tag>:<json payload>``.

    0:"Hel"
    0:"lo"
    2:{"grounding_sources": [...]}

Tags:
- ``0`` text delta, payload is the raw token string
- ``2`` metadata, payload is ``{"grounding_sources": [...]}``
- ``3`` error, payload is the error message; always the last frame

Consumers skip tags they do not know.
"""

import json
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, ClassVar, Union

import structlog

from aiproxy.core.exceptions import AIProxyException
from aiproxy.services.ai.types import GroundingData, StreamEvent, TextDelta

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextDeltaFrame:
    tag: ClassVar[str] = "0"
    text: str

    def payload(self) -> Any:
        return self.text


@dataclass(frozen=True)
class MetadataFrame:
    tag: ClassVar[str] = "2"
    grounding_sources: tuple[dict[str, Any], ...]

    def payload(self) -> Any:
        return {"grounding_sources": list(self.grounding_sources)}


@dataclass(frozen=True)
class ErrorFrame:
    tag: ClassVar[str] = "3"
    message: str

    def payload(self) -> Any:
        return self.message


NormalizedFrame = Union[TextDeltaFrame, MetadataFrame, ErrorFrame]

FRAME_TYPES: dict[str, type[NormalizedFrame]] = {
    TextDeltaFrame.tag: TextDeltaFrame,
    MetadataFrame.tag: MetadataFrame,
    ErrorFrame.tag: ErrorFrame,
}


def encode_frame(frame: NormalizedFrame) -> str:
    """Serialize one frame as a complete line."""
    return f"{frame.tag}:{json.dumps(frame.payload(), ensure_ascii=False)}\n"


def parse_frame(line: str) -> NormalizedFrame | None:
    """Parse one wire line back into a frame.

    Returns None for blank lines and unknown tags.

    Raises:
        ValueError: A known tag with a malformed payload
    """
    line = line.rstrip("\n")
    tag, sep, raw = line.partition(":")
    if not sep or tag not in FRAME_TYPES:
        return None

    payload = json.loads(raw)
    if tag == TextDeltaFrame.tag:
        if not isinstance(payload, str):
            raise ValueError("Text frame payload must be a string")
        return TextDeltaFrame(payload)
    if tag == MetadataFrame.tag:
        if not isinstance(payload, dict):
            raise ValueError("Metadata frame payload must be an object")
        return MetadataFrame(tuple(payload.get("grounding_sources") or ()))
    return ErrorFrame(str(payload))


def _error_message(error: Exception) -> str:
    if isinstance(error, AIProxyException):
        return error.message
    return "Upstream stream failed"


async def normalize_stream(
    events: AsyncGenerator[StreamEvent, None],
    grounding_requested: bool = False,
) -> AsyncIterator[NormalizedFrame]:
    """Normalize provider events into frames.

    Every TextDelta becomes one text frame, in arrival order. Grounding data
    is held until the text is drained and then emitted as a single metadata
    frame, only if grounding was requested and at least one source arrived.

    A failure while consuming ``events`` ends the sequence with one
    ErrorFrame; the exception is not re-raised. Closing this generator
    closes ``events``, and with it the upstream call.
    """
    sources: list[dict[str, Any]] = []
    text_frames = 0

    try:
        async with aclosing(events) as stream:
            async for event in stream:
                if isinstance(event, TextDelta):
                    text_frames += 1
                    yield TextDeltaFrame(event.text)
                elif isinstance(event, GroundingData):
                    sources.extend(
                        source for source in event.sources if source not in sources
                    )
    except Exception as e:
        logger.warning(
            "ai_stream_upstream_error",
            error=str(e),
            error_type=type(e).__name__,
            text_frames=text_frames,
        )
        yield ErrorFrame(_error_message(e))
        return

    if grounding_requested and sources:
        yield MetadataFrame(tuple(sources))

    logger.debug(
        "ai_stream_completed",
        text_frames=text_frames,
        grounding_sources=len(sources),
    )


async def encode_stream(frames: AsyncGenerator[NormalizedFrame, None]) -> AsyncIterator[str]:
    async with aclosing(frames) as stream:
        async for frame in stream:
            yield encode_frame(frame)


async def collect_text(events: AsyncIterator[StreamEvent]) -> str:
    """Drain a stream into one answer string, dropping grounding data."""
    parts: list[str] = []
    async for event in events:
        if isinstance(event, TextDelta):
            parts.append(event.text)
    return "".join(parts)
