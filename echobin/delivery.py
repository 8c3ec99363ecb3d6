"""Timed, incremental body delivery.

Both policies push bytes through a ``BodyWriter`` and pause between writes
with an awaitable sleep, so a single coroutine owns each response and chunks
leave in increasing offset order. The first failed write raises
``StreamAborted`` and nothing further is written.
"""
import asyncio
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from echobin.errors import StreamAborted
from echobin.ranges import ByteRange

MAX_DRIP_DELAY = 10.0
MIN_DRIP_DURATION = 0.1
MAX_DRIP_DURATION = 60.0
MAX_DRIP_BYTES = 10 << 20
DRIP_INTERVAL = 0.1
DRIP_FILLER = b"*"

MAX_STREAM_DURATION = 60.0
DEFAULT_CHUNK_SIZE = 10 << 10

Sleep = Callable[[float], Awaitable[None]]


class BodyWriter(Protocol):
    async def write(self, data: bytes) -> None:
        """Send ``data`` to the client immediately."""


def clamp(value, lower, upper):
    return max(lower, min(value, upper))


@dataclass(frozen=True)
class DripPlan:
    delay: float
    duration: float
    numbytes: int
    chunk_size: int
    interval: float
    status_code: int = 200

    @classmethod
    def build(cls, duration: float, numbytes: int, delay: float, status_code: int = 200) -> "DripPlan":
        delay = clamp(delay, 0.0, MAX_DRIP_DELAY)
        duration = clamp(duration, MIN_DRIP_DURATION, MAX_DRIP_DURATION)
        numbytes = clamp(numbytes, 0, MAX_DRIP_BYTES)

        if numbytes == 0:
            return cls(delay, duration, 0, 0, 0.0, status_code)

        # round() keeps 0.3 / 0.1 from landing on 2.9999...
        chunks = math.ceil(round(duration / DRIP_INTERVAL, 9))
        chunk_size = numbytes // chunks + 1 if chunks > 1 else numbytes
        if chunk_size == 1:
            interval = duration / numbytes
        else:
            interval = DRIP_INTERVAL
        return cls(delay, duration, numbytes, chunk_size, interval, status_code)


async def _write(writer: BodyWriter, data: bytes, written: int) -> int:
    try:
        await writer.write(data)
    except StreamAborted:
        raise
    except OSError as e:
        raise StreamAborted(written, e) from e
    return written + len(data)


async def drip(plan: DripPlan, writer: BodyWriter, sleep: Sleep = asyncio.sleep) -> int:
    """Write ``plan.numbytes`` filler bytes, pausing ``plan.interval`` after each write.

    The initial delay is the caller's business: it has to elapse before the
    status line goes out. Returns the number of bytes written.
    """
    remaining = plan.numbytes
    written = 0
    while remaining > 0:
        length = min(plan.chunk_size, remaining)
        written = await _write(writer, DRIP_FILLER * length, written)
        await sleep(plan.interval)
        remaining -= length
    return written


def alphabet_chunk(offset: int, length: int) -> bytes:
    return bytes(ord("a") + i % 26 for i in range(offset, offset + length))


async def stream_range(
    window: ByteRange,
    writer: BodyWriter,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    duration: float = 0.0,
    sleep: Sleep = asyncio.sleep,
) -> int:
    """Write the a-z cycle over ``window`` spread across ``duration`` seconds."""
    chunk_size = max(chunk_size, 1)
    duration = clamp(duration, 0.0, MAX_STREAM_DURATION)
    pause_per_byte = duration / window.length

    cursor = window.start
    written = 0
    while cursor <= window.end:
        length = min(chunk_size, window.end - cursor + 1)
        await sleep(pause_per_byte * length)
        written = await _write(writer, alphabet_chunk(cursor, length), written)
        cursor += length
    return written
