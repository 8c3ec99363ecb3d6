from typing import List, Optional

import pytest

from echobin.delivery import (
    MAX_DRIP_BYTES,
    DripPlan,
    alphabet_chunk,
    drip,
    stream_range,
)
from echobin.errors import StreamAborted
from echobin.ranges import ByteRange


class RecordingWriter:
    def __init__(self, fail_after: Optional[int] = None) -> None:
        self.chunks: List[bytes] = []
        self.fail_after = fail_after

    async def write(self, data: bytes) -> None:
        if self.fail_after is not None and len(self.chunks) >= self.fail_after:
            raise BrokenPipeError("client went away")
        self.chunks.append(data)

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]):
    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return sleep


def test_drip_plan_clamps_inputs() -> None:
    plan = DripPlan.build(duration=600, numbytes=MAX_DRIP_BYTES * 2, delay=-3)

    assert plan.delay == 0
    assert plan.duration == 60
    assert plan.numbytes == MAX_DRIP_BYTES

    plan = DripPlan.build(duration=0, numbytes=-5, delay=99)

    assert plan.delay == 10
    assert plan.duration == pytest.approx(0.1)
    assert plan.numbytes == 0


def test_drip_plan_single_interval_sends_one_chunk() -> None:
    plan = DripPlan.build(duration=0.1, numbytes=10, delay=0)

    assert plan.chunk_size == 10
    assert plan.interval == pytest.approx(0.1)


def test_drip_plan_counts_partial_intervals() -> None:
    plan = DripPlan.build(duration=0.3, numbytes=300, delay=0)

    assert plan.chunk_size == 101


def test_drip_plan_falls_back_to_per_byte_pacing() -> None:
    plan = DripPlan.build(duration=2, numbytes=10, delay=0)

    assert plan.chunk_size == 1
    assert plan.interval == pytest.approx(0.2)


@pytest.mark.asyncio
async def test_drip_writes_filler_per_byte(fake_sleep, sleeps: List[float]) -> None:
    writer = RecordingWriter()

    written = await drip(DripPlan.build(duration=2, numbytes=10, delay=0), writer, sleep=fake_sleep)

    assert written == 10
    assert writer.chunks == [b"*"] * 10
    assert sleeps == pytest.approx([0.2] * 10)


@pytest.mark.asyncio
async def test_drip_writes_chunks_every_interval(fake_sleep, sleeps: List[float]) -> None:
    writer = RecordingWriter()

    await drip(DripPlan.build(duration=1, numbytes=100, delay=0), writer, sleep=fake_sleep)

    assert [len(c) for c in writer.chunks] == [11] * 9 + [1]
    assert writer.body == b"*" * 100
    assert sleeps == pytest.approx([0.1] * 10)


@pytest.mark.asyncio
async def test_drip_with_no_bytes_writes_nothing(fake_sleep, sleeps: List[float]) -> None:
    writer = RecordingWriter()

    assert await drip(DripPlan.build(duration=5, numbytes=0, delay=0), writer, sleep=fake_sleep) == 0
    assert writer.chunks == []
    assert sleeps == []


def test_alphabet_chunk_uses_absolute_offsets() -> None:
    assert alphabet_chunk(0, 26) == b"abcdefghijklmnopqrstuvwxyz"
    assert alphabet_chunk(27, 3) == b"bcd"
    assert alphabet_chunk(50, 4) == b"yzab"


@pytest.mark.asyncio
async def test_stream_range_spreads_window_over_duration(fake_sleep, sleeps: List[float]) -> None:
    writer = RecordingWriter()

    written = await stream_range(ByteRange(0, 25, 26), writer, chunk_size=10, duration=2.6, sleep=fake_sleep)

    assert written == 26
    assert [len(c) for c in writer.chunks] == [10, 10, 6]
    assert writer.body == b"abcdefghijklmnopqrstuvwxyz"
    assert sleeps == pytest.approx([1.0, 1.0, 0.6])


@pytest.mark.asyncio
async def test_stream_range_serves_only_the_window(fake_sleep) -> None:
    writer = RecordingWriter()

    await stream_range(ByteRange(24, 29, 100), writer, chunk_size=4, sleep=fake_sleep)

    assert writer.chunks == [b"yzab", b"cd"]


@pytest.mark.asyncio
async def test_stream_range_clamps_chunk_size_and_duration(fake_sleep, sleeps: List[float]) -> None:
    writer = RecordingWriter()

    await stream_range(ByteRange(0, 2, 3), writer, chunk_size=0, duration=-1, sleep=fake_sleep)

    assert writer.chunks == [b"a", b"b", b"c"]
    assert sleeps == [0.0, 0.0, 0.0]


@pytest.mark.asyncio
async def test_stream_range_aborts_on_first_failed_write(fake_sleep) -> None:
    writer = RecordingWriter(fail_after=1)

    with pytest.raises(StreamAborted) as exc_info:
        await stream_range(ByteRange(0, 25, 26), writer, chunk_size=5, sleep=fake_sleep)

    assert writer.chunks == [b"abcde"]
    assert exc_info.value.written == 5
    assert isinstance(exc_info.value, OSError)
    assert isinstance(exc_info.value.cause, BrokenPipeError)


@pytest.mark.asyncio
async def test_drip_aborts_on_first_failed_write(fake_sleep, sleeps: List[float]) -> None:
    writer = RecordingWriter(fail_after=2)

    with pytest.raises(StreamAborted):
        await drip(DripPlan.build(duration=2, numbytes=10, delay=0), writer, sleep=fake_sleep)

    assert writer.chunks == [b"*", b"*"]
    assert len(sleeps) == 2
