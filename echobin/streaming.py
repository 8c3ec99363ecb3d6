from typing import Awaitable, Callable, Mapping, Optional

from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Send

from echobin.delivery import BodyWriter
from echobin.errors import StreamAborted
from echobin.monitoring import logger, metrics

Deliver = Callable[[BodyWriter], Awaitable[int]]


class ASGIBodyWriter:
    """Sends every write as its own ``http.response.body`` message."""

    def __init__(self, send: Send):
        self._send = send

    async def write(self, data: bytes) -> None:
        try:
            await self._send({"type": "http.response.body", "body": data, "more_body": True})
        except ClientDisconnect as e:
            raise ConnectionResetError("client disconnected") from e


class ScheduledResponse(StreamingResponse):
    """A streaming response whose body is produced by a delivery coroutine.

    Headers are committed before ``deliver`` runs, so a failed write can only
    truncate the body. The failure is logged rather than raised.
    """

    def __init__(
        self,
        deliver: Deliver,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
        media_type: Optional[str] = "application/octet-stream",
    ):
        super().__init__(content=(), status_code=status_code, headers=headers, media_type=media_type)
        self.deliver = deliver

    async def stream_response(self, send: Send) -> None:
        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        try:
            await self.deliver(ASGIBodyWriter(send))
        except StreamAborted as e:
            metrics["streams_aborted"] += 1
            logger.event("warning", "stream_aborted", status=self.status_code, written=e.written, error=repr(e.cause))
            return
        await send({"type": "http.response.body", "body": b"", "more_body": False})
