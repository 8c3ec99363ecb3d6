import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from echobin import config

metrics: Dict[str, Any] = {
    "requests_total": 0,
    "requests_inflight": 0,
    "streams_aborted": 0,
}


class StructuredLogger:
    """Writes one JSON object per line to stdout."""

    def __init__(self, level: str = config.LOG_LEVEL):
        self.logger = logging.getLogger("uvicorn.error")
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    def emit(self, obj: Dict[str, Any]):
        print(json.dumps(obj), flush=True)

    def log(self, ts, method, path, status, latency_ms, user_agent, req_id):
        self.emit({
            "ts": ts,
            "method": method,
            "path": path,
            "status": status,
            "latency_ms": latency_ms,
            "user_agent": user_agent,
            "req_id": req_id,
        })

    def event(self, level: str, event: str, **fields):
        if not self.logger.isEnabledFor(getattr(logging, level.upper(), logging.INFO)):
            return
        self.emit({
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            **fields,
        })


logger = StructuredLogger()


class LoggingMiddleware:
    """Access log line, request counters and ``X-Req-Id`` for every HTTP request.

    Plain ASGI: a failing ``send`` propagates to the response that called it.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.time()
        request_headers = Headers(scope=scope)
        req_id = request_headers.get("X-Req-Id") or str(uuid.uuid4())
        status = 500

        async def send_with_req_id(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                MutableHeaders(scope=message)["X-Req-Id"] = req_id
            await send(message)

        metrics["requests_inflight"] += 1
        try:
            await self.app(scope, receive, send_with_req_id)
        finally:
            metrics["requests_inflight"] -= 1
            metrics["requests_total"] += 1
            latency_ms = int((time.time() - start) * 1000)
            ts = datetime.now(timezone.utc).isoformat()
            user_agent = request_headers.get("user-agent", "")
            logger.log(ts, scope["method"], scope["path"], status, latency_ms, user_agent, req_id)
