from typing import Dict, Optional


class EchobinError(Exception):
    """Base class for errors that map onto a single HTTP response."""

    status_code = 500
    detail = ""

    def __init__(self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        if detail is not None:
            self.detail = detail
        self.headers: Dict[str, str] = dict(headers or {})
        super().__init__(self.detail)


class InvalidArgument(EchobinError):
    status_code = 400
    detail = "invalid argument"


class RangeNotSatisfiable(EchobinError):
    status_code = 416

    def __init__(self, total: int, headers: Optional[Dict[str, str]] = None):
        super().__init__(f"range not satisfiable for {total} bytes", headers)
        self.headers["Content-Range"] = f"bytes */{total}"
        self.headers["Content-Length"] = "0"


class PreconditionFailed(EchobinError):
    status_code = 412
    detail = "precondition failed"


class NotModified(EchobinError):
    status_code = 304
    detail = "not modified"

    def __init__(self, etag: Optional[str] = None):
        super().__init__(headers={"ETag": etag} if etag else None)


class StreamAborted(EchobinError, OSError):
    """A body write failed after the status line was committed."""

    def __init__(self, written: int, cause: Optional[BaseException] = None):
        super().__init__(f"stream aborted after {written} bytes")
        self.written = written
        self.cause = cause
