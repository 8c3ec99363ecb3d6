"""
echobin: an HTTP request & response service for exercising HTTP clients and proxies.

Run: python -m echobin.app
Example: curl -i -H 'Range: bytes=0-9' http://localhost:5000/range/26
"""

import asyncio
import json
import random
import time
import uuid
from functools import partial
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, StreamingResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException
from starlette.status import HTTP_204_NO_CONTENT, HTTP_206_PARTIAL_CONTENT, HTTP_304_NOT_MODIFIED

from echobin import __version__, config
from echobin.conditional import CacheValidators, check_etag, check_freshness
from echobin.delivery import DEFAULT_CHUNK_SIZE, DripPlan, clamp, drip, stream_range
from echobin.errors import EchobinError, InvalidArgument, NotModified, PreconditionFailed, RangeNotSatisfiable
from echobin.formats import (
    DENY_TXT,
    ROBOTS_TXT,
    SAMPLE_HTML,
    SAMPLE_JSON,
    SAMPLE_UTF8_HTML,
    SAMPLE_XML,
    decode_base64,
    encode_body,
    header_pairs,
    links_page,
    self_describing_json,
)
from echobin.inspection import (
    echo_body,
    echo_get,
    echo_stream_item,
    get_args,
    get_client_ip,
    get_cookies,
    get_form_data,
    get_headers,
    get_user_agent,
)
from echobin.monitoring import LoggingMiddleware, metrics
from echobin.ranges import resolve_range
from echobin.status_codes import DECIMAL_PATTERN, INTEGER_PATTERN, check_status_code, select_status_code
from echobin.streaming import ScheduledResponse

MAX_BYTE_COUNT = 100 << 10
MAX_DELAY = 10  # seconds
MAX_STREAM_ITEMS = 100
MAX_LINKS = 200
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]
EMPTY_BODY_CODES = {NotModified.status_code, PreconditionFailed.status_code, RangeNotSatisfiable.status_code}

# --- App ---
app = FastAPI(
    title="echobin",
    description="A simple HTTP Request & Response Service.",
    version=__version__,
    docs_url=None,
    redoc_url=None,
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


# --- Error handling ---
@app.exception_handler(EchobinError)
async def echobin_error_handler(request: Request, exc: EchobinError):
    if exc.status_code in EMPTY_BODY_CODES:
        return Response(status_code=exc.status_code, headers=exc.headers)
    return PlainTextResponse(exc.detail, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    names = [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")]
    return PlainTextResponse(f"invalid value for {', '.join(names) or 'request'}", status_code=400)


# --- Utility Functions ---
def parse_number(raw: str, message: str, cast=int):
    pattern = INTEGER_PATTERN if cast is int else DECIMAL_PATTERN
    if not pattern.fullmatch(raw):
        raise InvalidArgument(message)
    return cast(raw)


def parse_non_negative(raw: str, message: str, cast=int):
    value = parse_number(raw, message, cast)
    if not value >= 0:
        raise InvalidArgument(message)
    return value


def encoded_response(request: Request, coding: str, flag: str) -> Response:
    payload = {
        flag: True,
        "headers": get_headers(request),
        "method": request.method,
        "origin": get_client_ip(request),
    }
    body = encode_body(payload, coding)
    return Response(content=body, media_type="application/json", headers={"Content-Encoding": coding})


def redirect_chain(request: Request, n: str, absolute: bool) -> RedirectResponse:
    """Redirect to the next hop of an n-step chain that ends at /get."""
    times = parse_number(n, "invalid number of redirection times")
    if times < 1:
        raise InvalidArgument("invalid number of redirection times")
    if times == 1:
        location = app.url_path_for("get_method")
    else:
        location = app.url_path_for("absolute_redirect" if absolute else "relative_redirect", n=str(times - 1))
    if absolute:
        location = f"{request.url.scheme}://{request.url.netloc}{location}"
    return RedirectResponse(location, status_code=302)


# --- Models ---
class DripParams(BaseModel):
    # seconds over which to drip the bytes
    duration: float = 2
    numbytes: int = 10
    code: int = 200
    # seconds to wait before responding
    delay: float = 2


# --- HTTP methods ---
@app.get("/get")
async def get_method(request: Request):
    """The request's query parameters."""
    return echo_get(request)


@app.post("/post")
@app.put("/put")
@app.patch("/patch")
@app.delete("/delete")
async def other_method(request: Request):
    """The request's query parameters and body."""
    return await echo_body(request)


@app.api_route("/anything", methods=ALL_METHODS)
@app.api_route("/anything/{anything:path}", methods=ALL_METHODS)
async def anything(request: Request):
    """Returns anything passed in request data."""
    return await echo_body(request, with_method=True)


# --- Status codes ---
@app.api_route("/status/{codes}", methods=ALL_METHODS)
async def status_codes(codes: str, seed: Optional[int] = Query(None)):
    """Return status code or random status code if more than one are given."""
    return Response(status_code=select_status_code(codes, seed))


# --- Response formats ---
@app.get("/html")
async def serve_html():
    """Returns a simple HTML document."""
    return HTMLResponse(SAMPLE_HTML)


@app.get("/json")
async def serve_json():
    """Returns a simple JSON document."""
    return SAMPLE_JSON


@app.get("/xml")
async def serve_xml():
    """Returns a simple XML document."""
    return Response(content=SAMPLE_XML, media_type="application/xml")


@app.get("/robots.txt")
async def robots_txt():
    """Returns some robots.txt rules."""
    return PlainTextResponse(ROBOTS_TXT)


@app.get("/deny")
async def deny():
    """Returns page denied by robots.txt rules."""
    return PlainTextResponse(DENY_TXT)


@app.get("/encoding/utf8")
async def utf8_html():
    """Returns a UTF-8 encoded body."""
    return HTMLResponse(SAMPLE_UTF8_HTML)


@app.get("/gzip")
async def gzipped(request: Request):
    """Returns GZip-encoded data."""
    return encoded_response(request, "gzip", "gzipped")


@app.get("/deflate")
async def deflated(request: Request):
    """Returns Deflate-encoded data."""
    return encoded_response(request, "deflate", "deflated")


@app.get("/brotli")
async def brotli_encoded(request: Request):
    """Returns Brotli-encoded data."""
    return encoded_response(request, "br", "brotli")


# --- Request inspection ---
@app.get("/headers")
async def request_headers(request: Request):
    """Return the incoming request's HTTP headers."""
    return {"headers": get_headers(request)}


@app.get("/ip")
async def client_ip(request: Request):
    """Returns the requester's IP Address."""
    return {"origin": get_client_ip(request)}


@app.get("/user-agent")
async def user_agent(request: Request):
    """Return the incoming request's User-Agent header."""
    return {"user-agent": get_user_agent(request)}


@app.get("/cookies")
async def cookies(request: Request):
    """Returns cookie data."""
    return {"cookies": get_cookies(request)}


# --- Response inspection ---
@app.get("/cache")
async def cache(request: Request):
    """304 if If-Modified-Since or If-None-Match is present, a fresh GET otherwise."""
    fresh = check_freshness(CacheValidators.from_headers(request.headers))
    return JSONResponse(echo_get(request), headers=fresh.headers())


@app.get("/cache/{value}")
async def cache_duration(value: str, request: Request):
    """Sets a Cache-Control header for n seconds."""
    max_age = parse_non_negative(value, "invalid number of seconds")
    return JSONResponse(echo_get(request), headers={"Cache-Control": f"public, max-age={max_age}"})


@app.get("/etag/{etag}")
async def etag_check(etag: str, request: Request):
    """Assumes the resource has the given etag and honors If-None-Match and If-Match."""
    resource_etag = check_etag(CacheValidators.from_headers(request.headers, resource_etag=etag))
    return JSONResponse(echo_get(request), headers={"ETag": resource_etag})


@app.api_route("/response-headers", methods=["GET", "POST"])
async def response_headers(request: Request):
    """Returns a set of response headers from the query string."""
    args = get_args(request)
    response = Response(
        content=self_describing_json({"Content-Type": "application/json", **args}),
        media_type="application/json",
    )
    # Content-Length is always the real body size
    pairs = [(key, value) for key, value in header_pairs(args) if key.lower() != "content-length"]
    for key, _ in pairs:
        del response.headers[key]
    for key, value in pairs:
        response.headers.append(key, value)
    return response


# --- Dynamic data ---
@app.get("/uuid")
async def uuid_v4():
    """Return a UUID4."""
    return {"uuid": str(uuid.uuid4())}


@app.api_route("/delay/{delay}", methods=ALL_METHODS)
async def delayed(delay: str, request: Request):
    """Returns a delayed response (max of 10 seconds)."""
    seconds = parse_non_negative(delay, "invalid number of delay", cast=float)
    await asyncio.sleep(min(seconds, MAX_DELAY))
    return await echo_body(request)


@app.get("/drip")
async def drip_bytes(params: DripParams = Depends()):
    """Drips data over a duration after an optional initial delay."""
    code = check_status_code(params.code)
    # these statuses cannot carry a body
    bodiless = code < 200 or code in (HTTP_204_NO_CONTENT, HTTP_304_NOT_MODIFIED)
    plan = DripPlan.build(params.duration, 0 if bodiless else params.numbytes, params.delay, code)
    headers = {} if bodiless else {"Content-Length": str(plan.numbytes)}
    await asyncio.sleep(plan.delay)
    return ScheduledResponse(partial(drip, plan), status_code=plan.status_code, headers=headers)


@app.get("/range/{numbytes}")
async def range_bytes(
    numbytes: int,
    request: Request,
    chunk_size: int = Query(DEFAULT_CHUNK_SIZE),
    duration: float = Query(0),
):
    """Streams the a-z cycle honoring the Range header, at chunk_size per write over duration seconds."""
    headers = {"ETag": f"range{numbytes}", "Accept-Ranges": "bytes"}
    if numbytes <= 0 or numbytes > MAX_BYTE_COUNT:
        raise HTTPException(404, f"number of bytes must be in the range (0, {MAX_BYTE_COUNT}]", headers=headers)
    try:
        window = resolve_range(request.headers.get("range"), numbytes)
    except RangeNotSatisfiable as e:
        e.headers.update(headers)
        raise
    headers["Content-Range"] = window.content_range
    headers["Content-Length"] = str(window.length)
    return ScheduledResponse(
        partial(stream_range, window, chunk_size=chunk_size, duration=duration),
        status_code=HTTP_206_PARTIAL_CONTENT if window.is_partial else 200,
        headers=headers,
    )


@app.get("/base64/{value}")
async def base64_decode(value: str):
    """Decodes base64url-encoded string."""
    try:
        decoded = decode_base64(value)
    except ValueError:
        raise InvalidArgument("Incorrect Base64 data try: RUNIT0JJTiBpcyBhd2Vzb21l")
    return Response(content=decoded, media_type="text/plain")


@app.get("/links/{n}")
async def links_first_page(n: str):
    """Redirects to the first page of n links."""
    count = parse_number(n, "invalid number of links")
    return RedirectResponse(app.url_path_for("links", n=str(count), offset="0"), status_code=302)


@app.get("/links/{n}/{offset}")
async def links(n: str, offset: str):
    """Generate a page containing n links to other pages which do the same."""
    count = clamp(parse_number(n, "invalid number of links"), 1, MAX_LINKS)
    current = parse_number(offset, "invalid offset")
    page = links_page(count, current, lambda i: app.url_path_for("links", n=str(count), offset=str(i)))
    return HTMLResponse(page)


@app.get("/bytes/{n}")
async def random_bytes(n: int, seed: Optional[int] = Query(None)):
    """Returns n random bytes generated with given seed."""
    if n < 0:
        raise InvalidArgument("invalid number of bytes")
    rng = random.Random(seed)
    return Response(content=rng.randbytes(min(n, MAX_BYTE_COUNT)), media_type="application/octet-stream")


@app.get("/stream-bytes/{n}")
async def stream_random_bytes(n: int, seed: Optional[int] = Query(None), chunk_size: int = Query(DEFAULT_CHUNK_SIZE)):
    """Streams n random bytes generated with given seed, at given chunk size per packet."""
    if n < 0:
        raise InvalidArgument("invalid number of bytes")
    total = min(n, MAX_BYTE_COUNT)
    chunk_size = max(chunk_size, 1)
    rng = random.Random(seed)
    async def gen():
        remaining = total
        while remaining > 0:
            chunk = min(chunk_size, remaining)
            yield rng.randbytes(chunk)
            remaining -= chunk
            await asyncio.sleep(0)
    return StreamingResponse(gen(), media_type="application/octet-stream")


@app.get("/stream/{n}")
async def stream_json(n: int, request: Request):
    """Stream n JSON responses."""
    if n < 0:
        raise InvalidArgument("invalid number of JSON objects")
    count = min(n, MAX_STREAM_ITEMS)
    async def gen():
        for i in range(count):
            yield json.dumps(echo_stream_item(request, i)) + "\n"
            await asyncio.sleep(0)
    return StreamingResponse(gen(), media_type="application/json")


# --- Redirects ---
@app.get("/redirect/{n}")
async def redirect_n_times(n: str, request: Request, absolute: str = Query("false")):
    """302 Redirects n times."""
    return redirect_chain(request, n, absolute == "true")


@app.get("/relative-redirect/{n}")
async def relative_redirect(n: str, request: Request):
    """Relatively 302 Redirects n times."""
    return redirect_chain(request, n, absolute=False)


@app.get("/absolute-redirect/{n}")
async def absolute_redirect(n: str, request: Request):
    """Absolutely 302 Redirects n times."""
    return redirect_chain(request, n, absolute=True)


@app.api_route("/redirect-to", methods=ALL_METHODS)
async def redirect_to(request: Request):
    """302/3XX Redirects to the given URL."""
    params = request.query_params if request.method in ("GET", "DELETE") else await get_form_data(request)
    url = params.get("url")
    if not url:
        raise InvalidArgument("url is required")
    status_code = 302
    if params.get("status_code"):
        status_code = parse_number(params["status_code"], "invalid status code")
        if not 300 <= status_code <= 308:
            status_code = 302
    return RedirectResponse(url, status_code=status_code)


# --- Health & Metrics ---
@app.get("/healthz")
async def healthz():
    """Health check."""
    return {"status": "ok"}


@app.get("/metrics")
async def metrics_endpoint():
    """Return metrics as text/plain."""
    lines = [f"{name} {value}" for name, value in metrics.items()]
    return PlainTextResponse("\n".join(lines))


# --- Main ---
def main():
    import uvicorn

    if config.STARTUP_DELAY_MS > 0:
        print(f"[Startup] Sleeping {config.STARTUP_DELAY_MS}ms before accepting requests...", flush=True)
        time.sleep(config.STARTUP_DELAY_MS / 1000)
    uvicorn.run("echobin.app:app", host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL)


if __name__ == "__main__":
    main()
