import json
from typing import Any, Dict, Optional
from urllib.parse import unquote

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from starlette.datastructures import ImmutableMultiDict


# --- Models ---
class GetResponse(BaseModel):
    args: Dict[str, Any]
    headers: Dict[str, str]
    origin: str
    url: str


class BodyEchoResponse(GetResponse):
    data: str = ""
    form: Dict[str, Any] = Field(default_factory=dict)
    json_: Optional[Any] = Field(None, alias="json")


class AnythingResponse(BodyEchoResponse):
    method: str


class StreamItem(GetResponse):
    id: int


# --- Request accessors ---
def canonical_header_name(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("-"))


def get_headers(request: Request) -> Dict[str, str]:
    headers = {}
    for key, value in request.headers.items():
        headers.setdefault(canonical_header_name(key), value)
    return headers


def flatten(params: ImmutableMultiDict) -> Dict[str, Any]:
    """One value per key, or the list of values when a key repeats."""
    flat: Dict[str, Any] = {}
    for key in params.keys():
        values = params.getlist(key)
        flat[key] = values[0] if len(values) == 1 else values
    return flat


def get_args(request: Request) -> Dict[str, Any]:
    return flatten(request.query_params)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip
    return request.client.host if request.client else ""


def get_url(request: Request) -> str:
    url = request.url
    full_url = f"{url.scheme}://{url.netloc}{url.path}"
    if url.query:
        full_url += "?" + unquote(url.query)
    return full_url


def get_user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "")


def get_cookies(request: Request) -> Dict[str, str]:
    return dict(request.cookies)


async def get_data(request: Request) -> str:
    return (await request.body()).decode(errors="replace")


async def get_form_data(request: Request) -> ImmutableMultiDict:
    if "application/x-www-form-urlencoded" not in request.headers.get("content-type", ""):
        return ImmutableMultiDict()
    return await request.form()


async def get_form(request: Request) -> Dict[str, Any]:
    return flatten(await get_form_data(request))


def parse_json(data: str) -> Optional[Any]:
    try:
        return json.loads(data)
    except ValueError:
        return None


# --- Echo payloads ---
def echo_get(request: Request) -> Dict[str, Any]:
    return jsonable_encoder(GetResponse(
        args=get_args(request),
        headers=get_headers(request),
        origin=get_client_ip(request),
        url=get_url(request),
    ))


async def echo_body(request: Request, with_method: bool = False) -> Dict[str, Any]:
    body = await get_data(request)
    form = await get_form(request)
    fields = dict(
        args=get_args(request),
        headers=get_headers(request),
        origin=get_client_ip(request),
        url=get_url(request),
        data="" if form else body,
        form=form,
        json=parse_json(body),
    )
    if with_method:
        return jsonable_encoder(AnythingResponse(method=request.method, **fields))
    return jsonable_encoder(BodyEchoResponse(**fields))


def echo_stream_item(request: Request, item_id: int) -> Dict[str, Any]:
    return jsonable_encoder(StreamItem(id=item_id, **echo_get(request)))
