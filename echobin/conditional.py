import uuid
from dataclasses import dataclass
from email.utils import formatdate
from typing import Mapping, Optional

from echobin.errors import NotModified, PreconditionFailed


@dataclass(frozen=True)
class CacheValidators:
    resource_etag: Optional[str] = None
    if_match: Optional[str] = None
    if_none_match: Optional[str] = None
    if_modified_since: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], resource_etag: Optional[str] = None) -> "CacheValidators":
        # empty header values count as absent
        return cls(
            resource_etag=resource_etag,
            if_match=headers.get("if-match") or None,
            if_none_match=headers.get("if-none-match") or None,
            if_modified_since=headers.get("if-modified-since") or None,
        )


@dataclass(frozen=True)
class FreshValidators:
    etag: str
    last_modified: str

    def headers(self) -> dict:
        return {"ETag": self.etag, "Last-Modified": self.last_modified}


def _matches(header: str, etag: str) -> bool:
    return etag in header or header.strip() == "*"


def check_freshness(validators: CacheValidators) -> FreshValidators:
    """Treat any conditional request as cached; otherwise mint new validators."""
    if validators.if_modified_since or validators.if_none_match:
        raise NotModified()
    return FreshValidators(
        etag=uuid.uuid4().hex,
        last_modified=formatdate(usegmt=True),
    )


def check_etag(validators: CacheValidators) -> str:
    """Evaluate If-None-Match / If-Match against the resource etag.

    Matching is substring containment (or a bare ``*``), not an entity-tag
    list comparison. If-Match is only consulted when If-None-Match is absent.
    Returns the etag to send with a full response.
    """
    etag = validators.resource_etag or ""
    if validators.if_none_match:
        if _matches(validators.if_none_match, etag):
            raise NotModified(etag)
    elif validators.if_match:
        if not _matches(validators.if_match, etag):
            raise PreconditionFailed()
    return etag
