"""Identifier resolution: turn a request into a stable bucketing key."""

import logging
from dataclasses import dataclass, field

from fastapi import Request

from quotaguard.config import Settings, get_settings

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"

# Checked in order; the first non-empty value wins.
FORWARDING_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


@dataclass
class RequestDescriptor:
    """Framework-neutral view of the parts of a request used for keying.

    Header names are stored lower-cased.
    """

    headers: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)
    client_host: str | None = None
    path: str = "/"

    def __post_init__(self) -> None:
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @classmethod
    def from_request(cls, request: Request) -> "RequestDescriptor":
        return cls(
            headers=dict(request.headers),
            query_params=dict(request.query_params),
            client_host=request.client.host if request.client else None,
            path=request.url.path,
        )


def _caller_domain(descriptor: RequestDescriptor, settings: Settings) -> str:
    domain = descriptor.query_params.get(settings.domain_query_param) or descriptor.headers.get(
        settings.domain_header.lower()
    )
    return (domain or "").strip().lower()


def _source_address(descriptor: RequestDescriptor, settings: Settings) -> str:
    if settings.trust_proxy_headers:
        for header in FORWARDING_HEADERS:
            value = descriptor.headers.get(header)
            if value:
                # first entry is the original client
                address = value.split(",")[0].strip()
                if address:
                    return address
    return (descriptor.client_host or "").strip()


def resolve_identifier(
    descriptor: RequestDescriptor,
    *,
    prefer_domain: bool = False,
    explicit_key: str | None = None,
    settings: Settings | None = None,
) -> str:
    """Return the identifier used to bucket this request.

    Resolution order: explicit key, caller domain (when ``prefer_domain``),
    source address, then ``"anonymous"``. Never raises.
    """
    if explicit_key:
        return explicit_key

    try:
        settings = settings or get_settings()
        if prefer_domain:
            domain = _caller_domain(descriptor, settings)
            if domain:
                return f"domain:{domain}"

        address = _source_address(descriptor, settings)
        if address:
            return f"ip:{address}"
    except Exception:
        logger.exception("Identifier resolution failed, using %r", ANONYMOUS)

    return ANONYMOUS
