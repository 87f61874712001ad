"""FastAPI dependencies that apply rate limits to routes."""

import logging
from collections.abc import Awaitable, Callable, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quotaguard.config import get_settings
from quotaguard.schemas.limits import LimitRule, RateLimitConfig
from quotaguard.services.decision import RateLimitDecision, build_decision
from quotaguard.services.identifier import RequestDescriptor, resolve_identifier
from quotaguard.services.rate_limit import get_rate_limiter

logger = logging.getLogger(__name__)

KeyFunc = Callable[[Request], str | None]


class RateLimitExceeded(Exception):
    """Raised by a rate limit dependency when the request is denied."""

    def __init__(self, decision: RateLimitDecision) -> None:
        super().__init__(decision.body.get("message") if decision.body else "Rate limit exceeded")
        self.decision = decision


def _identifier_for(request: Request, prefer_domain: bool, key_func: KeyFunc | None) -> str:
    explicit_key = None
    if key_func is not None:
        try:
            explicit_key = key_func(request)
        except Exception:
            logger.exception("Rate limit key function failed for %s, resolving from request", request.url.path)
    return resolve_identifier(
        RequestDescriptor.from_request(request),
        prefer_domain=prefer_domain,
        explicit_key=explicit_key,
        settings=get_settings(),
    )


def _finish(request: Request, decision: RateLimitDecision) -> RateLimitDecision:
    if not decision.allowed:
        raise RateLimitExceeded(decision)
    request.state.rate_limit = decision
    return decision


def rate_limit(
    config: RateLimitConfig,
    *,
    namespace: str | None = None,
    prefer_domain: bool = False,
    key_func: KeyFunc | None = None,
) -> Callable[[Request], Awaitable[RateLimitDecision | None]]:
    """Build a dependency enforcing ``config`` on a route.

    The namespace defaults to ``config.namespace`` and then to the request
    path, so each route gets its own bucket space.

    Usage::

        @router.post("/login", dependencies=[Depends(rate_limit(STRICT))])
    """

    async def dependency(request: Request) -> RateLimitDecision | None:
        if not get_settings().rate_limit_enabled:
            return None
        identifier = _identifier_for(request, prefer_domain, key_func)
        ns = namespace or config.namespace or request.url.path
        result = get_rate_limiter().check(identifier, config, ns)
        return _finish(request, build_decision(result))

    return dependency


def composite_rate_limit(
    rules: Sequence[LimitRule],
    *,
    prefer_domain: bool = False,
    key_func: KeyFunc | None = None,
) -> Callable[[Request], Awaitable[RateLimitDecision | None]]:
    """Build a dependency that enforces every rule in order (e.g. per minute and per hour)."""
    rules = list(rules)

    async def dependency(request: Request) -> RateLimitDecision | None:
        if not get_settings().rate_limit_enabled:
            return None
        identifier = _identifier_for(request, prefer_domain, key_func)
        result = get_rate_limiter().check_composite(identifier, rules)
        return _finish(request, build_decision(result))

    return dependency


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a denial as a 429 JSON response."""
    decision = exc.decision
    return JSONResponse(
        status_code=decision.status_code,
        content=decision.body,
        headers=decision.headers,
    )


def install_rate_limiting(app: FastAPI) -> None:
    """Register the 429 handler and the middleware that adds X-RateLimit-* headers."""
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.middleware("http")
    async def add_rate_limit_headers(request: Request, call_next):
        response = await call_next(request)
        decision = getattr(request.state, "rate_limit", None)
        if decision is not None and decision.allowed:
            for name, value in decision.headers.items():
                response.headers.setdefault(name, value)
        return response
