"""Turn evaluator results into allow/deny decisions with HTTP metadata."""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from quotaguard.schemas.decision import RateLimitErrorBody
from quotaguard.services.rate_limit import CompositeResult, WindowResult

HTTP_429_TOO_MANY_REQUESTS = 429


def format_reset(reset_at: int) -> str:
    """Render an epoch-millisecond timestamp as ISO-8601 UTC."""
    dt = datetime.fromtimestamp(reset_at / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class RateLimitDecision:
    """What the calling route needs to proceed or short-circuit."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int = 0
    status_code: int = 200
    body: dict | None = None
    headers: dict[str, str] = field(default_factory=dict)


def rate_limit_headers(limit: int, remaining: int, reset_at: int) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": format_reset(reset_at),
    }


def build_decision(result: WindowResult | CompositeResult) -> RateLimitDecision:
    """Build the decision for a single or composite evaluation.

    An empty composite (no rules) is an unconditional allow with no headers.
    """
    composite = isinstance(result, CompositeResult)
    decisive = result.decisive if composite else result

    if decisive is None:
        return RateLimitDecision(allowed=True, limit=0, remaining=0, reset_at=0)

    headers = rate_limit_headers(decisive.limit, decisive.remaining, decisive.reset_at)

    if decisive.allowed:
        return RateLimitDecision(
            allowed=True,
            limit=decisive.limit,
            remaining=decisive.remaining,
            reset_at=decisive.reset_at,
            headers=headers,
        )

    body = RateLimitErrorBody(
        message=decisive.config.message,
        retry_after=decisive.retry_after,
        reset_at=format_reset(decisive.reset_at),
        limit_type=decisive.namespace if composite else None,
    )
    headers["Retry-After"] = str(decisive.retry_after)
    return RateLimitDecision(
        allowed=False,
        limit=decisive.limit,
        remaining=decisive.remaining,
        reset_at=decisive.reset_at,
        retry_after=decisive.retry_after,
        status_code=HTTP_429_TOO_MANY_REQUESTS,
        body=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )
