"""Rate limit configuration schemas and built-in presets."""

from pydantic import BaseModel, Field

DEFAULT_MESSAGE = "Too many requests. Please try again later."

_UNIT_MS = {
    "s": 1_000,
    "sec": 1_000,
    "second": 1_000,
    "m": 60_000,
    "min": 60_000,
    "minute": 60_000,
    "h": 3_600_000,
    "hr": 3_600_000,
    "hour": 3_600_000,
    "d": 86_400_000,
    "day": 86_400_000,
}


class RateLimitConfig(BaseModel):
    """A single fixed-window limit.

    Non-positive ``window_ms`` or ``max_requests`` are accepted here; the
    evaluator denies every request under such a config.
    """

    window_ms: int = Field(description="Window duration in milliseconds")
    max_requests: int = Field(description="Requests allowed per window")
    message: str = DEFAULT_MESSAGE
    namespace: str | None = Field(
        default=None,
        description="Bucket space for this limit. Callers fall back to the request path.",
    )

    model_config = {"frozen": True}

    @property
    def is_valid(self) -> bool:
        return self.window_ms > 0 and self.max_requests > 0

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    def with_namespace(self, namespace: str) -> "RateLimitConfig":
        """Return a copy of this config bound to ``namespace``."""
        return self.model_copy(update={"namespace": namespace})


class LimitRule(BaseModel):
    """One entry of a composite limit: a config applied under a namespace."""

    config: RateLimitConfig
    namespace: str = Field(min_length=1)

    model_config = {"frozen": True}


def parse_rate(rate: str, message: str = DEFAULT_MESSAGE) -> RateLimitConfig:
    """Parse a rate like '60/m', '10/s' or '1000/h' into a config."""
    try:
        count_str, per = rate.split("/")
        count = int(count_str.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid rate string: {rate!r}") from exc

    per = per.strip().lower()
    if per not in _UNIT_MS:
        raise ValueError(f"Unsupported rate unit: {per}")
    return RateLimitConfig(window_ms=_UNIT_MS[per], max_requests=count, message=message)


# Sensitive operations: authentication, password reset.
STRICT = RateLimitConfig(
    window_ms=60_000,
    max_requests=10,
    message="Too many requests. Please wait a minute before trying again.",
)

# General API endpoints.
STANDARD = RateLimitConfig(
    window_ms=60_000,
    max_requests=60,
    message="Rate limit exceeded. Please slow down your requests.",
)

# Chat and messaging endpoints.
MODERATE = RateLimitConfig(
    window_ms=60_000,
    max_requests=100,
    message="You are sending messages too quickly. Please wait a moment.",
)

# Public reads.
GENEROUS = RateLimitConfig(
    window_ms=60_000,
    max_requests=300,
    message="Rate limit exceeded. Please try again in a minute.",
)

# Secondary protection layer, usually combined with a per-minute limit.
HOURLY = RateLimitConfig(
    window_ms=3_600_000,
    max_requests=1000,
    message="Hourly rate limit exceeded. Please try again later.",
)

PRESETS: dict[str, RateLimitConfig] = {
    "strict": STRICT,
    "standard": STANDARD,
    "moderate": MODERATE,
    "generous": GENEROUS,
    "hourly": HOURLY,
}


def get_preset(name: str) -> RateLimitConfig:
    """Look up a preset by case-insensitive name."""
    try:
        return PRESETS[name.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown rate limit preset: {name}") from None
