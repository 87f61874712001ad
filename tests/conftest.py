"""Test fixtures and configuration."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from quotaguard.config import get_settings
from quotaguard.main import create_app
from quotaguard.services.notifications import clear_denial_listeners
from quotaguard.services.rate_limit import RateLimiter, reset_rate_limiter


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture(autouse=True)
def _isolate_global_state():
    """Give every test a fresh process-wide limiter, settings and listeners."""
    get_settings.cache_clear()
    reset_rate_limiter()
    clear_denial_listeners()
    yield
    clear_denial_listeners()
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(now=1_700_000_000_000)


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    """A limiter on its own in-memory store, driven by the fake clock."""
    return RateLimiter(clock=clock)


@pytest.fixture
def global_limiter(clock: FakeClock) -> RateLimiter:
    """Install a fake-clock limiter as the process-wide one."""
    return reset_rate_limiter(RateLimiter(clock=clock))


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client for the application."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
