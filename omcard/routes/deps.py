from fastapi import Request

from omcard.ai import ProviderRegistry
from omcard.config import Settings
from omcard.errors import RateLimitExceeded
from omcard.rate_limit import RateLimitConfig, RateLimiter, RateLimitResult, get_client_ip


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_limiter(request: Request) -> RateLimiter:
    return request.app.state.limiter


def get_providers(request: Request) -> ProviderRegistry:
    return request.app.state.providers


def enforce_rate_limit(request: Request, route: str, config: RateLimitConfig) -> RateLimitResult:
    result = get_limiter(request).check(f"{route}:{get_client_ip(request.headers)}", config)
    if not result.success:
        raise RateLimitExceeded(retry_after=result.retry_after or 1, reset_time=result.reset_time)
    return result
