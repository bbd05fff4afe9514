"""
Named rate limits for the security endpoints.

Each helper maps one abuse surface onto a fixed-window counter:
- SMS delivery (per user per day, per source IP per hour)
- Verification attempts (per user)
- Authentication and code-sending endpoints (per source IP)
"""

import logging
from fastapi import Request

from app.core.auth_config import RateLimitPolicy
from app.core.rate_limiter import RateLimiter, rate_limiter

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400
HOUR_SECONDS = 3600


def check_sms_user_limit(user_id: str, policy: RateLimitPolicy, limiter: RateLimiter = rate_limiter) -> None:
    """
    Limit SMS sends per user.

    SMS carries a real per-message cost, so the window is a full day.

    Raises:
        RateLimited: 429 if the daily quota is used up
    """
    limiter.check_rate_limit(
        key=f"sms:user:{user_id}",
        max_requests=policy.sms_user_daily,
        window_seconds=DAY_SECONDS,
        error_message="Too many SMS codes requested today"
    )


def check_sms_ip_limit(ip_address: str, policy: RateLimitPolicy, limiter: RateLimiter = rate_limiter) -> None:
    """
    Limit SMS sends per source IP, independently of the user limit.

    Raises:
        RateLimited: 429 if the hourly quota is used up
    """
    limiter.check_rate_limit(
        key=f"sms:ip:{ip_address}",
        max_requests=policy.sms_ip_hourly,
        window_seconds=HOUR_SECONDS,
        error_message="Too many SMS codes requested from your network"
    )


def check_verify_attempts_limit(user_id: str, policy: RateLimitPolicy, limiter: RateLimiter = rate_limiter) -> None:
    """
    Limit verification attempts across all methods for one user.

    Raises:
        RateLimited: 429 if too many attempts in the window
    """
    limiter.check_rate_limit(
        key=f"verify:user:{user_id}",
        max_requests=policy.verify_attempts,
        window_seconds=policy.verify_window_seconds,
        error_message="Too many verification attempts. Please wait before trying again"
    )


def check_auth_rate_limit(ip_address: str, policy: RateLimitPolicy, endpoint: str = "auth", limiter: RateLimiter = rate_limiter) -> None:
    """
    Limit authentication and code-sending endpoints per source IP.

    Raises:
        RateLimited: 429 if rate limit exceeded
    """
    limiter.check_rate_limit(
        key=f"auth:ip:{ip_address}:{endpoint}",
        max_requests=policy.auth_requests,
        window_seconds=policy.auth_window_seconds,
        error_message="Too many requests. Please slow down"
    )


def check_ip_rate_limit(ip_address: str, policy: RateLimitPolicy, endpoint: str = "api", limiter: RateLimiter = rate_limiter) -> None:
    """
    General API limit per source IP.

    Raises:
        RateLimited: 429 if rate limit exceeded
    """
    limiter.check_rate_limit(
        key=f"ip:{ip_address}:{endpoint}",
        max_requests=policy.api_requests,
        window_seconds=policy.api_window_seconds,
        error_message="IP rate limit exceeded. Too many requests from your IP address"
    )


def get_client_ip(request: Request) -> str:
    """
    Extract the client's IP address from the request.

    Handles X-Forwarded-For header for proxied requests.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address as string
    """
    # Check for X-Forwarded-For header (when behind proxy/load balancer)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first (client IP)
        return forwarded_for.split(",")[0].strip()

    # Fall back to direct connection IP
    return request.client.host if request.client else "unknown"
