"""
Rate Limiting Middleware
Throttles authentication and write endpoints per client
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict
from typing import Dict, Tuple, Optional
import threading
import time
import logging

from balance_service.core.config import settings

logger = logging.getLogger(__name__)

READ_METHODS = ('GET', 'HEAD', 'OPTIONS')


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """
    Thread-safe in-memory rate limiter using sliding window algorithm.
    State is per process; run one worker or put a shared store in front.
    """

    def __init__(self, clock=time.monotonic):
        self._requests: Dict[str, list] = defaultdict(list)
        self._lock = threading.Lock()
        self._clock = clock

        self.limits = {
            '/api/v1/auth/login': (5, 60),                # 5 requests per 60 seconds
            '/api/v1/auth/logout': (10, 60),
            '/api/v1/balance-sessions/close': (5, 60),    # closing the books is rare
            '/api/v1/ledger/transactions': (60, 60),
            '/api/v1/sales/invoices': (30, 60),
            '/api/v1/procurement/orders': (30, 60),
            'default': (100, 60),
        }

    def _get_rate_limit_key(self, request: Request) -> str:
        """Client IP plus a token prefix when authenticated"""
        auth_header = request.headers.get("Authorization", "")
        token_prefix = "anonymous"
        if auth_header.startswith("Bearer ") and len(auth_header) > 15:
            token_prefix = auth_header[7:15]
        return f"{client_ip(request)}:{token_prefix}"

    def _limit_for(self, path: str) -> Tuple[int, int]:
        if path in self.limits:
            return self.limits[path]
        # Parameterized routes share their prefix's limit
        for pattern, limit in self.limits.items():
            if pattern != 'default' and path.startswith(pattern + '/'):
                return limit
        return self.limits['default']

    def is_allowed(self, path: str, method: str, key: str) -> Tuple[bool, Optional[Dict]]:
        """
        Check if the request is allowed under rate limiting rules.

        Returns:
            Tuple of (is_allowed, rate_limit_info)
        """
        # Only rate limit write operations and auth endpoints
        if method in READ_METHODS and not path.startswith('/api/v1/auth'):
            return True, None

        limit, window = self._limit_for(path)
        bucket_key = f"{path}:{key}"
        now = self._clock()

        with self._lock:
            cutoff = now - window
            self._requests[bucket_key] = [t for t in self._requests[bucket_key] if t > cutoff]
            current_count = len(self._requests[bucket_key])

            if current_count >= limit:
                retry_after = int(min(self._requests[bucket_key]) + window - now)
                logger.warning(f"Rate limit exceeded for {bucket_key}: {current_count}/{limit} requests")
                return False, {
                    'limit': limit,
                    'remaining': 0,
                    'reset': max(1, retry_after),
                    'retry_after': max(1, retry_after),
                }

            self._requests[bucket_key].append(now)
            return True, {
                'limit': limit,
                'remaining': limit - current_count - 1,
                'reset': window,
            }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting"""

    def __init__(self, app, limiter: RateLimiter = None):
        super().__init__(app)
        self.rate_limiter = limiter or RateLimiter()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not settings.RATE_LIMIT_ENABLED or not path.startswith('/api/') or path.endswith('/health'):
            return await call_next(request)

        is_allowed, rate_info = self.rate_limiter.is_allowed(
            path, request.method, self.rate_limiter._get_rate_limit_key(request)
        )

        if not is_allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={'error': 'Too many requests. Please try again later.'},
                headers={
                    'Retry-After': str(rate_info['retry_after']),
                    'X-RateLimit-Limit': str(rate_info['limit']),
                    'X-RateLimit-Remaining': '0',
                    'X-RateLimit-Reset': str(rate_info['reset']),
                }
            )

        response = await call_next(request)

        if rate_info:
            response.headers['X-RateLimit-Limit'] = str(rate_info['limit'])
            response.headers['X-RateLimit-Remaining'] = str(rate_info['remaining'])
            response.headers['X-RateLimit-Reset'] = str(rate_info['reset'])

        return response
