import time

from fastapi import HTTPException, Request

_RATE_LIMIT_BUCKETS: dict[str, list[float]] = {}


def rate_limit_check(key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
    now = time.time()
    window_start = now - window_seconds
    events = [stamp for stamp in _RATE_LIMIT_BUCKETS.get(key, []) if stamp >= window_start]
    if len(events) >= limit:
        retry_after = int(max(1, window_seconds - (now - events[0])))
        _RATE_LIMIT_BUCKETS[key] = events
        return False, retry_after
    events.append(now)
    _RATE_LIMIT_BUCKETS[key] = events
    return True, 0


def reset():
    _RATE_LIMIT_BUCKETS.clear()


class RateLimiter:
    """Dependency limiting each client IP to ``limit`` calls per window."""

    def __init__(self, group: str, limit: int, window_seconds: int):
        self.group = group
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request):
        ip = request.client.host if request.client else "unknown"
        allowed, retry_after = rate_limit_check(f"{self.group}:{ip}", self.limit, self.window_seconds)
        if not allowed:
            raise HTTPException(
                429,
                "Too many requests from this IP, please try again later.",
                headers={"Retry-After": str(retry_after)},
            )
