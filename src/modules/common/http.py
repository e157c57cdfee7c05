from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Request


@lru_cache
def get_http_client() -> httpx.Client:
    """Process-wide pooled client; each call site passes its own timeout"""
    return httpx.Client(follow_redirects=False)


def close_http_client() -> None:
    if get_http_client.cache_info().currsize:
        get_http_client().close()
        get_http_client.cache_clear()


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
