"""Shared HTTP helpers used by the remote registry loader.

Encapsulates request/timeout/retry handling and DEBUG traces so loaders only
deal with parsed payloads. Response caching goes through an injected
TTLCache instead of module-level state.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.cache import TTLCache
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def _get_cache_key(method: str, url: str, headers: Optional[Dict[str, str]] = None) -> str:
    """Generate cache key from request parameters."""
    headers_str = str(sorted(headers.items())) if headers else ""
    return f"http:{method}:{url}:{headers_str}"


def robust_get(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    cache: Optional[TTLCache] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], str]:
    """Perform GET request with timeout, retries, and optional caching.

    Returns:
        Tuple of (status_code, headers_dict, body_text). status_code is 0 when
        every attempt failed; body_text then carries the last error.
    """
    cache_key = _get_cache_key("GET", url, headers)
    safe_target = safe_url(url)

    if cache is not None:
        cached = cache.get(cache_key)
        if cached is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP cache hit",
                    extra=extra_context(
                        event="cache_hit", component="http_client", action="GET", target=safe_target
                    ),
                )
            return cached

    last_exception = None
    for attempt in range(Constants.HTTP_RETRY_MAX):
        with Timer() as t:
            try:
                response = requests.get(
                    url, timeout=Constants.REQUEST_TIMEOUT, headers=headers, **kwargs
                )
            except requests.Timeout:
                last_exception = "timeout"
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP timeout",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="timeout",
                            attempt=attempt + 1,
                            target=safe_target,
                        ),
                    )
                continue
            except requests.RequestException as exc:
                last_exception = str(exc)
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="http_client",
                            action="GET",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_target,
                        ),
                    )
                continue

        result = (response.status_code, dict(response.headers), response.text)
        if cache is not None and response.status_code < 500:
            cache.set(cache_key, result, Constants.HTTP_CACHE_TTL_SEC)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success",
                    status_code=response.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                ),
            )
        return result

    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {last_exception}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    cache: Optional[TTLCache] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """Perform GET request and parse JSON response.

    Args:
        url: Target URL
        headers: Optional request headers
        cache: Optional response cache
        **kwargs: Additional requests.get parameters

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    status_code, response_headers, text = robust_get(url, headers=headers, cache=cache, **kwargs)
    if status_code == 200 and text:
        try:
            return status_code, response_headers, json.loads(text)
        except json.JSONDecodeError:
            if is_debug_enabled(logger):
                logger.debug(
                    "JSON decode error",
                    extra=extra_context(
                        event="parse",
                        component="http_client",
                        action="get_json",
                        outcome="json_decode_error",
                        status_code=status_code,
                        target=safe_url(url),
                    ),
                )
    return status_code, response_headers, None


def download_file(url: str, dest_path: str) -> bool:
    """Stream a URL to disk. Returns False (and leaves no partial file) on failure."""
    safe_target = safe_url(url)
    tmp_path = dest_path + ".part"
    try:
        with requests.get(url, timeout=Constants.REQUEST_TIMEOUT, stream=True) as response:
            if response.status_code != 200:
                logger.warning("Download of %s failed with status %s", safe_target, response.status_code)
                return False
            with open(tmp_path, "wb") as fh:
                for chunk in response.iter_content(chunk_size=65536):
                    if chunk:
                        fh.write(chunk)
        os.replace(tmp_path, dest_path)
        return True
    except (requests.RequestException, OSError) as exc:
        logger.warning("Download of %s failed: %s", safe_target, exc)
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        return False
