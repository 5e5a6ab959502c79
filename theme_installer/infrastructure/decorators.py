"""
Infrastructure-specific decorators, providing cross-cutting concerns like
error translation for network operations.
"""

import functools
import logging

import httpx

from ..application.exceptions import RepositoryNotFound

logger = logging.getLogger(__name__)


def translate_not_found(func):
    """
    Turn an HTTP 404 from the wrapped coroutine into RepositoryNotFound.

    Every other transport or status error propagates unchanged so that
    operators see the root cause. Nothing is retried.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 404:
                raise
            # Report the URL we built, not a redirect target.
            history = e.response.history
            url = str(history[0].request.url if history else e.request.url)
            logger.warning(f"Remote archive not found: {url}")
            raise RepositoryNotFound(context=url) from e

    return wrapper
